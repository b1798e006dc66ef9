from datetime import date, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.attendance import service as attendance_service
from app.api.v1.attendance.service import summarize
from app.core.models import Attendance


def test_summarize() -> None:
    summary = summarize(["PRESENT", "PRESENT", "ABSENT"])
    assert summary.total_days == 3
    assert summary.present_days == 2
    assert summary.absent_days == 1
    assert summary.percentage == 66.67
    assert summarize([]).percentage == 0.0


@pytest.mark.asyncio
async def test_mark_attendance_upserts(
    client: AsyncClient, db_session: AsyncSession, make_class, make_user, headers_for
) -> None:
    staff = await make_user(role="STAFF")
    cls = await make_class("BCA First Year", staff=staff)
    s1 = await make_user(role="STUDENT", class_id=cls.id, parent_email="parent1@example.com")
    s2 = await make_user(role="STUDENT", class_id=cls.id)
    today = datetime.utcnow().date().isoformat()

    response = await client.post(
        "/api/attendance/mark",
        json={
            "date": today,
            "class_id": cls.id,
            "attendance": [
                {"student_id": s1.id, "status": "ABSENT", "remarks": "Sick"},
                {"student_id": s2.id, "status": "PRESENT"},
            ],
        },
        headers=headers_for(staff),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Attendance marked successfully"
    assert [r["created"] for r in data["results"]] == [True, True]
    # Without RESEND_API_KEY the alert is logged and counted as handed off
    assert data["notifications_sent"] == 1

    response = await client.post(
        "/api/attendance/mark",
        json={"date": today, "attendance": [{"student_id": s1.id, "status": "PRESENT"}]},
        headers=headers_for(staff),
    )
    assert response.json()["results"] == [
        {"student_id": s1.id, "status": "PRESENT", "created": False, "updated": True}
    ]

    rows = (await db_session.execute(select(Attendance).order_by(Attendance.student_id))).scalars().all()
    assert len(rows) == 2
    await db_session.refresh(rows[0])
    assert (rows[0].status, rows[0].remarks) == ("PRESENT", None)


@pytest.mark.asyncio
async def test_mark_attendance_is_all_or_nothing(
    client: AsyncClient, db_session: AsyncSession, make_department, make_user, headers_for
) -> None:
    cse = await make_department("CSE")
    it = await make_department("IT")
    staff = await make_user(role="STAFF", department_id=cse.id)
    mine = await make_user(role="STUDENT", department_id=cse.id)
    theirs = await make_user(role="STUDENT", department_id=it.id)

    response = await client.post(
        "/api/attendance/mark",
        json={
            "date": datetime.utcnow().date().isoformat(),
            "attendance": [
                {"student_id": mine.id, "status": "PRESENT"},
                {"student_id": theirs.id, "status": "PRESENT"},
            ],
        },
        headers=headers_for(staff),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == f"Student {theirs.id} not accessible or not in your department"
    assert (await db_session.execute(select(Attendance))).scalars().all() == []

    response = await client.post("/api/attendance/mark", json={"attendance": []}, headers=headers_for(staff))
    assert response.status_code == 400
    assert response.json()["detail"] == "Date and attendance data are required"


@pytest.mark.asyncio
async def test_attendance_for_date_lists_unmarked(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_class, make_user
) -> None:
    cls = await make_class("MCA1")
    marked = await make_user(role="STUDENT", class_id=cls.id, roll_number="A01")
    unmarked = await make_user(role="STUDENT", class_id=cls.id, roll_number="A02")
    day = date(2024, 3, 1)
    db_session.add(Attendance(student_id=marked.id, staff_id=admin.id, date=day, status="ABSENT", remarks="Late"))
    await db_session.commit()

    response = await client.get(f"/api/attendance/date/{day.isoformat()}", params={"class_id": cls.id}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == [
        {"student_id": marked.id, "student_name": marked.name, "roll_number": "A01", "status": "ABSENT", "remarks": "Late"},
        {"student_id": unmarked.id, "student_name": unmarked.name, "roll_number": "A02", "status": None, "remarks": None},
    ]


@pytest.mark.asyncio
async def test_my_attendance(
    client: AsyncClient, db_session: AsyncSession, admin, make_user, headers_for
) -> None:
    student = await make_user(role="STUDENT")
    today = datetime.utcnow().date()
    for offset, status in enumerate(["PRESENT", "ABSENT", "PRESENT", "PRESENT"]):
        db_session.add(
            Attendance(student_id=student.id, staff_id=admin.id, date=today - timedelta(days=offset), status=status)
        )
    await db_session.commit()

    response = await client.get("/api/attendance/my-attendance", params={"page_size": 3}, headers=headers_for(student))
    assert response.status_code == 200
    data = response.json()
    assert data["summary"] == {"total_days": 4, "present_days": 3, "absent_days": 1, "percentage": 75.0}
    assert data["pagination"]["total_pages"] == 2
    assert data["pagination"]["has_next"] is True
    assert data["attendance"][0]["date"] == today.isoformat()
    assert data["attendance"][0]["staff_name"] == "Admin"

    response = await client.get("/api/attendance/my-attendance", headers=headers_for(admin))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_report_groups_by_student(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_user
) -> None:
    a = await make_user(role="STUDENT", roll_number="R1")
    b = await make_user(role="STUDENT", roll_number="R2")
    db_session.add_all(
        [
            Attendance(student_id=a.id, staff_id=admin.id, date=date(2024, 1, 1), status="PRESENT"),
            Attendance(student_id=a.id, staff_id=admin.id, date=date(2024, 1, 2), status="ABSENT"),
            Attendance(student_id=b.id, staff_id=admin.id, date=date(2024, 1, 2), status="PRESENT"),
            Attendance(student_id=b.id, staff_id=admin.id, date=date(2024, 2, 1), status="PRESENT"),
        ]
    )
    await db_session.commit()

    response = await client.get(
        "/api/attendance/report",
        params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        headers=admin_headers,
    )
    report = response.json()
    assert [r["student"]["roll_number"] for r in report] == ["R1", "R2"]
    assert report[0]["percentage"] == 50.0
    assert [r["date"] for r in report[0]["records"]] == ["2024-01-02", "2024-01-01"]
    assert report[1]["total_days"] == 1


@pytest.mark.asyncio
async def test_class_stats(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_class, make_user
) -> None:
    cls = await make_class("BSc1")
    student = await make_user(role="STUDENT", class_id=cls.id)
    today = datetime.utcnow().date()
    db_session.add_all(
        [
            Attendance(student_id=student.id, staff_id=admin.id, date=today, status="PRESENT"),
            Attendance(student_id=student.id, staff_id=admin.id, date=today - timedelta(days=1), status="PRESENT"),
            Attendance(student_id=student.id, staff_id=admin.id, date=today - timedelta(days=2), status="ABSENT"),
            Attendance(student_id=student.id, staff_id=admin.id, date=today - timedelta(days=20), status="ABSENT"),
        ]
    )
    await db_session.commit()

    response = await client.get(f"/api/attendance/stats/{cls.id}", headers=admin_headers)
    assert response.json() == {"attendance_rate": 67, "last_activity": today.isoformat(), "total_marked": 3}

    response = await client.get(f"/api/attendance/stats/{cls.id}", params={"days": 1000}, headers=admin_headers)
    assert response.json()["total_marked"] == 4

    empty = await make_class("Empty")
    response = await client.get(f"/api/attendance/stats/{empty.id}", headers=admin_headers)
    assert response.json() == {"attendance_rate": 0, "last_activity": None, "total_marked": 0}


@pytest.mark.asyncio
async def test_mark_attendance_conflicting_insert_is_rejected(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_user, monkeypatch
) -> None:
    student = await make_user(role="STUDENT")
    today = datetime.utcnow().date()
    # Another request recorded this student after the lookup ran
    db_session.add(Attendance(student_id=student.id, staff_id=admin.id, date=today, status="PRESENT"))
    await db_session.commit()

    async def no_marks(db, on_date, student_ids):
        return {}

    monkeypatch.setattr(attendance_service, "_existing_marks", no_marks)

    response = await client.post(
        "/api/attendance/mark",
        json={"date": today.isoformat(), "attendance": [{"student_id": student.id, "status": "ABSENT"}]},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Attendance for this student and date was already recorded"

    rows = (await db_session.execute(select(Attendance.status).where(Attendance.student_id == student.id))).all()
    assert [tuple(r) for r in rows] == [("PRESENT",)]


class _LateEvening(datetime):
    @classmethod
    def utcnow(cls):
        return cls(2024, 3, 10, 23, 30)


@pytest.mark.asyncio
async def test_class_stats_use_utc_today(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_class, make_user, monkeypatch
) -> None:
    cls = await make_class("BSc2")
    student = await make_user(role="STUDENT", class_id=cls.id)
    db_session.add_all(
        [
            Attendance(student_id=student.id, staff_id=admin.id, date=date(2024, 3, 10), status="PRESENT"),
            Attendance(student_id=student.id, staff_id=admin.id, date=date(2024, 3, 11), status="ABSENT"),
        ]
    )
    await db_session.commit()
    monkeypatch.setattr(attendance_service, "datetime", _LateEvening)

    response = await client.get(f"/api/attendance/stats/{cls.id}", params={"days": 1}, headers=admin_headers)
    assert response.json() == {"attendance_rate": 100, "last_activity": "2024-03-10", "total_marked": 1}
