from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import Attendance, Message


@pytest.mark.asyncio
async def test_recent_activities(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_class, make_user
) -> None:
    cls = await make_class("BCA First Year")
    student = await make_user(role="STUDENT", name="Neha Gupta", class_id=cls.id)
    db_session.add_all(
        [
            Message(
                student_id=student.id,
                staff_id=admin.id,
                sender_id=admin.id,
                content="Lab is closed tomorrow",
                message_type="CLASS",
                class_id=cls.id,
            ),
            Attendance(student_id=student.id, staff_id=admin.id, date=datetime.utcnow().date(), status="PRESENT"),
        ]
    )
    await db_session.commit()

    response = await client.get("/api/admin/recent-activities", headers=admin_headers)
    assert response.status_code == 200
    activities = response.json()
    by_type = {a["type"]: a for a in activities}
    assert by_type["class_message_sent"]["description"] == (
        'Sent message to BCA First Year: "Lab is closed tomorrow..."'
    )
    assert by_type["attendance_taken"]["description"].startswith("Attendance taken by Admin for ")
    registered = [a["description"] for a in activities if a["type"] == "user_registered"]
    assert "New student registered: Neha Gupta" in registered
    timestamps = [a["timestamp"] for a in activities]
    assert timestamps == sorted(timestamps, reverse=True)

    response = await client.get("/api/admin/recent-activities", params={"limit": 2}, headers=admin_headers)
    assert len(response.json()) == 2


@pytest.mark.asyncio
async def test_recent_activities_admin_only(client: AsyncClient, make_user, headers_for) -> None:
    staff = await make_user(role="STAFF")
    response = await client.get("/api/admin/recent-activities", headers=headers_for(staff))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dashboard_stats_defaults(client: AsyncClient, admin_headers) -> None:
    response = await client.get("/api/admin/dashboard-stats", headers=admin_headers)
    assert response.status_code == 200
    stats = response.json()
    assert stats["total_students"] == 0
    assert stats["attendance_rate"] == 85
    assert stats["top_performing_class"] == "N/A"
    assert stats["classes_with_low_attendance"] == 0
    assert stats["new_registrations"] == 1


@pytest.mark.asyncio
async def test_dashboard_stats(
    client: AsyncClient, db_session: AsyncSession, admin, admin_headers, make_class, make_user
) -> None:
    good = await make_class("Good Class")
    poor = await make_class("Poor Class")
    await make_user(role="STAFF", login_count=3)
    a = await make_user(role="STUDENT", class_id=good.id)
    b = await make_user(role="STUDENT", class_id=poor.id)
    today = datetime.utcnow().date()
    for i in range(5):
        day = today - timedelta(days=i)
        db_session.add(Attendance(student_id=a.id, staff_id=admin.id, date=day, status="PRESENT"))
        db_session.add(
            Attendance(student_id=b.id, staff_id=admin.id, date=day, status="ABSENT" if i < 3 else "PRESENT")
        )
    db_session.add(Message(student_id=a.id, staff_id=admin.id, sender_id=admin.id, content="x"))
    await db_session.commit()

    response = await client.get("/api/admin/dashboard-stats", headers=admin_headers)
    stats = response.json()
    assert stats["total_students"] == 2
    assert stats["active_students"] == 2
    assert stats["total_staff"] == 1
    assert stats["total_classes"] == 2
    assert stats["messages_this_week"] == 1
    assert stats["attendance_today"] == 2
    assert stats["attendance_rate"] == 70
    assert stats["top_performing_class"] == "Good Class"
    assert stats["classes_with_low_attendance"] == 1
    # login counts 0, 3, 0, 0 across the four active users
    assert stats["average_login"] == 1
