import json

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.messages.service import optional_id, parse_id_list
from app.core.exceptions import ServiceError
from app.core.models import Message


def test_optional_id() -> None:
    assert optional_id("ALL") is None
    assert optional_id("all") is None
    assert optional_id("") is None
    assert optional_id("7") == 7
    with pytest.raises(ServiceError):
        optional_id("seven")


def test_parse_id_list() -> None:
    assert parse_id_list("[1, 2]", "bad") == [1, 2]
    assert parse_id_list("3,4", "bad") == [3, 4]
    assert parse_id_list(None, "bad") == []
    with pytest.raises(ServiceError) as exc:
        parse_id_list('{"a": 1}', "Invalid student IDs format")
    assert exc.value.message == "Invalid student IDs format"


@pytest.mark.asyncio
async def test_send_individual_message_and_read_it(
    client: AsyncClient, db_session: AsyncSession, make_user, headers_for
) -> None:
    staff = await make_user(role="STAFF", name="Prof. Das")
    student = await make_user(role="STUDENT")

    response = await client.post(
        "/api/messages/send", data={"content": "See me after class", "student_id": student.id},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    sent = response.json()
    assert sent["message_type"] == "INDIVIDUAL"
    assert sent["student"]["id"] == student.id
    assert sent["staff"]["name"] == "Prof. Das"

    response = await client.get("/api/messages/received", headers=headers_for(student))
    page = response.json()
    assert page["count"] == 1
    assert page["rows"][0]["is_read"] is False

    response = await client.patch(f"/api/messages/{sent['id']}/read", headers=headers_for(student))
    assert response.json() == {"message": "Message marked as read"}
    message = await db_session.get(Message, sent["id"])
    await db_session.refresh(message)
    assert message.is_read is True

    # Only the recipient may mark a message read
    other = await make_user(role="STUDENT")
    response = await client.patch(f"/api/messages/{sent['id']}/read", headers=headers_for(other))
    assert response.status_code == 404

    response = await client.get("/api/messages/sent", headers=headers_for(staff))
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_send_requires_content_and_student(client: AsyncClient, make_user, headers_for) -> None:
    staff = await make_user(role="STAFF")
    student = await make_user(role="STUDENT")

    response = await client.post("/api/messages/send", data={"student_id": student.id}, headers=headers_for(staff))
    assert response.status_code == 400
    assert response.json()["detail"] == "Content is required"

    response = await client.post("/api/messages/send", data={"content": "Hi"}, headers=headers_for(staff))
    assert response.status_code == 400
    assert response.json()["detail"] == "Student ID is required for individual messages"

    response = await client.post(
        "/api/messages/send", data={"content": "Hi", "student_id": 9999}, headers=headers_for(staff)
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/messages/send", data={"content": "Hi", "student_id": student.id}, headers=headers_for(student)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_announcement_fans_out_within_staff_department(
    client: AsyncClient, db_session: AsyncSession, make_department, make_user, headers_for
) -> None:
    cse = await make_department("CSE")
    it = await make_department("IT")
    staff = await make_user(role="STAFF", department_id=cse.id)
    await make_user(role="STUDENT", department_id=cse.id)
    await make_user(role="STUDENT", department_id=cse.id)
    await make_user(role="STUDENT", department_id=cse.id, is_active=False)
    await make_user(role="STUDENT", department_id=it.id)

    response = await client.post(
        "/api/messages/announcement", data={"content": "Exam on Monday", "department_id": "ALL"},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    assert response.json() == {
        "message": "Announcement sent to 2 students successfully!",
        "recipients": 2,
        "is_announcement": True,
        "class_id": None,
        "student_names": None,
        "message_type": None,
    }
    rows = (await db_session.execute(select(Message))).scalars().all()
    assert len(rows) == 2
    assert all(m.is_announcement and m.message_type == "ALL_STUDENTS" for m in rows)

    response = await client.post("/api/messages/announcement", data={}, headers=headers_for(staff))
    assert response.json()["detail"] == "Content is required for announcements"


@pytest.mark.asyncio
async def test_send_to_class_with_attachment(
    client: AsyncClient, make_class, make_user, headers_for, upload_dirs
) -> None:
    staff = await make_user(role="STAFF")
    cls = await make_class("BCA First Year", staff=staff)
    student = await make_user(role="STUDENT", class_id=cls.id)
    empty = await make_class("Empty Class")

    response = await client.post(
        "/api/messages/send-to-class",
        data={"class_id": str(cls.id), "content": "Notes attached"},
        files={"file": ("notes.txt", b"chapter 1", "text/plain")},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    assert response.json()["recipients"] == 1
    assert response.json()["message_type"] == "CLASS"

    response = await client.get("/api/messages/received", headers=headers_for(student))
    [row] = response.json()["rows"]
    assert row["has_file"] is True
    assert row["file_name"] == "notes.txt"
    assert row["class"]["name"] == "BCA First Year"

    response = await client.get(f"/api/messages/download/{row['id']}", headers=headers_for(student))
    assert response.status_code == 200
    assert response.content == b"chapter 1"

    response = await client.post(
        "/api/messages/send-to-class",
        data={"class_id": str(empty.id), "content": "Anyone?"},
        headers=headers_for(staff),
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "No active students found in this class"

    response = await client.post(
        "/api/messages/send-to-class",
        data={"class_id": str(cls.id), "content": "x"},
        files={"file": ("virus.exe", b"MZ", "application/octet-stream")},
        headers=headers_for(staff),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid file type"


@pytest.mark.asyncio
async def test_send_to_group(client: AsyncClient, make_user, headers_for) -> None:
    staff = await make_user(role="STAFF")
    a = await make_user(role="STUDENT", name="Anil")
    b = await make_user(role="STUDENT", name="Bela")

    response = await client.post(
        "/api/messages/send-to-group",
        data={"student_ids": json.dumps([a.id, b.id]), "content": "Project groups"},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    assert response.json()["student_names"] == ["Anil", "Bela"]

    response = await client.post(
        "/api/messages/send-to-group",
        data={"student_ids": json.dumps([a.id, 9999]), "content": "x"},
        headers=headers_for(staff),
    )
    assert response.json()["detail"] == "Some students not found or inactive"


@pytest.mark.asyncio
async def test_send_email_records_one_message(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_user
) -> None:
    with_parent = await make_user(role="STUDENT", parent_email="parent@example.com")
    without_parent = await make_user(role="STUDENT")

    response = await client.post(
        "/api/messages/send-email",
        data={
            "student_ids": json.dumps([with_parent.id, without_parent.id]),
            "subject": "Fee reminder",
            "content": "Please pay the fees",
            "email_type": "PARENT",
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert (data["sent"], data["skipped"], data["failed"]) == (1, 1, 0)
    assert data["successful_recipients"][0]["recipient_email"] == "parent@example.com"

    [record] = (await db_session.execute(select(Message))).scalars().all()
    assert record.message_type == "EMAIL"
    assert record.email_type == "PARENT"

    response = await client.post(
        "/api/messages/send-email",
        data={"student_ids": json.dumps([with_parent.id]), "subject": "s", "content": "c", "email_type": "X"},
        headers=admin_headers,
    )
    assert response.json()["detail"] == "Valid email type (STUDENT or PARENT) is required"


@pytest.mark.asyncio
async def test_admin_send_to_staff_and_departments(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_department, make_class, make_user
) -> None:
    dept = await make_department("Physics")
    cls = await make_class("BSc Physics", department=dept)
    await make_user(role="STAFF", department_id=dept.id)
    await make_user(role="STUDENT", department_id=dept.id, class_id=cls.id)

    response = await client.post(
        "/api/messages/admin-send",
        data={"content": "Staff meeting", "recipient_type": "staff", "department_id": str(dept.id)},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["recipients"] == 1
    [row] = (await db_session.execute(select(Message))).scalars().all()
    assert row.is_staff_message is True
    assert row.message_type == "STAFF"

    response = await client.post(
        "/api/messages/admin-send", data={"content": "x", "recipient_type": "class"}, headers=admin_headers
    )
    assert response.json()["detail"] == "Class ID is required for class messages"

    response = await client.post(
        "/api/messages/admin-send", data={"content": "x", "recipient_type": "nobody"}, headers=admin_headers
    )
    assert response.json()["detail"] == "Valid message type is required"

    response = await client.get("/api/messages/departments", headers=admin_headers)
    assert response.json() == [{"id": dept.id, "name": "Physics", "student_count": 1}]

    response = await client.get(f"/api/messages/classes-by-department/{dept.id}", headers=admin_headers)
    assert response.json() == [{"id": cls.id, "name": "BSc Physics", "student_count": 1}]

    response = await client.get("/api/messages/staff-by-department/ALL", headers=admin_headers)
    assert response.json()[0]["department"]["name"] == "Physics"


@pytest.mark.asyncio
async def test_student_to_staff_and_reply(
    client: AsyncClient, db_session: AsyncSession, make_class, make_user, headers_for
) -> None:
    teacher = await make_user(role="STAFF", name="Dr. Rao")
    stranger = await make_user(role="STAFF")
    cls = await make_class("MCA First Year", staff=teacher)
    student = await make_user(role="STUDENT", class_id=cls.id)

    response = await client.get("/api/messages/assigned-staff", headers=headers_for(student))
    assert response.json()["total_staff"] == 1
    assert response.json()["assigned_staff"][0]["name"] == "Dr. Rao"

    response = await client.post(
        "/api/messages/student-to-staff",
        data={"staff_id": stranger.id, "content": "Hello"},
        headers=headers_for(student),
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/messages/student-to-staff",
        data={"staff_id": teacher.id, "content": "Question on unit 2", "student_message_type": "doubt"},
        headers=headers_for(student),
    )
    assert response.status_code == 201
    question = response.json()["data"]
    assert question["message_type"] == "STUDENT_TO_STAFF"
    assert question["student_message_type"] == "doubt"

    # Student-to-staff rows are not part of the staff member's sent list
    response = await client.get("/api/messages/sent", headers=headers_for(teacher))
    assert response.json()["count"] == 0

    response = await client.get("/api/messages/from-students", headers=headers_for(teacher))
    inbox = response.json()
    assert inbox["count"] == 1
    assert inbox["assigned_classes"] == 1

    response = await client.post(
        f"/api/messages/reply-to-student/{question['id']}", data={"content": "x"}, headers=headers_for(stranger)
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/messages/reply-to-student",
        data={"original_message_id": question["id"], "content": "See page 42"},
        headers=headers_for(teacher),
    )
    assert response.status_code == 201
    reply = response.json()
    assert reply["original_message_id"] == question["id"]
    assert reply["data"]["message_type"] == "STAFF_REPLY"

    response = await client.get("/api/messages/received", headers=headers_for(student))
    assert [r["message_type"] for r in response.json()["rows"]] == ["STAFF_REPLY"]

    response = await client.get("/api/messages/sent-to-staff", headers=headers_for(student))
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_student_without_class_cannot_message_staff(client: AsyncClient, make_user, headers_for) -> None:
    staff = await make_user(role="STAFF")
    student = await make_user(role="STUDENT")

    response = await client.post(
        "/api/messages/student-to-staff", data={"staff_id": staff.id, "content": "Hi"}, headers=headers_for(student)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Student must be assigned to a class to send messages"

    response = await client.get("/api/messages/assigned-staff", headers=headers_for(student))
    assert response.status_code == 404
