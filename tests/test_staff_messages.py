import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_staff_and_admin_exchange_messages(
    client: AsyncClient, admin, admin_headers, make_department, make_user, headers_for
) -> None:
    dept = await make_department("CSE")
    staff = await make_user(role="STAFF", name="Prof. Menon", department_id=dept.id)

    response = await client.post(
        "/api/staff-messages/send",
        data={"recipient_id": admin.id, "content": "  Need a projector  "},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    sent = response.json()["data"]
    assert sent["message_type"] == "STAFF_TO_ADMIN"
    assert sent["content"] == "Need a projector"
    assert sent["is_staff_message"] is True

    response = await client.get("/api/staff-messages/unread-count", headers=admin_headers)
    assert response.json() == {"unread_count": 1}

    response = await client.patch(f"/api/staff-messages/{sent['id']}/read", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get("/api/staff-messages/unread-count", headers=admin_headers)
    assert response.json() == {"unread_count": 0}

    # The sender is not the recipient
    response = await client.patch(f"/api/staff-messages/{sent['id']}/read", headers=headers_for(staff))
    assert response.status_code == 404

    response = await client.post(
        "/api/staff-messages/send", data={"recipient_id": staff.id, "content": "Approved"}, headers=admin_headers
    )
    assert response.json()["data"]["message_type"] == "ADMIN_TO_STAFF"

    response = await client.get("/api/staff-messages/conversations", headers=headers_for(staff))
    data = response.json()
    assert data["user_role"] == "STAFF"
    assert [m["content"] for m in data["messages"]] == ["Approved", "Need a projector"]


@pytest.mark.asyncio
async def test_staff_message_routing_rules(client: AsyncClient, admin_headers, make_user, headers_for) -> None:
    staff = await make_user(role="STAFF")
    colleague = await make_user(role="STAFF")
    student = await make_user(role="STUDENT")

    response = await client.post(
        "/api/staff-messages/send", data={"recipient_id": colleague.id, "content": "Hi"}, headers=headers_for(staff)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Staff can only send messages to Super Admin"

    response = await client.post(
        "/api/staff-messages/send", data={"recipient_id": student.id, "content": "Hi"}, headers=admin_headers
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Super Admin can only send messages to Staff"

    response = await client.post("/api/staff-messages/send", data={"content": "Hi"}, headers=admin_headers)
    assert response.json()["detail"] == "Recipient ID is required"

    response = await client.post(
        "/api/staff-messages/send", data={"recipient_id": 9999, "content": "Hi"}, headers=admin_headers
    )
    assert response.status_code == 404

    response = await client.get("/api/staff-messages/conversations", headers=headers_for(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_staff_and_admin_lists(
    client: AsyncClient, admin, admin_headers, make_department, make_user, headers_for
) -> None:
    dept = await make_department("IT")
    in_dept = await make_user(role="STAFF", name="A Staff", department_id=dept.id)
    await make_user(role="STAFF", name="B Staff")

    response = await client.get("/api/staff-messages/staff-list", params={"department_id": "ALL"}, headers=admin_headers)
    assert len(response.json()["staff"]) == 2

    response = await client.get(
        "/api/staff-messages/staff-list", params={"department_id": dept.id}, headers=admin_headers
    )
    [member] = response.json()["staff"]
    assert member["department"]["name"] == "IT"

    response = await client.get("/api/staff-messages/admin-list", headers=headers_for(in_dept))
    assert [a["id"] for a in response.json()["admins"]] == [admin.id]


@pytest.mark.asyncio
async def test_staff_message_attachment_download(
    client: AsyncClient, admin, admin_headers, make_user, headers_for, upload_dirs
) -> None:
    staff = await make_user(role="STAFF")
    outsider = await make_user(role="STAFF")

    response = await client.post(
        "/api/staff-messages/send",
        data={"recipient_id": admin.id, "content": "Timetable"},
        files={"file": ("timetable.pdf", b"%PDF-1.4", "application/pdf")},
        headers=headers_for(staff),
    )
    message_id = response.json()["data"]["id"]

    response = await client.get(f"/api/staff-messages/download/{message_id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4"

    response = await client.get(f"/api/staff-messages/download/{message_id}", headers=headers_for(outsider))
    assert response.status_code == 403
