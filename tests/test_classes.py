import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import StaffClass


@pytest.mark.asyncio
async def test_create_class_and_read_it_back(
    client: AsyncClient, admin_headers, make_department, make_user, headers_for
) -> None:
    dept = await make_department("CSE")
    staff = await make_user(role="STAFF", name="Prof. Rao", department_id=dept.id)

    response = await client.post(
        "/api/classes",
        json={"name": "BCA First Year", "department_id": dept.id, "staff_id": staff.id},
        headers=admin_headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["department"]["name"] == "CSE"
    assert created["staff"]["name"] == "Prof. Rao"
    assert created["student_count"] == 0

    # Any signed-in user may read classes
    response = await client.get(f"/api/classes/{created['id']}", headers=headers_for(staff))
    assert response.status_code == 200
    assert response.json()["name"] == "BCA First Year"

    response = await client.get(f"/api/classes/department/{dept.id}", headers=headers_for(staff))
    assert [c["id"] for c in response.json()] == [created["id"]]


@pytest.mark.asyncio
async def test_create_class_validation(client: AsyncClient, admin_headers, make_department, make_class, make_user) -> None:
    dept = await make_department("IT")
    await make_class("IT First Year", department=dept)
    student = await make_user(role="STUDENT")

    response = await client.post("/api/classes", json={"name": "X"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Name and department are required"

    response = await client.post("/api/classes", json={"name": "X", "department_id": 999}, headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Department not found"

    response = await client.post(
        "/api/classes", json={"name": "X", "department_id": dept.id, "staff_id": student.id}, headers=admin_headers
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Staff member not found"

    response = await client.post(
        "/api/classes", json={"name": "it first year", "department_id": dept.id}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Class name already exists"


@pytest.mark.asyncio
async def test_only_admin_can_create_class(client: AsyncClient, make_user, make_department, headers_for) -> None:
    dept = await make_department("ME")
    staff = await make_user(role="STAFF")
    response = await client.post(
        "/api/classes", json={"name": "ME1", "department_id": dept.id}, headers=headers_for(staff)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_class(client: AsyncClient, admin_headers, make_department, make_class) -> None:
    dept = await make_department("ECE")
    other = await make_department("EEE")
    cls = await make_class("ECE1", department=dept)

    response = await client.put(
        f"/api/classes/{cls.id}", json={"name": "ECE First Year", "department_id": other.id}, headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "ECE First Year"
    assert data["department_id"] == other.id

    response = await client.put("/api/classes/999", json={"name": "A", "department_id": dept.id}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_class_refused_with_students(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_department, make_class, make_user
) -> None:
    dept = await make_department("CE")
    cls = await make_class("CE1", department=dept)
    student = await make_user(role="STUDENT", class_id=cls.id)

    response = await client.delete(f"/api/classes/{cls.id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot delete class. 1 students are still assigned to this class."

    student.class_id = None
    await db_session.commit()
    response = await client.delete(f"/api/classes/{cls.id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {
        "message": "Class deleted successfully",
        "deleted_class": {"id": cls.id, "name": "CE1"},
    }


@pytest.mark.asyncio
async def test_delete_class_drops_staff_links(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_department, make_class, make_user
) -> None:
    dept = await make_department("EE")
    staff = await make_user(role="STAFF", department_id=dept.id)
    cls = await make_class("EE1", department=dept, staff=staff)

    response = await client.delete(f"/api/classes/{cls.id}", headers=admin_headers)
    assert response.status_code == 200
    assert (await db_session.execute(select(StaffClass.id))).all() == []


@pytest.mark.asyncio
async def test_class_stats_and_assign_students(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_department, make_class, make_user
) -> None:
    dept = await make_department("AI")
    staff = await make_user(role="STAFF", name="Dr. Verma")
    cls = await make_class("AI1", department=dept, staff=staff)
    s1 = await make_user(role="STUDENT")
    s2 = await make_user(role="STUDENT")

    response = await client.post(f"/api/classes/{cls.id}/assign-students", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Student IDs are required"

    response = await client.post(
        f"/api/classes/{cls.id}/assign-students", json={"student_ids": [s1.id, s2.id]}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["assigned_count"] == 2

    await db_session.refresh(s1)
    assert (s1.class_id, s1.department_id) == (cls.id, dept.id)

    response = await client.get(f"/api/classes/{cls.id}/stats", headers=admin_headers)
    stats = response.json()
    assert stats["students_count"] == 2
    assert stats["incharge"]["name"] == "Dr. Verma"
    assert stats["total_members"] == 2

    response = await client.get("/api/classes", headers=admin_headers)
    assert response.json()[0]["student_count"] == 2
