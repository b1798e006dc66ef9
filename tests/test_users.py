import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import SchoolClass, StaffClass


# ----- Students -----

@pytest.mark.asyncio
async def test_create_student_takes_department_from_class(
    client: AsyncClient, admin_headers, make_department, make_class
) -> None:
    dept = await make_department("CSE")
    cls = await make_class("BCA First Year", department=dept)

    response = await client.post(
        "/api/users/students",
        json={
            "name": "Asha Kumar",
            "email": "Asha.Kumar@Student.com",
            "roll_number": "BCA001",
            "parent_email": "parent@example.com",
            "password": "Student@123",
            "class_id": cls.id,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "asha.kumar@student.com"
    assert data["department_id"] == dept.id
    assert data["class"] == {"id": cls.id, "name": "BCA First Year"}


@pytest.mark.asyncio
async def test_create_student_validation(client: AsyncClient, admin_headers, make_user) -> None:
    await make_user(role="STUDENT", email="taken@student.com", roll_number="R100")

    response = await client.post("/api/users/students", json={"name": "A"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "All fields are required"

    payload = {
        "name": "B",
        "email": "new@student.com",
        "roll_number": "R100",
        "parent_email": "p@example.com",
        "password": "Student@123",
    }
    response = await client.post("/api/users/students", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email or roll number already exists"


@pytest.mark.asyncio
async def test_list_students_paginates_and_scopes_staff(
    client: AsyncClient, admin_headers, make_department, make_user, headers_for
) -> None:
    cse = await make_department("CSE")
    it = await make_department("IT")
    for _ in range(3):
        await make_user(role="STUDENT", department_id=cse.id)
    await make_user(role="STUDENT", department_id=it.id, name="Ravi Shah")
    await make_user(role="STUDENT", department_id=cse.id, is_active=False)
    staff = await make_user(role="STAFF", department_id=it.id)

    response = await client.get("/api/users/students", params={"page_size": 2}, headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 4
    assert data["total_pages"] == 2
    assert data["has_next_page"] is True
    assert len(data["rows"]) == 2

    response = await client.get("/api/users/students", params={"department_id": cse.id}, headers=admin_headers)
    assert response.json()["count"] == 3

    response = await client.get("/api/users/students", headers=headers_for(staff))
    assert [s["name"] for s in response.json()["rows"]] == ["Ravi Shah"]

    response = await client.get("/api/users/students", params={"q": "ravi"}, headers=admin_headers)
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_students_list_forbidden_for_students(client: AsyncClient, make_user, headers_for) -> None:
    student = await make_user(role="STUDENT")
    response = await client.get("/api/users/students", headers=headers_for(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_and_delete_student(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_user
) -> None:
    student = await make_user(role="STUDENT", name="Old Name")
    await make_user(role="STUDENT", email="other@student.com")

    response = await client.put(
        f"/api/users/students/{student.id}", json={"email": "other@student.com"}, headers=admin_headers
    )
    assert response.status_code == 400

    response = await client.put(
        f"/api/users/students/{student.id}", json={"password": "abc"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Password must be at least")

    response = await client.put(
        f"/api/users/students/{student.id}", json={"name": "New Name", "password": ""}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["name"] == "New Name"

    response = await client.delete(f"/api/users/students/{student.id}", headers=admin_headers)
    assert response.json() == {"message": "Student deleted successfully"}
    await db_session.refresh(student)
    assert student.is_active is False

    # Deleting a staff id through the students endpoint is a 404
    staff = await make_user(role="STAFF")
    response = await client.delete(f"/api/users/students/{staff.id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unassigned_students(client: AsyncClient, admin_headers, make_user, make_class) -> None:
    cls = await make_class("MCA1")
    loose = await make_user(role="STUDENT")
    await make_user(role="STUDENT", class_id=cls.id)

    response = await client.get("/api/users/students/unassigned", headers=admin_headers)
    assert [s["id"] for s in response.json()] == [loose.id]


@pytest.mark.asyncio
async def test_student_profile_access(
    client: AsyncClient, admin_headers, make_department, make_class, make_user, headers_for
) -> None:
    dept = await make_department("Physics")
    teacher = await make_user(role="STAFF", name="Dr. Iyer", department_id=dept.id)
    cls = await make_class("BSc Physics", department=dept, staff=teacher)
    student = await make_user(role="STUDENT", class_id=cls.id, department_id=dept.id)
    classmate = await make_user(role="STUDENT")

    response = await client.get(f"/api/users/students/{student.id}/profile", headers=headers_for(student))
    assert response.status_code == 200
    profile = response.json()
    assert profile["class"]["staff"]["name"] == "Dr. Iyer"
    assert profile["department"]["student_count"] == 1
    assert profile["department"]["staff_count"] == 1

    response = await client.get(f"/api/users/students/{student.id}/profile", headers=headers_for(classmate))
    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied. You can only view your own profile."

    response = await client.get(f"/api/users/students/{teacher.id}/profile", headers=admin_headers)
    assert response.status_code == 404


# ----- Staff -----

@pytest.mark.asyncio
async def test_create_staff_with_class_name(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_department, make_user
) -> None:
    dept = await make_department("CSE")
    await make_user(role="STAFF", email="taken@college.com")

    response = await client.post(
        "/api/users/staff", json={"name": "X", "email": "taken@college.com", "password": "Staff@123"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already exists"

    response = await client.post(
        "/api/users/staff",
        json={
            "name": "Prof. Nair",
            "email": "nair@college.com",
            "password": "Staff@123",
            "department_id": dept.id,
            "class_name": "BCA Second Year",
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["department"]["name"] == "CSE"
    assert data["managed_class"]["name"] == "BCA Second Year"

    cls = (await db_session.execute(select(SchoolClass))).scalar_one()
    assert (cls.staff_id, cls.department_id) == (data["id"], dept.id)


@pytest.mark.asyncio
async def test_list_staff_merges_managed_and_assigned(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_user, make_class
) -> None:
    staff = await make_user(role="STAFF", name="Dr. Sen")
    managed = await make_class("A1", staff=staff)
    other = await make_class("B1")
    db_session.add(StaffClass(staff_id=staff.id, class_id=other.id))
    await db_session.commit()

    response = await client.get("/api/users/staff", headers=admin_headers)
    assert response.status_code == 200
    [item] = response.json()
    assert item["managed_class"]["id"] == managed.id
    assert [c["id"] for c in item["managed_classes"]] == [managed.id, other.id]
    assert item["status"] == "inactive"


@pytest.mark.asyncio
async def test_update_staff_clears_managed_class(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_user, make_class
) -> None:
    staff = await make_user(role="STAFF")
    cls = await make_class("C1", staff=staff)

    response = await client.put(f"/api/users/staff/{staff.id}", json={"class_name": ""}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["managed_class"] is None
    await db_session.refresh(cls)
    assert cls.staff_id is None

    response = await client.put("/api/users/staff/9999", json={"name": "X"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_staff_is_soft(client: AsyncClient, db_session: AsyncSession, admin_headers, make_user) -> None:
    staff = await make_user(role="STAFF")
    response = await client.delete(f"/api/users/staff/{staff.id}", headers=admin_headers)
    assert response.json() == {"message": "Staff deleted successfully"}
    await db_session.refresh(staff)
    assert staff.is_active is False


@pytest.mark.asyncio
async def test_assign_and_remove_staff_classes(
    client: AsyncClient, admin, admin_headers, make_department, make_user, make_class
) -> None:
    dept = await make_department("ECE")
    staff = await make_user(role="STAFF", department_id=dept.id)
    c1 = await make_class("ECE1", department=dept)
    c2 = await make_class("ECE2", department=dept)

    url = f"/api/users/staff/{staff.id}/assign-classes"
    response = await client.post(url, json={"class_ids": []}, headers=admin_headers)
    assert response.json()["detail"] == "Class IDs array is required"

    response = await client.post(url, json={"class_ids": [c1.id, 9999]}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Some classes not found"

    response = await client.post(url, json={"class_ids": [c1.id]}, headers=admin_headers)
    assert response.json()["message"] == "1 new class assignments created"

    response = await client.post(url, json={"class_ids": [c1.id, c2.id]}, headers=admin_headers)
    data = response.json()
    assert data["message"] == "1 new class assignments created"
    assert {c["id"] for c in data["staff"]["assigned_classes"]} == {c1.id, c2.id}

    response = await client.get(f"/api/users/staff/{staff.id}/classes", headers=admin_headers)
    detail = response.json()
    assert detail["staff"]["department"]["name"] == "ECE"
    assert detail["assigned_classes"][0]["assigned_by"]["id"] == admin.id

    response = await client.get(f"/api/users/staff/{staff.id}/available-classes", headers=admin_headers)
    assert response.json()["available_classes"] == []

    response = await client.request(
        "DELETE", f"/api/users/staff/{staff.id}/remove-classes", json={"class_ids": [c1.id]}, headers=admin_headers
    )
    assert response.json()["message"] == "1 class assignments removed"

    response = await client.get(f"/api/users/staff/{staff.id}/available-classes", headers=admin_headers)
    assert [c["id"] for c in response.json()["available_classes"]] == [c1.id]

    response = await client.post(
        "/api/users/staff/9999/assign-classes", json={"class_ids": [c1.id]}, headers=admin_headers
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Staff member not found"


@pytest.mark.asyncio
async def test_staff_profile_is_own_only(client: AsyncClient, make_user, make_class, headers_for) -> None:
    staff = await make_user(role="STAFF")
    colleague = await make_user(role="STAFF")
    await make_class("D1", staff=staff)

    response = await client.get(f"/api/users/staff/{staff.id}/profile", headers=headers_for(staff))
    assert response.status_code == 200
    assert response.json()["managed_class"]["name"] == "D1"

    response = await client.get(f"/api/users/staff/{staff.id}/profile", headers=headers_for(colleague))
    assert response.status_code == 403


# ----- Class management -----

@pytest.mark.asyncio
async def test_user_class_create_validation(
    client: AsyncClient, admin_headers, make_department, make_class, make_user
) -> None:
    dept = await make_department("Civil")
    await make_class("CE1", department=dept)
    student = await make_user(role="STUDENT")

    response = await client.post("/api/users/classes", json={"department_id": dept.id}, headers=admin_headers)
    assert response.json()["detail"] == "Class name is required"

    response = await client.post("/api/users/classes", json={"name": "CE2"}, headers=admin_headers)
    assert response.json()["detail"] == "Department is required"

    response = await client.post(
        "/api/users/classes", json={"name": "CE1", "department_id": dept.id}, headers=admin_headers
    )
    assert response.json()["detail"] == "Class name already exists in this department"

    response = await client.post("/api/users/classes", json={"name": "CE2", "department_id": 999}, headers=admin_headers)
    assert response.json()["detail"] == "Invalid department selected"

    response = await client.post(
        "/api/users/classes",
        json={"name": "CE2", "department_id": dept.id, "staff_id": student.id},
        headers=admin_headers,
    )
    assert response.json()["detail"] == "Invalid staff member selected"

    response = await client.post(
        "/api/users/classes", json={"name": "CE2", "department_id": dept.id}, headers=admin_headers
    )
    assert response.status_code == 201
    assert response.json()["department"]["name"] == "Civil"


@pytest.mark.asyncio
async def test_user_class_delete_unassigns_students(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_class, make_user
) -> None:
    cls = await make_class("ME1")
    student = await make_user(role="STUDENT", class_id=cls.id)

    response = await client.delete(f"/api/users/classes/{cls.id}", headers=admin_headers)
    assert response.json() == {"message": "Class deleted successfully"}
    await db_session.refresh(student)
    assert student.class_id is None

    response = await client.delete(f"/api/users/classes/{cls.id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_user_class_delete_drops_staff_links(
    client: AsyncClient, db_session: AsyncSession, admin_headers, make_class, make_user
) -> None:
    staff = await make_user(role="STAFF")
    cls = await make_class("ME2", staff=staff)
    other = await make_class("ME3", staff=staff)

    response = await client.delete(f"/api/users/classes/{cls.id}", headers=admin_headers)
    assert response.status_code == 200
    rows = (await db_session.execute(select(StaffClass.staff_id, StaffClass.class_id))).all()
    assert [tuple(r) for r in rows] == [(staff.id, other.id)]


@pytest.mark.asyncio
async def test_user_class_assign_students(
    client: AsyncClient, admin_headers, make_class, make_user, make_department, headers_for
) -> None:
    dept = await make_department("Maths")
    cls = await make_class("MSc Maths", department=dept)
    s1 = await make_user(role="STUDENT")
    gone = await make_user(role="STUDENT", is_active=False)
    staff = await make_user(role="STAFF", department_id=dept.id)

    url = f"/api/users/classes/{cls.id}/assign-students"
    response = await client.post(url, json={"student_ids": [s1.id, gone.id]}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Some students not found or inactive"

    response = await client.post(url, json={"student_ids": [s1.id]}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["students"][0]["class_id"] == cls.id

    # Staff see the classes of their own department with counts
    response = await client.get("/api/users/classes", headers=headers_for(staff))
    assert [(c["name"], c["student_count"]) for c in response.json()] == [("MSc Maths", 1)]

