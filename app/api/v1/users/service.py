import logging
from typing import Dict, List, Optional, Sequence

from fastapi import status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.auth.security import hash_password
from app.core.exceptions import ServiceError
from app.core.models import Department, SchoolClass, StaffClass
from app.core.pagination import clamp_page, page_payload
from app.core.schemas import ClassRef, DepartmentRef, UserRef

from app.api.v1.classes.service import student_counts
from app.api.v1.departments.service import count_classes, count_users

from .schemas import (
    AssignedClass,
    AssignedClassDetail,
    AssignedStudentsResponse,
    AvailableClass,
    AvailableClassesResponse,
    AvailableStaffRef,
    ClassWithCount,
    ProfileClass,
    ProfileDepartment,
    StaffAssignments,
    StaffAssignmentsResponse,
    StaffClassesResponse,
    StaffCreate,
    StaffListItem,
    StaffProfile,
    StaffResponse,
    StaffSummary,
    StaffUpdate,
    StudentBrief,
    StudentCreate,
    StudentListResponse,
    StudentProfile,
    StudentResponse,
    StudentUpdate,
    UserClassCreate,
    UserClassResponse,
    UserClassUpdate,
)

logger = logging.getLogger(__name__)

STUDENT_PAGE_SIZE = 25
STUDENT_PAGE_SIZE_MAX = 100
MIN_PASSWORD_LENGTH = 6


def _normalize_email(email: Optional[str]) -> Optional[str]:
    return email.strip().lower() if email else email


def _check_password(password: Optional[str]) -> Optional[str]:
    """Return a hash for a non-blank password, None when the password is left unchanged."""
    if not password or not password.strip():
        return None
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ServiceError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            status.HTTP_400_BAD_REQUEST,
        )
    return hash_password(password)


async def _departments_by_id(db: AsyncSession, ids) -> Dict[int, Department]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    result = await db.execute(select(Department).where(Department.id.in_(ids)))
    return {d.id: d for d in result.scalars().all()}


async def _classes_by_id(db: AsyncSession, ids) -> Dict[int, SchoolClass]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    result = await db.execute(select(SchoolClass).where(SchoolClass.id.in_(ids)))
    return {c.id: c for c in result.scalars().all()}


async def _users_by_id(db: AsyncSession, ids) -> Dict[int, User]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def _class_department(db: AsyncSession, class_id: Optional[int]) -> Optional[int]:
    if not class_id:
        return None
    cls = await db.get(SchoolClass, class_id)
    return cls.department_id if cls else None


def _dept_ref(departments: Dict[int, Department], department_id: Optional[int]) -> Optional[DepartmentRef]:
    d = departments.get(department_id)
    return DepartmentRef.model_validate(d) if d else None


def _class_ref(classes: Dict[int, SchoolClass], class_id: Optional[int]) -> Optional[ClassRef]:
    c = classes.get(class_id)
    return ClassRef.model_validate(c) if c else None


# ----- Students -----

async def _student_responses(db: AsyncSession, students: Sequence[User]) -> List[StudentResponse]:
    classes = await _classes_by_id(db, [s.class_id for s in students])
    departments = await _departments_by_id(db, [s.department_id for s in students])
    return [
        StudentResponse(
            id=s.id,
            name=s.name,
            email=s.email,
            roll_number=s.roll_number,
            parent_email=s.parent_email,
            class_id=s.class_id,
            department_id=s.department_id,
            class_=_class_ref(classes, s.class_id),
            department=_dept_ref(departments, s.department_id),
        )
        for s in students
    ]


async def list_students(
    db: AsyncSession,
    current_user: CurrentUser,
    page: int = 1,
    page_size: int = STUDENT_PAGE_SIZE,
    q: Optional[str] = None,
    department_id: Optional[int] = None,
    class_id: Optional[int] = None,
) -> StudentListResponse:
    """
    Paginated active students.

    Staff only see their own department; admins may filter by department_id.
    """
    page, page_size, offset = clamp_page(page, page_size, STUDENT_PAGE_SIZE, STUDENT_PAGE_SIZE_MAX)
    q = (q or "").strip()

    filters = [User.role == "STUDENT", User.is_active.is_(True)]
    if current_user.role == "STAFF" and current_user.department_id:
        filters.append(User.department_id == current_user.department_id)
    elif current_user.role == "SUPER_ADMIN" and department_id:
        filters.append(User.department_id == department_id)
    if class_id:
        filters.append(User.class_id == class_id)
    if q:
        pattern = f"%{q.lower()}%"
        filters.append(
            or_(
                func.lower(User.name).like(pattern),
                func.lower(User.roll_number).like(pattern),
                func.lower(User.email).like(pattern),
            )
        )

    count = (await db.execute(select(func.count(User.id)).where(*filters))).scalar_one()
    order = User.name if q else User.roll_number
    result = await db.execute(select(User).where(*filters).order_by(order).limit(page_size).offset(offset))
    rows = await _student_responses(db, result.scalars().all())
    return StudentListResponse(**page_payload(rows, count, page, page_size))


async def _email_or_roll_taken(
    db: AsyncSession, email: Optional[str], roll_number: Optional[str], exclude_id: Optional[int] = None
) -> bool:
    conditions = []
    if email:
        conditions.append(func.lower(User.email) == email)
    if roll_number:
        conditions.append(User.roll_number == roll_number)
    if not conditions:
        return False
    stmt = select(User.id).where(or_(*conditions))
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def create_student(db: AsyncSession, payload: StudentCreate) -> StudentResponse:
    if not all([payload.name, payload.email, payload.roll_number, payload.parent_email, payload.password]):
        raise ServiceError("All fields are required", status.HTTP_400_BAD_REQUEST)
    email = _normalize_email(payload.email)
    roll_number = payload.roll_number.strip()
    if await _email_or_roll_taken(db, email, roll_number):
        raise ServiceError("Email or roll number already exists", status.HTTP_400_BAD_REQUEST)

    department_id = payload.department_id
    if payload.class_id and not department_id:
        department_id = await _class_department(db, payload.class_id)

    student = User(
        name=payload.name.strip(),
        email=email,
        roll_number=roll_number,
        parent_email=_normalize_email(payload.parent_email),
        password_hash=hash_password(payload.password),
        role="STUDENT",
        class_id=payload.class_id or None,
        department_id=department_id or None,
    )
    try:
        db.add(student)
        await db.commit()
        await db.refresh(student)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Email or roll number already exists", status.HTTP_400_BAD_REQUEST)
    logger.info(f"Created student {student.id} ({student.roll_number})")
    return (await _student_responses(db, [student]))[0]


async def update_student(db: AsyncSession, student_id: int, payload: StudentUpdate) -> Optional[StudentResponse]:
    student = await db.get(User, student_id)
    if not student or student.role != "STUDENT":
        return None
    fields = payload.model_fields_set
    password_hash = _check_password(payload.password)

    email = _normalize_email(payload.email) or student.email
    roll_number = (payload.roll_number or "").strip() or student.roll_number
    if await _email_or_roll_taken(db, email, roll_number, exclude_id=student.id):
        raise ServiceError("Email or roll number already exists", status.HTTP_400_BAD_REQUEST)

    department_id = payload.department_id if "department_id" in fields else student.department_id
    class_id = payload.class_id if "class_id" in fields else student.class_id
    if "class_id" in fields and class_id and class_id != student.class_id:
        department_id = await _class_department(db, class_id) or department_id

    student.name = (payload.name or "").strip() or student.name
    student.email = email
    student.roll_number = roll_number
    student.parent_email = _normalize_email(payload.parent_email) or student.parent_email
    student.class_id = class_id
    student.department_id = department_id
    if password_hash:
        student.password_hash = password_hash
    try:
        await db.commit()
        await db.refresh(student)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Email or roll number already exists", status.HTTP_400_BAD_REQUEST)
    return (await _student_responses(db, [student]))[0]


async def deactivate_user(db: AsyncSession, user_id: int, role: str) -> bool:
    """Soft delete. Returns False when no user with that role exists."""
    user = await db.get(User, user_id)
    if not user or user.role != role:
        return False
    user.is_active = False
    await db.commit()
    logger.info(f"Deactivated {role} user {user_id}")
    return True


async def list_unassigned_students(db: AsyncSession) -> List[StudentBrief]:
    result = await db.execute(
        select(User)
        .where(User.role == "STUDENT", User.is_active.is_(True), User.class_id.is_(None))
        .order_by(User.roll_number)
    )
    return [StudentBrief.model_validate(u) for u in result.scalars().all()]


# ----- Staff -----

async def _managed_classes(db: AsyncSession, staff_ids: Sequence[int]) -> Dict[int, List[SchoolClass]]:
    """Classes whose legacy staff_id points at each staff member."""
    out: Dict[int, List[SchoolClass]] = {}
    if not staff_ids:
        return out
    result = await db.execute(
        select(SchoolClass).where(SchoolClass.staff_id.in_(staff_ids)).order_by(SchoolClass.id)
    )
    for cls in result.scalars().all():
        out.setdefault(cls.staff_id, []).append(cls)
    return out


async def _assigned_classes(db: AsyncSession, staff_ids: Sequence[int]) -> Dict[int, List[tuple]]:
    """(StaffClass, SchoolClass) pairs per staff member."""
    out: Dict[int, List[tuple]] = {}
    if not staff_ids:
        return out
    result = await db.execute(
        select(StaffClass, SchoolClass)
        .join(SchoolClass, SchoolClass.id == StaffClass.class_id)
        .where(StaffClass.staff_id.in_(staff_ids))
        .order_by(SchoolClass.name)
    )
    for link, cls in result.all():
        out.setdefault(link.staff_id, []).append((link, cls))
    return out


def merge_classes(managed: Sequence[SchoolClass], assigned: Sequence[SchoolClass]) -> List[SchoolClass]:
    """Legacy managed classes first, then assignments, without duplicates."""
    merged: List[SchoolClass] = []
    seen = set()
    for cls in list(managed) + list(assigned):
        if cls.id not in seen:
            seen.add(cls.id)
            merged.append(cls)
    return merged


async def list_staff(db: AsyncSession, department_id: Optional[int] = None) -> List[StaffListItem]:
    stmt = select(User).where(User.role == "STAFF", User.is_active.is_(True))
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    staff = (await db.execute(stmt.order_by(User.name))).scalars().all()

    ids = [s.id for s in staff]
    managed = await _managed_classes(db, ids)
    assigned = await _assigned_classes(db, ids)
    departments = await _departments_by_id(db, [s.department_id for s in staff])

    items = []
    for s in staff:
        legacy = managed.get(s.id, [])
        linked = [cls for _, cls in assigned.get(s.id, [])]
        items.append(
            StaffListItem(
                id=s.id,
                name=s.name,
                email=s.email,
                role=s.role,
                department_id=s.department_id,
                department=_dept_ref(departments, s.department_id),
                managed_class=ClassRef.model_validate(legacy[0]) if legacy else None,
                assigned_classes=[ClassRef.model_validate(c) for c in linked],
                managed_classes=[ClassRef.model_validate(c) for c in merge_classes(legacy, linked)],
                status="active" if s.last_login else "inactive",
                join_date=s.created_at,
                last_login=s.last_login,
            )
        )
    return items


async def _staff_response(db: AsyncSession, staff: User) -> StaffResponse:
    managed = (await _managed_classes(db, [staff.id])).get(staff.id, [])
    department = await db.get(Department, staff.department_id) if staff.department_id else None
    return StaffResponse(
        id=staff.id,
        name=staff.name,
        email=staff.email,
        department_id=staff.department_id,
        department=DepartmentRef.model_validate(department) if department else None,
        managed_class=ClassRef.model_validate(managed[0]) if managed else None,
    )


async def _assign_class_by_name(db: AsyncSession, staff: User, class_name: str, department_id: Optional[int]) -> None:
    result = await db.execute(select(SchoolClass).where(SchoolClass.name == class_name))
    cls = result.scalar_one_or_none()
    if cls:
        cls.staff_id = staff.id
    else:
        db.add(SchoolClass(name=class_name, staff_id=staff.id, department_id=department_id))


async def _email_taken(db: AsyncSession, email: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def create_staff(db: AsyncSession, payload: StaffCreate) -> StaffResponse:
    if not payload.name or not payload.email or not payload.password:
        raise ServiceError("All fields are required", status.HTTP_400_BAD_REQUEST)
    email = _normalize_email(payload.email)
    if await _email_taken(db, email):
        raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)

    department_id = payload.department_id
    if payload.class_id and not department_id:
        department_id = await _class_department(db, payload.class_id)

    staff = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="STAFF",
        department_id=department_id or None,
    )
    try:
        db.add(staff)
        await db.flush()
        class_name = (payload.class_name or "").strip()
        if class_name:
            await _assign_class_by_name(db, staff, class_name, department_id)
        if payload.class_id:
            cls = await db.get(SchoolClass, payload.class_id)
            if cls:
                cls.staff_id = staff.id
        await db.commit()
        await db.refresh(staff)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)
    logger.info(f"Created staff {staff.id} ({staff.email})")
    return await _staff_response(db, staff)


async def update_staff(db: AsyncSession, staff_id: int, payload: StaffUpdate) -> Optional[StaffResponse]:
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF":
        return None
    fields = payload.model_fields_set
    password_hash = _check_password(payload.password)

    email = _normalize_email(payload.email) or staff.email
    if email != staff.email and await _email_taken(db, email, exclude_id=staff.id):
        raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)

    department_id = payload.department_id if "department_id" in fields else staff.department_id
    if "class_id" in fields and payload.class_id:
        department_id = await _class_department(db, payload.class_id) or department_id

    staff.name = (payload.name or "").strip() or staff.name
    staff.email = email
    staff.department_id = department_id
    if password_hash:
        staff.password_hash = password_hash

    try:
        if "class_name" in fields:
            class_name = (payload.class_name or "").strip()
            if class_name:
                await _assign_class_by_name(db, staff, class_name, department_id)
            else:
                # Empty name unassigns the managed class
                await db.execute(
                    update(SchoolClass).where(SchoolClass.staff_id == staff.id).values(staff_id=None)
                )
        if "class_id" in fields:
            await db.execute(update(SchoolClass).where(SchoolClass.staff_id == staff.id).values(staff_id=None))
            if payload.class_id:
                cls = await db.get(SchoolClass, payload.class_id)
                if cls:
                    cls.staff_id = staff.id
        await db.commit()
        await db.refresh(staff)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)
    return await _staff_response(db, staff)


# ----- Classes (admin management) -----

async def _user_class_responses(db: AsyncSession, classes: Sequence[SchoolClass]) -> List[UserClassResponse]:
    staff = await _users_by_id(db, [c.staff_id for c in classes])
    departments = await _departments_by_id(db, [c.department_id for c in classes])
    counts = await student_counts(db, [c.id for c in classes])
    return [
        UserClassResponse(
            id=c.id,
            name=c.name,
            staff_id=c.staff_id,
            department_id=c.department_id,
            staff=UserRef.model_validate(staff[c.staff_id]) if c.staff_id in staff else None,
            department=_dept_ref(departments, c.department_id),
            student_count=counts.get(c.id, 0),
        )
        for c in classes
    ]


async def list_user_classes(
    db: AsyncSession, current_user: CurrentUser, department_id: Optional[int] = None
) -> List[UserClassResponse]:
    stmt = select(SchoolClass)
    if current_user.role == "STAFF" and current_user.department_id:
        stmt = stmt.where(SchoolClass.department_id == current_user.department_id)
    elif current_user.role == "SUPER_ADMIN" and department_id:
        stmt = stmt.where(SchoolClass.department_id == department_id)
    classes = (await db.execute(stmt.order_by(SchoolClass.name))).scalars().all()
    return await _user_class_responses(db, classes)


async def _validate_class_staff(db: AsyncSession, staff_id: Optional[int]) -> None:
    if not staff_id:
        return
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF" or not staff.is_active:
        raise ServiceError("Invalid staff member selected", status.HTTP_400_BAD_REQUEST)


async def _class_name_exists(
    db: AsyncSession, name: str, department_id: Optional[int], exclude_id: Optional[int] = None
) -> bool:
    stmt = select(SchoolClass.id).where(SchoolClass.name == name, SchoolClass.department_id == department_id)
    if exclude_id is not None:
        stmt = stmt.where(SchoolClass.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


CLASS_NAME_IN_DEPARTMENT = "Class name already exists in this department"


async def create_user_class(db: AsyncSession, payload: UserClassCreate) -> UserClassResponse:
    name = (payload.name or "").strip()
    if not name:
        raise ServiceError("Class name is required", status.HTTP_400_BAD_REQUEST)
    if not payload.department_id:
        raise ServiceError("Department is required", status.HTTP_400_BAD_REQUEST)
    if await _class_name_exists(db, name, payload.department_id):
        raise ServiceError(CLASS_NAME_IN_DEPARTMENT, status.HTTP_400_BAD_REQUEST)
    if not await db.get(Department, payload.department_id):
        raise ServiceError("Invalid department selected", status.HTTP_400_BAD_REQUEST)
    await _validate_class_staff(db, payload.staff_id)

    cls = SchoolClass(name=name, staff_id=payload.staff_id or None, department_id=payload.department_id)
    try:
        db.add(cls)
        await db.commit()
        await db.refresh(cls)
    except IntegrityError:
        # Class names are also unique across departments
        await db.rollback()
        raise ServiceError("Class name already exists", status.HTTP_400_BAD_REQUEST)
    return (await _user_class_responses(db, [cls]))[0]


async def update_user_class(db: AsyncSession, class_id: int, payload: UserClassUpdate) -> Optional[UserClassResponse]:
    cls = await db.get(SchoolClass, class_id)
    if not cls:
        return None
    fields = payload.model_fields_set
    name = (payload.name or "").strip()
    department_id = payload.department_id if "department_id" in fields else cls.department_id

    if name and name != cls.name and await _class_name_exists(db, name, department_id, exclude_id=cls.id):
        raise ServiceError(CLASS_NAME_IN_DEPARTMENT, status.HTTP_400_BAD_REQUEST)
    if "department_id" in fields and department_id != cls.department_id:
        if not department_id or not await db.get(Department, department_id):
            raise ServiceError("Invalid department selected", status.HTTP_400_BAD_REQUEST)
    if "staff_id" in fields:
        await _validate_class_staff(db, payload.staff_id)
        cls.staff_id = payload.staff_id

    cls.name = name or cls.name
    cls.department_id = department_id
    try:
        await db.commit()
        await db.refresh(cls)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Class name already exists", status.HTTP_400_BAD_REQUEST)
    return (await _user_class_responses(db, [cls]))[0]


async def delete_user_class(db: AsyncSession, class_id: int) -> bool:
    """Unassign the class's students, then delete it."""
    cls = await db.get(SchoolClass, class_id)
    if not cls:
        return False
    await db.execute(
        update(User).where(User.class_id == class_id, User.role == "STUDENT").values(class_id=None)
    )
    await db.execute(delete(StaffClass).where(StaffClass.class_id == class_id))
    await db.delete(cls)
    await db.commit()
    logger.info(f"Deleted class {class_id} and unassigned its students")
    return True


async def assign_students_to_class(
    db: AsyncSession, class_id: int, student_ids: List[int]
) -> Optional[AssignedStudentsResponse]:
    if not student_ids:
        raise ServiceError("Student IDs are required", status.HTTP_400_BAD_REQUEST)
    cls = await db.get(SchoolClass, class_id)
    if not cls:
        return None
    ids = set(student_ids)
    result = await db.execute(
        select(func.count(User.id)).where(
            User.id.in_(ids), User.role == "STUDENT", User.is_active.is_(True)
        )
    )
    if result.scalar_one() != len(ids):
        raise ServiceError("Some students not found or inactive", status.HTTP_400_BAD_REQUEST)

    await db.execute(update(User).where(User.id.in_(ids)).values(class_id=class_id))
    await db.commit()
    students = (await db.execute(select(User).where(User.id.in_(ids)).order_by(User.id))).scalars().all()
    return AssignedStudentsResponse(
        message="Students assigned successfully",
        students=[StudentBrief.model_validate(s) for s in students],
    )


# ----- Staff <-> class assignments -----

async def _active_staff(db: AsyncSession, staff_id: int) -> Optional[User]:
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF" or not staff.is_active:
        return None
    return staff


async def _staff_assignments(db: AsyncSession, staff: User) -> StaffAssignments:
    pairs = (await _assigned_classes(db, [staff.id])).get(staff.id, [])
    department = await db.get(Department, staff.department_id) if staff.department_id else None
    return StaffAssignments(
        id=staff.id,
        name=staff.name,
        email=staff.email,
        department=DepartmentRef.model_validate(department) if department else None,
        assigned_classes=[AssignedClass(id=c.id, name=c.name, assigned_at=link.assigned_at) for link, c in pairs],
    )


async def assign_classes_to_staff(
    db: AsyncSession, staff_id: int, class_ids: List[int], assigned_by: int
) -> StaffAssignmentsResponse:
    if not class_ids:
        raise ServiceError("Class IDs array is required", status.HTTP_400_BAD_REQUEST)
    staff = await _active_staff(db, staff_id)
    if not staff:
        raise ServiceError("Staff member not found", status.HTTP_404_NOT_FOUND)
    ids = set(class_ids)
    classes = await _classes_by_id(db, ids)
    if len(classes) != len(ids):
        raise ServiceError("Some classes not found", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(StaffClass.class_id).where(StaffClass.staff_id == staff_id, StaffClass.class_id.in_(ids))
    )
    already = set(existing.scalars().all())
    new_ids = [cid for cid in class_ids if cid not in already]
    # Keep input order, drop repeated ids
    new_ids = list(dict.fromkeys(new_ids))
    for cid in new_ids:
        db.add(StaffClass(staff_id=staff_id, class_id=cid, assigned_by=assigned_by))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Staff class assignment already exists", status.HTTP_400_BAD_REQUEST)
    logger.info(f"Assigned {len(new_ids)} classes to staff {staff_id}")
    return StaffAssignmentsResponse(
        message=f"{len(new_ids)} new class assignments created",
        staff=await _staff_assignments(db, staff),
    )


async def remove_classes_from_staff(db: AsyncSession, staff_id: int, class_ids: List[int]) -> StaffAssignmentsResponse:
    if not class_ids:
        raise ServiceError("Class IDs array is required", status.HTTP_400_BAD_REQUEST)
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF":
        raise ServiceError("Staff member not found", status.HTTP_404_NOT_FOUND)
    result = await db.execute(
        delete(StaffClass).where(StaffClass.staff_id == staff_id, StaffClass.class_id.in_(class_ids))
    )
    await db.commit()
    return StaffAssignmentsResponse(
        message=f"{result.rowcount} class assignments removed",
        staff=await _staff_assignments(db, staff),
    )


async def get_staff_classes(db: AsyncSession, staff_id: int) -> Optional[StaffClassesResponse]:
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF":
        return None
    pairs = (await _assigned_classes(db, [staff.id])).get(staff.id, [])
    assigners = await _users_by_id(db, [link.assigned_by for link, _ in pairs])
    departments = await _departments_by_id(
        db, [c.department_id for _, c in pairs] + [staff.department_id]
    )
    return StaffClassesResponse(
        staff=StaffSummary(
            id=staff.id,
            name=staff.name,
            email=staff.email,
            department=_dept_ref(departments, staff.department_id),
        ),
        assigned_classes=[
            AssignedClassDetail(
                id=c.id,
                name=c.name,
                assigned_at=link.assigned_at,
                assigned_by=UserRef.model_validate(assigners[link.assigned_by])
                if link.assigned_by in assigners
                else None,
                department=_dept_ref(departments, c.department_id),
            )
            for link, c in pairs
        ],
    )


async def get_available_classes(db: AsyncSession, staff_id: int) -> Optional[AvailableClassesResponse]:
    """Classes not yet linked to the staff member through an assignment."""
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF":
        return None
    assigned = select(StaffClass.class_id).where(StaffClass.staff_id == staff_id)
    result = await db.execute(
        select(SchoolClass).where(SchoolClass.id.not_in(assigned)).order_by(SchoolClass.name)
    )
    classes = result.scalars().all()
    teachers = await _users_by_id(db, [c.staff_id for c in classes])
    departments = await _departments_by_id(db, [c.department_id for c in classes] + [staff.department_id])
    return AvailableClassesResponse(
        staff=AvailableStaffRef(id=staff.id, department=_dept_ref(departments, staff.department_id)),
        available_classes=[
            AvailableClass(
                id=c.id,
                name=c.name,
                department_id=c.department_id,
                department=_dept_ref(departments, c.department_id),
                staff=UserRef.model_validate(teachers[c.staff_id]) if c.staff_id in teachers else None,
            )
            for c in classes
        ],
    )


# ----- Profiles -----

def _check_profile_access(current_user: CurrentUser, user_id: int, role: str) -> None:
    if current_user.role == "SUPER_ADMIN":
        return
    if current_user.role != role or current_user.id != user_id:
        raise ServiceError(
            "Access denied. You can only view your own profile.",
            status.HTTP_403_FORBIDDEN,
        )


async def _profile_department(db: AsyncSession, department_id: Optional[int]) -> Optional[ProfileDepartment]:
    if not department_id:
        return None
    department = await db.get(Department, department_id)
    if not department:
        return None
    head = await db.get(User, department.head_id) if department.head_id else None
    return ProfileDepartment(
        id=department.id,
        name=department.name,
        description=department.description,
        head=UserRef.model_validate(head) if head else None,
        student_count=await count_users(db, department.id, "STUDENT", is_active=True),
        staff_count=await count_users(db, department.id, "STAFF", is_active=True),
        class_count=await count_classes(db, department.id),
    )


async def get_student_profile(db: AsyncSession, current_user: CurrentUser, student_id: int) -> Optional[StudentProfile]:
    _check_profile_access(current_user, student_id, "STUDENT")
    student = await db.get(User, student_id)
    if not student or student.role != "STUDENT":
        return None

    profile_class = None
    if student.class_id:
        cls = await db.get(SchoolClass, student.class_id)
        if cls:
            teacher = await db.get(User, cls.staff_id) if cls.staff_id else None
            profile_class = ProfileClass(
                id=cls.id, name=cls.name, staff=UserRef.model_validate(teacher) if teacher else None
            )

    return StudentProfile(
        id=student.id,
        name=student.name,
        email=student.email,
        roll_number=student.roll_number,
        parent_email=student.parent_email,
        class_id=student.class_id,
        department_id=student.department_id,
        is_active=student.is_active,
        last_login=student.last_login,
        created_at=student.created_at,
        updated_at=student.updated_at,
        class_=profile_class,
        department=await _profile_department(db, student.department_id),
    )


async def get_staff_profile(db: AsyncSession, current_user: CurrentUser, staff_id: int) -> Optional[StaffProfile]:
    _check_profile_access(current_user, staff_id, "STAFF")
    staff = await db.get(User, staff_id)
    if not staff or staff.role != "STAFF":
        return None

    legacy = (await _managed_classes(db, [staff.id])).get(staff.id, [])
    linked = [c for _, c in (await _assigned_classes(db, [staff.id])).get(staff.id, [])]
    merged = merge_classes(legacy[:1], linked)
    counts = await student_counts(db, [c.id for c in merged])

    managed = [ClassWithCount(id=c.id, name=c.name, student_count=counts.get(c.id, 0)) for c in legacy[:1]]
    every = [ClassWithCount(id=c.id, name=c.name, student_count=counts.get(c.id, 0)) for c in merged]

    return StaffProfile(
        id=staff.id,
        name=staff.name,
        email=staff.email,
        role=staff.role,
        department_id=staff.department_id,
        is_active=staff.is_active,
        last_login=staff.last_login,
        created_at=staff.created_at,
        updated_at=staff.updated_at,
        managed_class=ClassRef.model_validate(legacy[0]) if legacy else None,
        department=await _profile_department(db, staff.department_id),
        managed_classes=managed or None,
        assigned_classes=every or None,
    )
