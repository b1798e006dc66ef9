import logging
from typing import Dict, List, Optional

from fastapi import status
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.exceptions import ServiceError
from app.core.models import Department, SchoolClass
from app.core.schemas import DepartmentRef, UserRef

from .schemas import (
    AvailableStaff,
    DepartmentClassItem,
    DepartmentCreate,
    DepartmentDetail,
    DepartmentListItem,
    DepartmentResponse,
    DepartmentStats,
    DepartmentUpdate,
    UnassignedStudent,
)

logger = logging.getLogger(__name__)


def _department_fields(d: Department) -> dict:
    return dict(
        id=d.id,
        name=d.name,
        description=d.description,
        head_id=d.head_id,
        is_active=d.is_active,
        created_at=d.created_at,
        updated_at=d.updated_at,
    )


async def _users_by_id(db: AsyncSession, ids) -> Dict[int, User]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def _validate_head(db: AsyncSession, head_id: Optional[int]) -> None:
    if not head_id:
        return
    head = await db.get(User, head_id)
    if not head or head.role != "STAFF":
        raise ServiceError("Invalid head user or user is not staff", status.HTTP_400_BAD_REQUEST)


async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Department.id).where(Department.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Department.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def count_users(db: AsyncSession, department_id: int, role: str, is_active: Optional[bool] = None) -> int:
    stmt = select(func.count(User.id)).where(User.department_id == department_id, User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    return (await db.execute(stmt)).scalar_one()


async def count_classes(db: AsyncSession, department_id: int) -> int:
    stmt = select(func.count(SchoolClass.id)).where(SchoolClass.department_id == department_id)
    return (await db.execute(stmt)).scalar_one()


async def list_departments(db: AsyncSession) -> List[DepartmentListItem]:
    result = await db.execute(select(Department).order_by(Department.name))
    departments = result.scalars().all()

    student_counts = dict(
        (await db.execute(
            select(User.department_id, func.count(User.id))
            .where(User.role == "STUDENT", User.department_id.is_not(None))
            .group_by(User.department_id)
        )).all()
    )
    class_counts = dict(
        (await db.execute(
            select(SchoolClass.department_id, func.count(SchoolClass.id))
            .where(SchoolClass.department_id.is_not(None))
            .group_by(SchoolClass.department_id)
        )).all()
    )
    heads = await _users_by_id(db, [d.head_id for d in departments])

    return [
        DepartmentListItem(
            **_department_fields(d),
            head=UserRef.model_validate(heads[d.head_id]) if d.head_id in heads else None,
            student_count=student_counts.get(d.id, 0),
            class_count=class_counts.get(d.id, 0),
        )
        for d in departments
    ]


async def get_department(db: AsyncSession, department_id: int) -> Optional[DepartmentDetail]:
    dept = await db.get(Department, department_id)
    if not dept:
        return None

    classes = (
        await db.execute(
            select(SchoolClass).where(SchoolClass.department_id == department_id).order_by(SchoolClass.name)
        )
    ).scalars().all()
    users = await _users_by_id(db, [dept.head_id] + [c.staff_id for c in classes])

    return DepartmentDetail(
        **_department_fields(dept),
        head=UserRef.model_validate(users[dept.head_id]) if dept.head_id in users else None,
        classes=[
            DepartmentClassItem(
                id=c.id,
                name=c.name,
                staff=UserRef.model_validate(users[c.staff_id]) if c.staff_id in users else None,
            )
            for c in classes
        ],
        student_count=await count_users(db, department_id, "STUDENT"),
        staff_count=await count_users(db, department_id, "STAFF"),
        class_count=len(classes),
    )


async def create_department(db: AsyncSession, payload: DepartmentCreate) -> DepartmentResponse:
    name = (payload.name or "").strip()
    if not name:
        raise ServiceError("Department name is required", status.HTTP_400_BAD_REQUEST)
    if await _name_taken(db, name):
        raise ServiceError("Department name already exists", status.HTTP_400_BAD_REQUEST)
    await _validate_head(db, payload.head_id)

    try:
        obj = Department(
            name=name,
            description=payload.description,
            head_id=payload.head_id or None,
            is_active=True,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Department name already exists", status.HTTP_400_BAD_REQUEST)
    logger.info(f"Created department {obj.id} ({obj.name})")
    return DepartmentResponse.model_validate(obj)


async def update_department(
    db: AsyncSession,
    department_id: int,
    payload: DepartmentUpdate,
) -> Optional[DepartmentResponse]:
    obj = await db.get(Department, department_id)
    if not obj:
        return None

    name = payload.name.strip() if payload.name else None
    if name and name != obj.name and await _name_taken(db, name, exclude_id=department_id):
        raise ServiceError("Department name already exists", status.HTTP_400_BAD_REQUEST)
    await _validate_head(db, payload.head_id)

    if name:
        obj.name = name
    fields = payload.model_fields_set
    if "description" in fields:
        obj.description = payload.description
    if "head_id" in fields:
        obj.head_id = payload.head_id
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    try:
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Department name already exists", status.HTTP_400_BAD_REQUEST)
    return DepartmentResponse.model_validate(obj)


async def delete_department(db: AsyncSession, department_id: int) -> bool:
    """Hard delete. Blocked while the department still owns classes or users."""
    obj = await db.get(Department, department_id)
    if not obj:
        return False
    if await count_classes(db, department_id) > 0:
        raise ServiceError(
            "Cannot delete department with existing classes. Please move or delete classes first.",
            status.HTTP_400_BAD_REQUEST,
        )
    user_count = (
        await db.execute(select(func.count(User.id)).where(User.department_id == department_id))
    ).scalar_one()
    if user_count > 0:
        raise ServiceError(
            "Cannot delete department with existing users. Please move users to another department first.",
            status.HTTP_400_BAD_REQUEST,
        )
    await db.delete(obj)
    await db.commit()
    logger.info(f"Deleted department {department_id}")
    return True


async def get_department_stats(db: AsyncSession, department_id: int) -> Optional[DepartmentStats]:
    if not await db.get(Department, department_id):
        return None
    return DepartmentStats(
        student_count=await count_users(db, department_id, "STUDENT"),
        staff_count=await count_users(db, department_id, "STAFF"),
        class_count=await count_classes(db, department_id),
        active_students=await count_users(db, department_id, "STUDENT", is_active=True),
        inactive_students=await count_users(db, department_id, "STUDENT", is_active=False),
    )


async def assign_staff(db: AsyncSession, department_id: int, staff_ids: List[int]) -> bool:
    if not await db.get(Department, department_id):
        return False
    await db.execute(
        update(User)
        .where(User.id.in_(staff_ids), User.role == "STAFF")
        .values(department_id=department_id)
    )
    await db.commit()
    return True


async def assign_students_to_class(
    db: AsyncSession,
    department_id: int,
    class_id: int,
    student_ids: List[int],
) -> bool:
    dept = await db.get(Department, department_id)
    cls = await db.get(SchoolClass, class_id)
    if not dept or not cls:
        return False
    await db.execute(
        update(User)
        .where(User.id.in_(student_ids), User.role == "STUDENT")
        .values(department_id=department_id, class_id=class_id)
    )
    await db.commit()
    return True


async def list_unassigned_staff(db: AsyncSession) -> List[UserRef]:
    result = await db.execute(
        select(User).where(User.role == "STAFF", User.department_id.is_(None)).order_by(User.name)
    )
    return [UserRef.model_validate(u) for u in result.scalars().all()]


async def list_unassigned_students(db: AsyncSession) -> List[UnassignedStudent]:
    result = await db.execute(
        select(User)
        .where(
            User.role == "STUDENT",
            or_(User.department_id.is_(None), User.class_id.is_(None)),
        )
        .order_by(User.name)
    )
    return [UnassignedStudent.model_validate(u) for u in result.scalars().all()]


async def list_available_staff(db: AsyncSession) -> List[AvailableStaff]:
    result = await db.execute(
        select(User, Department)
        .outerjoin(Department, Department.id == User.department_id)
        .where(User.role == "STAFF", User.is_active.is_(True))
        .order_by(User.name)
    )
    return [
        AvailableStaff(
            id=u.id,
            name=u.name,
            email=u.email,
            department=DepartmentRef.model_validate(d) if d else None,
        )
        for u, d in result.all()
    ]
