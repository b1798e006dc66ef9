import logging
from typing import Dict, List, Optional, Sequence

from fastapi import status
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.exceptions import ServiceError
from app.core.models import Department, SchoolClass, StaffClass
from app.core.schemas import UserRef

from .schemas import (
    ClassAssignResponse,
    ClassCreate,
    ClassDeleteResponse,
    ClassDepartment,
    ClassResponse,
    ClassStats,
    ClassUpdate,
    DeletedClass,
)

logger = logging.getLogger(__name__)

CLASS_NAME_TAKEN = "Class name already exists"


async def student_counts(db: AsyncSession, class_ids: Sequence[int], active_only: bool = True) -> Dict[int, int]:
    if not class_ids:
        return {}
    stmt = (
        select(User.class_id, func.count(User.id))
        .where(User.class_id.in_(class_ids), User.role == "STUDENT")
        .group_by(User.class_id)
    )
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    return dict((await db.execute(stmt)).all())


async def to_responses(db: AsyncSession, classes: Sequence[SchoolClass]) -> List[ClassResponse]:
    """Attach department, class teacher and active student count to each class."""
    dept_ids = {c.department_id for c in classes if c.department_id}
    staff_ids = {c.staff_id for c in classes if c.staff_id}
    departments = {}
    if dept_ids:
        result = await db.execute(select(Department).where(Department.id.in_(dept_ids)))
        departments = {d.id: d for d in result.scalars().all()}
    staff = {}
    if staff_ids:
        result = await db.execute(select(User).where(User.id.in_(staff_ids)))
        staff = {u.id: u for u in result.scalars().all()}
    counts = await student_counts(db, [c.id for c in classes])

    return [
        ClassResponse(
            id=c.id,
            name=c.name,
            staff_id=c.staff_id,
            department_id=c.department_id,
            created_at=c.created_at,
            updated_at=c.updated_at,
            department=ClassDepartment.model_validate(departments[c.department_id])
            if c.department_id in departments
            else None,
            staff=UserRef.model_validate(staff[c.staff_id]) if c.staff_id in staff else None,
            student_count=counts.get(c.id, 0),
        )
        for c in classes
    ]


async def class_response(db: AsyncSession, cls: SchoolClass) -> ClassResponse:
    return (await to_responses(db, [cls]))[0]


async def name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(SchoolClass.id).where(func.lower(SchoolClass.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(SchoolClass.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def list_classes(db: AsyncSession) -> List[ClassResponse]:
    result = await db.execute(select(SchoolClass).order_by(SchoolClass.created_at.desc(), SchoolClass.id.desc()))
    return await to_responses(db, result.scalars().all())


async def list_classes_by_department(db: AsyncSession, department_id: int) -> List[ClassResponse]:
    result = await db.execute(
        select(SchoolClass).where(SchoolClass.department_id == department_id).order_by(SchoolClass.name)
    )
    return await to_responses(db, result.scalars().all())


async def get_class(db: AsyncSession, class_id: int) -> Optional[ClassResponse]:
    cls = await db.get(SchoolClass, class_id)
    return await class_response(db, cls) if cls else None


async def _validate_class_payload(
    db: AsyncSession,
    name: Optional[str],
    department_id: Optional[int],
    staff_id: Optional[int],
    exclude_id: Optional[int] = None,
) -> str:
    name = (name or "").strip()
    if not name or not department_id:
        raise ServiceError("Name and department are required", status.HTTP_400_BAD_REQUEST)
    if not await db.get(Department, department_id):
        raise ServiceError("Department not found", status.HTTP_404_NOT_FOUND)
    if staff_id:
        staff = await db.get(User, staff_id)
        if not staff or staff.role != "STAFF":
            raise ServiceError("Staff member not found", status.HTTP_404_NOT_FOUND)
    if await name_taken(db, name, exclude_id=exclude_id):
        raise ServiceError(CLASS_NAME_TAKEN, status.HTTP_400_BAD_REQUEST)
    return name


async def create_class(db: AsyncSession, payload: ClassCreate) -> ClassResponse:
    name = await _validate_class_payload(db, payload.name, payload.department_id, payload.staff_id)
    try:
        obj = SchoolClass(name=name, department_id=payload.department_id, staff_id=payload.staff_id or None)
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(CLASS_NAME_TAKEN, status.HTTP_400_BAD_REQUEST)
    logger.info(f"Created class {obj.id} ({obj.name}) in department {obj.department_id}")
    return await class_response(db, obj)


async def update_class(db: AsyncSession, class_id: int, payload: ClassUpdate) -> Optional[ClassResponse]:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return None
    name = await _validate_class_payload(
        db, payload.name, payload.department_id, payload.staff_id, exclude_id=class_id
    )
    obj.name = name
    obj.department_id = payload.department_id
    obj.staff_id = payload.staff_id or None
    try:
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(CLASS_NAME_TAKEN, status.HTTP_400_BAD_REQUEST)
    return await class_response(db, obj)


async def _count_members(db: AsyncSession, class_id: int, role: str) -> int:
    stmt = select(func.count(User.id)).where(User.class_id == class_id, User.role == role)
    return (await db.execute(stmt)).scalar_one()


async def delete_class(db: AsyncSession, class_id: int) -> Optional[ClassDeleteResponse]:
    """Hard delete, refused while students or staff still point at the class."""
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return None
    students = await _count_members(db, class_id, "STUDENT")
    if students > 0:
        raise ServiceError(
            f"Cannot delete class. {students} students are still assigned to this class.",
            status.HTTP_400_BAD_REQUEST,
        )
    staff = await _count_members(db, class_id, "STAFF")
    if staff > 0:
        raise ServiceError(
            f"Cannot delete class. {staff} staff members are still assigned to this class.",
            status.HTTP_400_BAD_REQUEST,
        )
    deleted = DeletedClass(id=obj.id, name=obj.name)
    await db.execute(delete(StaffClass).where(StaffClass.class_id == class_id))
    await db.delete(obj)
    await db.commit()
    logger.info(f"Deleted class {class_id}")
    return ClassDeleteResponse(message="Class deleted successfully", deleted_class=deleted)


async def get_class_stats(db: AsyncSession, class_id: int) -> Optional[ClassStats]:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return None
    students = await _count_members(db, class_id, "STUDENT")
    staff = await _count_members(db, class_id, "STAFF")
    incharge = await db.get(User, obj.staff_id) if obj.staff_id else None
    return ClassStats(
        class_id=obj.id,
        class_name=obj.name,
        students_count=students,
        staff_count=staff,
        incharge=UserRef.model_validate(incharge) if incharge else None,
        total_members=students + staff,
    )


async def assign_students(db: AsyncSession, class_id: int, student_ids: List[int]) -> Optional[ClassAssignResponse]:
    """Move students into the class; their department follows the class."""
    if not student_ids:
        raise ServiceError("Student IDs are required", status.HTTP_400_BAD_REQUEST)
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return None
    await db.execute(
        update(User)
        .where(User.id.in_(student_ids), User.role == "STUDENT")
        .values(class_id=class_id, department_id=obj.department_id)
    )
    await db.commit()
    return ClassAssignResponse(
        message="Students assigned successfully",
        assigned_count=len(student_ids),
        class_id=class_id,
    )
