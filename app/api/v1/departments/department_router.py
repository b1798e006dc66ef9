from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff_or_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse, UserRef
from app.db.session import get_db

from .schemas import (
    AssignStaffRequest,
    AssignStudentsRequest,
    AvailableStaff,
    DepartmentCreate,
    DepartmentDetail,
    DepartmentListItem,
    DepartmentResponse,
    DepartmentStats,
    DepartmentUpdate,
    UnassignedStudent,
)
from . import service

router = APIRouter(prefix="/api/departments", tags=["departments"])


@router.get("", response_model=List[DepartmentListItem])
async def list_departments(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[DepartmentListItem]:
    return await service.list_departments(db)


@router.get("/unassigned-staff", response_model=List[UserRef])
async def unassigned_staff(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[UserRef]:
    return await service.list_unassigned_staff(db)


@router.get("/unassigned-students", response_model=List[UnassignedStudent])
async def unassigned_students(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[UnassignedStudent]:
    return await service.list_unassigned_students(db)


@router.get("/available-staff", response_model=List[AvailableStaff])
async def available_staff(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[AvailableStaff]:
    """Active staff for the department-head picker."""
    return await service.list_available_staff(db)


@router.post(
    "",
    response_model=DepartmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_department(
    payload: DepartmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> DepartmentResponse:
    try:
        return await service.create_department(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{department_id}", response_model=DepartmentDetail)
async def get_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> DepartmentDetail:
    dept = await service.get_department(db, department_id)
    if not dept:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return dept


@router.put("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: int,
    payload: DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> DepartmentResponse:
    try:
        dept = await service.update_department(db, department_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not dept:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return dept


@router.delete("/{department_id}", response_model=MessageResponse)
async def delete_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    try:
        deleted = await service.delete_department(db, department_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return MessageResponse(message="Department deleted successfully")


@router.get("/{department_id}/stats", response_model=DepartmentStats)
async def department_stats(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> DepartmentStats:
    stats = await service.get_department_stats(db, department_id)
    if not stats:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return stats


@router.post("/{department_id}/assign-staff", response_model=MessageResponse)
async def assign_staff(
    department_id: int,
    payload: AssignStaffRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    if not await service.assign_staff(db, department_id, payload.staff_ids):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return MessageResponse(message="Staff assigned successfully")


@router.post(
    "/{department_id}/classes/{class_id}/assign-students",
    response_model=MessageResponse,
)
async def assign_students(
    department_id: int,
    class_id: int,
    payload: AssignStudentsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    assigned = await service.assign_students_to_class(db, department_id, class_id, payload.student_ids)
    if not assigned:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department or class not found")
    return MessageResponse(message="Students assigned successfully")
