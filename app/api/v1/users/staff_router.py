from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse
from app.db.session import get_db

from .schemas import (
    AvailableClassesResponse,
    ClassIdsRequest,
    StaffAssignmentsResponse,
    StaffClassesResponse,
    StaffCreate,
    StaffListItem,
    StaffProfile,
    StaffResponse,
    StaffUpdate,
)
from . import service

router = APIRouter(prefix="/api/users/staff", tags=["staff"])


@router.get("", response_model=List[StaffListItem])
async def list_staff(
    department_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[StaffListItem]:
    return await service.list_staff(db, department_id=department_id)


@router.post("", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def create_staff(
    payload: StaffCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffResponse:
    try:
        return await service.create_staff(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{staff_id}", response_model=StaffResponse)
async def update_staff(
    staff_id: int,
    payload: StaffUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffResponse:
    try:
        staff = await service.update_staff(db, staff_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not staff:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff not found")
    return staff


@router.delete("/{staff_id}", response_model=MessageResponse)
async def delete_staff(
    staff_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    if not await service.deactivate_user(db, staff_id, "STAFF"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff not found")
    return MessageResponse(message="Staff deleted successfully")


@router.post("/{staff_id}/assign-classes", response_model=StaffAssignmentsResponse)
async def assign_classes(
    staff_id: int,
    payload: ClassIdsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffAssignmentsResponse:
    """Link classes to a staff member. Existing links are skipped."""
    try:
        return await service.assign_classes_to_staff(db, staff_id, payload.class_ids, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{staff_id}/remove-classes", response_model=StaffAssignmentsResponse)
async def remove_classes(
    staff_id: int,
    payload: ClassIdsRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffAssignmentsResponse:
    try:
        return await service.remove_classes_from_staff(db, staff_id, payload.class_ids)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{staff_id}/classes", response_model=StaffClassesResponse)
async def get_staff_classes(
    staff_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffClassesResponse:
    result = await service.get_staff_classes(db, staff_id)
    if not result:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return result


@router.get("/{staff_id}/available-classes", response_model=AvailableClassesResponse)
async def get_available_classes(
    staff_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> AvailableClassesResponse:
    result = await service.get_available_classes(db, staff_id)
    if not result:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return result


@router.get("/{staff_id}/profile", response_model=StaffProfile)
async def get_staff_profile(
    staff_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StaffProfile:
    """Admins may view any staff member; staff only themselves."""
    try:
        profile = await service.get_staff_profile(db, current_user, staff_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staff member not found")
    return profile
