from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff_or_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse
from app.db.session import get_db

from .schemas import (
    AssignedStudentsResponse,
    StudentIdsRequest,
    UserClassCreate,
    UserClassResponse,
    UserClassUpdate,
)
from . import service

router = APIRouter(prefix="/api/users/classes", tags=["user-classes"])


@router.get("", response_model=List[UserClassResponse])
async def list_classes(
    department_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[UserClassResponse]:
    return await service.list_user_classes(db, current_user, department_id=department_id)


@router.post("", response_model=UserClassResponse, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: UserClassCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> UserClassResponse:
    try:
        return await service.create_user_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{class_id}", response_model=UserClassResponse)
async def update_class(
    class_id: int,
    payload: UserClassUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> UserClassResponse:
    try:
        cls = await service.update_user_class(db, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not cls:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return cls


@router.delete("/{class_id}", response_model=MessageResponse)
async def delete_class(
    class_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    if not await service.delete_user_class(db, class_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return MessageResponse(message="Class deleted successfully")


@router.post("/{class_id}/assign-students", response_model=AssignedStudentsResponse)
async def assign_students(
    class_id: int,
    payload: StudentIdsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> AssignedStudentsResponse:
    try:
        result = await service.assign_students_to_class(db, class_id, payload.student_ids)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not result:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return result
