from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin, require_staff_or_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse
from app.db.session import get_db

from .schemas import (
    StudentBrief,
    StudentCreate,
    StudentListResponse,
    StudentProfile,
    StudentResponse,
    StudentUpdate,
)
from . import service

router = APIRouter(prefix="/api/users/students", tags=["students"])


@router.get("", response_model=StudentListResponse)
async def list_students(
    page: int = Query(1),
    page_size: int = Query(service.STUDENT_PAGE_SIZE),
    q: Optional[str] = Query(None, description="Search name, roll number or email"),
    department_id: Optional[int] = Query(None),
    class_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> StudentListResponse:
    """Active students, paginated. Staff are limited to their own department."""
    return await service.list_students(
        db,
        current_user,
        page=page,
        page_size=page_size,
        q=q,
        department_id=department_id,
        class_id=class_id,
    )


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StudentResponse:
    try:
        return await service.create_student(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/unassigned", response_model=List[StudentBrief])
async def list_unassigned_students(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[StudentBrief]:
    return await service.list_unassigned_students(db)


@router.put("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: int,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StudentResponse:
    try:
        student = await service.update_student(db, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not student:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return student


@router.delete("/{student_id}", response_model=MessageResponse)
async def delete_student(
    student_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    if not await service.deactivate_user(db, student_id, "STUDENT"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return MessageResponse(message="Student deleted successfully")


@router.get("/{student_id}/profile", response_model=StudentProfile)
async def get_student_profile(
    student_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentProfile:
    """Admins may view any student; students only themselves."""
    try:
        profile = await service.get_student_profile(db, current_user, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return profile
