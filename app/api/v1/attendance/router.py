"""Attendance API router."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_staff_or_admin, require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    ClassAttendanceStats,
    DailyAttendanceRow,
    MyAttendanceResponse,
    StudentAttendanceReport,
)

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post("/mark", response_model=AttendanceMarkResponse)
async def mark_attendance(
    payload: AttendanceMarkRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> AttendanceMarkResponse:
    """Mark or correct attendance for a day. Parents of absent students are emailed."""
    try:
        return await service.mark_attendance(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/date/{on_date}", response_model=List[DailyAttendanceRow])
async def get_attendance_for_date(
    on_date: date,
    class_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[DailyAttendanceRow]:
    return await service.get_attendance_for_date(db, current_user, on_date, class_id=class_id)


@router.get("/my-attendance", response_model=MyAttendanceResponse)
async def get_my_attendance(
    page: int = Query(1),
    page_size: int = Query(service.MY_ATTENDANCE_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> MyAttendanceResponse:
    return await service.get_my_attendance(db, current_user, page=page, page_size=page_size)


@router.get("/report", response_model=List[StudentAttendanceReport])
async def get_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    class_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[StudentAttendanceReport]:
    return await service.get_report(db, current_user, start_date=start_date, end_date=end_date, class_id=class_id)


@router.get("/stats/{class_id}", response_model=ClassAttendanceStats)
async def get_class_stats(
    class_id: int,
    days: int = Query(service.STATS_DEFAULT_DAYS, description="Window size, clamped to 1..60"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> ClassAttendanceStats:
    return await service.get_class_stats(db, current_user, class_id, days=days)
