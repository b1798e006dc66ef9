from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.messages.service import optional_id
from app.auth.rbac import require_admin, require_staff_or_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    AttendanceTrendPoint,
    DepartmentComparison,
    DepartmentPerformance,
    DepartmentTrends,
    LoginStats,
    StaffActivity,
    SystemActivityPoint,
)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _department_filter(department_id: Optional[str]) -> Optional[int]:
    try:
        return optional_id(department_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/attendance-trends", response_model=List[AttendanceTrendPoint])
async def attendance_trends(
    days: Optional[int] = Query(None),
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[AttendanceTrendPoint]:
    return await service.attendance_trends(db, current_user, days, _department_filter(department_id))


@router.get("/department-performance", response_model=List[DepartmentPerformance])
async def department_performance(
    days: Optional[int] = Query(None),
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[DepartmentPerformance]:
    return await service.department_performance(db, current_user, days, _department_filter(department_id))


@router.get("/class-performance", response_model=List[DepartmentPerformance])
async def class_performance(
    days: Optional[int] = Query(None),
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> List[DepartmentPerformance]:
    """Older dashboards still call this name."""
    return await service.department_performance(db, current_user, days, _department_filter(department_id))


@router.get("/staff-activity", response_model=List[StaffActivity])
async def staff_activity(
    days: Optional[int] = Query(None),
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> List[StaffActivity]:
    return await service.staff_activity(db, days, _department_filter(department_id))


@router.get("/system-activity", response_model=List[SystemActivityPoint])
async def system_activity(
    days: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> List[SystemActivityPoint]:
    return await service.system_activity(db, days)


@router.get("/login-stats", response_model=LoginStats)
async def login_stats(
    days: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> LoginStats:
    return await service.login_stats(db, days)


@router.get("/department-comparison", response_model=List[DepartmentComparison])
async def department_comparison(
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> List[DepartmentComparison]:
    return await service.department_comparison(db)


@router.get("/department-trends", response_model=DepartmentTrends)
async def department_trends(
    department_id: Optional[str] = Query(None),
    days: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> DepartmentTrends:
    try:
        return await service.department_trends(db, optional_id(department_id), days)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
