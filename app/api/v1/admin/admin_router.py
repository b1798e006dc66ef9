from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.db.session import get_db

from . import service
from .schemas import Activity, DashboardStats

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/recent-activities", response_model=List[Activity])
async def recent_activities(
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[Activity]:
    return await service.recent_activities(db, current_user, limit)


@router.get("/dashboard-stats", response_model=DashboardStats)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> DashboardStats:
    return await service.dashboard_stats(db)
