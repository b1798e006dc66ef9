from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import ChangePasswordRequest, CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse
from app.db.session import get_db

from . import backup, cleanup, service
from .schemas import (
    AdminDetailsResponse,
    AdminDetailsUpdate,
    AdminDetailsUpdateResponse,
    BackupList,
    BackupRequest,
    BackupResult,
    CleanupPreviewResponse,
    CleanupRequest,
    CleanupResponse,
)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/admin-details", response_model=AdminDetailsResponse)
async def get_admin_details(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> AdminDetailsResponse:
    try:
        return await service.get_admin_details(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/admin-details", response_model=AdminDetailsUpdateResponse)
async def update_admin_details(
    payload: AdminDetailsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> AdminDetailsUpdateResponse:
    try:
        return await service.update_admin_details(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> MessageResponse:
    try:
        await service.change_password(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Password changed successfully")


@router.post("/backup", response_model=BackupResult)
async def create_backup(
    payload: BackupRequest,
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> BackupResult:
    """Write a zipped SQL dump, either of everything or of one department."""
    try:
        return await backup.create_backup(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/backups", response_model=BackupList)
async def list_backups(_: CurrentUser = Depends(require_admin)) -> BackupList:
    return backup.list_backups()


@router.get("/backup/download/{filename}")
async def download_backup(filename: str, _: CurrentUser = Depends(require_admin)):
    try:
        path = backup.resolve_backup(filename)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return FileResponse(path, media_type="application/octet-stream", filename=filename)


@router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(
    payload: CleanupRequest,
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> CleanupResponse:
    """Delete old data. Irreversible; callers are expected to preview first."""
    try:
        return await cleanup.run_cleanup(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/cleanup/preview", response_model=CleanupPreviewResponse)
async def preview_cleanup(
    cleanup_type: str = Query(cleanup.DATA_ONLY),
    retention_days: int = Query(30),
    department_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    delete_important_data: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
) -> CleanupPreviewResponse:
    payload = CleanupRequest(
        cleanup_type=cleanup_type,
        retention_days=retention_days,
        department_id=department_id,
        date_from=date_from,
        date_to=date_to,
        delete_important_data=delete_important_data,
    )
    try:
        return await cleanup.preview_cleanup(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
