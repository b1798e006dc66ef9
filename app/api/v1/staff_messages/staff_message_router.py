from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff, require_staff_or_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.schemas import MessageResponse
from app.db.session import get_db

from app.api.v1.messages.service import optional_id

from .schemas import (
    AdminListResponse,
    ConversationResponse,
    StaffListResponse,
    StaffMessageSent,
    UnreadCount,
)
from . import service

router = APIRouter(prefix="/api/staff-messages", tags=["staff-messages"])


@router.post("/send", response_model=StaffMessageSent, status_code=status.HTTP_201_CREATED)
async def send_staff_message(
    recipient_id: Optional[int] = Form(None),
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> StaffMessageSent:
    try:
        return await service.send_staff_message(db, current_user, recipient_id, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/conversations", response_model=ConversationResponse)
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> ConversationResponse:
    return await service.list_conversations(db, current_user)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> UnreadCount:
    return await service.unread_count(db, current_user)


@router.get("/staff-list", response_model=StaffListResponse)
async def staff_list(
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> StaffListResponse:
    try:
        return await service.staff_list(db, optional_id(department_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/admin-list", response_model=AdminListResponse)
async def admin_list(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> AdminListResponse:
    return await service.admin_list(db)


@router.get("/download/{message_id}")
async def download_attachment(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> FileResponse:
    try:
        path, file_name = await service.get_download(db, current_user, message_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return FileResponse(path, filename=file_name or path.name)


@router.patch("/{message_id}/read", response_model=MessageResponse)
async def mark_read(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> MessageResponse:
    if not await service.mark_read(db, current_user, message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return MessageResponse(message="Message marked as read")
