import logging
from typing import List, Optional

from fastapi import UploadFile, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.core.exceptions import NotFoundError, PermissionDeniedError, ServiceError
from app.core.models import Department, Message
from app.core.schemas import DepartmentRef
from app.core.uploads import resolve_download, save_upload

from app.api.v1.messages.service import commit_with_attachment, message_responses

from .schemas import (
    AdminListResponse,
    ConversationResponse,
    StaffListResponse,
    StaffMember,
    StaffMessageSent,
    UnreadCount,
)

logger = logging.getLogger(__name__)

CONVERSATION_LIMIT = 100

# Allowed sender role -> (recipient role, message type)
ROUTES = {
    "STAFF": ("SUPER_ADMIN", "STAFF_TO_ADMIN"),
    "SUPER_ADMIN": ("STAFF", "ADMIN_TO_STAFF"),
}


async def send_staff_message(
    db: AsyncSession,
    current_user: CurrentUser,
    recipient_id: Optional[int],
    content: Optional[str],
    file: Optional[UploadFile] = None,
) -> StaffMessageSent:
    """Staff write to admins and admins write to staff; nothing else."""
    if not content or not content.strip():
        raise ServiceError("Message content is required", status.HTTP_400_BAD_REQUEST)
    if not recipient_id:
        raise ServiceError("Recipient ID is required", status.HTTP_400_BAD_REQUEST)
    if current_user.role not in ROUTES:
        raise PermissionDeniedError("Only Staff and Super Admin can use this messaging system")

    recipient = await db.get(User, recipient_id)
    if not recipient or not recipient.is_active:
        raise NotFoundError("Recipient not found")
    expected_role, message_type = ROUTES[current_user.role]
    if recipient.role != expected_role:
        if current_user.role == "STAFF":
            raise PermissionDeniedError("Staff can only send messages to Super Admin")
        raise PermissionDeniedError("Super Admin can only send messages to Staff")

    file_path, file_name = await save_upload(file)
    message = Message(
        sender_id=current_user.id,
        recipient_id=recipient.id,
        is_staff_message=True,
        content=content.strip(),
        file_path=file_path,
        file_name=file_name,
        is_announcement=False,
        message_type=message_type,
    )
    db.add(message)
    await commit_with_attachment(db, file_path)
    await db.refresh(message)
    logger.info(f"{message_type} message {message.id} from {current_user.id} to {recipient.id}")
    return StaffMessageSent(
        message="Message sent successfully",
        data=(await message_responses(db, [message]))[0],
    )


async def list_conversations(db: AsyncSession, current_user: CurrentUser) -> ConversationResponse:
    """Latest staff messages: the caller's own for staff, every staff message for admins."""
    stmt = select(Message).where(Message.is_staff_message.is_(True))
    if current_user.role == "STAFF":
        stmt = stmt.where(or_(Message.sender_id == current_user.id, Message.recipient_id == current_user.id))
    result = await db.execute(
        stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(CONVERSATION_LIMIT)
    )
    return ConversationResponse(
        messages=await message_responses(db, result.scalars().all()),
        user_role=current_user.role,
    )


async def mark_read(db: AsyncSession, current_user: CurrentUser, message_id: int) -> bool:
    result = await db.execute(
        select(Message).where(
            Message.id == message_id,
            Message.recipient_id == current_user.id,
            Message.is_staff_message.is_(True),
        )
    )
    message = result.scalar_one_or_none()
    if not message:
        return False
    message.is_read = True
    await db.commit()
    return True


async def unread_count(db: AsyncSession, current_user: CurrentUser) -> UnreadCount:
    result = await db.execute(
        select(func.count(Message.id)).where(
            Message.recipient_id == current_user.id,
            Message.is_read.is_(False),
            Message.is_staff_message.is_(True),
        )
    )
    return UnreadCount(unread_count=result.scalar_one())


async def _members(db: AsyncSession, role: str, department_id: Optional[int] = None) -> List[StaffMember]:
    stmt = select(User).where(User.role == role, User.is_active.is_(True))
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    users = (await db.execute(stmt.order_by(User.name))).scalars().all()
    dept_ids = {u.department_id for u in users if u.department_id}
    departments = {}
    if dept_ids:
        rows = await db.execute(select(Department).where(Department.id.in_(dept_ids)))
        departments = {d.id: d for d in rows.scalars().all()}
    return [
        StaffMember(
            id=u.id,
            name=u.name,
            email=u.email,
            role=u.role,
            department_id=u.department_id,
            department=DepartmentRef.model_validate(departments[u.department_id])
            if u.department_id in departments
            else None,
        )
        for u in users
    ]


async def staff_list(db: AsyncSession, department_id: Optional[int] = None) -> StaffListResponse:
    return StaffListResponse(staff=await _members(db, "STAFF", department_id))


async def admin_list(db: AsyncSession) -> AdminListResponse:
    return AdminListResponse(admins=await _members(db, "SUPER_ADMIN"))


async def get_download(db: AsyncSession, current_user: CurrentUser, message_id: int):
    message = await db.get(Message, message_id)
    if not message or not message.is_staff_message:
        raise NotFoundError("Message not found")
    if current_user.id not in (message.sender_id, message.recipient_id):
        raise PermissionDeniedError("Access denied")
    if not message.file_path:
        raise NotFoundError("File not attached")
    return resolve_download(message.file_path), message.file_name
