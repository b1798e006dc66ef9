import logging

from fastapi import status
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import ChangePasswordRequest, CurrentUser
from app.auth.services import change_password as change_user_password
from app.core.exceptions import NotFoundError, ServiceError
from app.core.models import Attendance, Message, SchoolClass

from .schemas import (
    AdminDetails,
    AdminDetailsResponse,
    AdminDetailsUpdate,
    AdminDetailsUpdateResponse,
    SystemStats,
)

logger = logging.getLogger(__name__)


async def _database_size(db: AsyncSession) -> str:
    """Human readable size of the current database. PostgreSQL only."""
    if db.bind.dialect.name != "postgresql":
        return "Unknown"
    try:
        result = await db.execute(text("SELECT pg_size_pretty(pg_database_size(current_database()))"))
        return result.scalar_one() or "Unknown"
    except SQLAlchemyError as e:
        logger.warning(f"Failed to read database size: {e}")
        await db.rollback()
        return "Unknown"


async def _count(db: AsyncSession, column) -> int:
    return (await db.execute(select(func.count(column)))).scalar_one()


async def get_admin_details(db: AsyncSession, current_user: CurrentUser) -> AdminDetailsResponse:
    admin = await db.get(User, current_user.id)
    if not admin:
        raise NotFoundError("Admin not found")
    stats = SystemStats(
        total_users=await _count(db, User.id),
        total_messages=await _count(db, Message.id),
        total_attendance=await _count(db, Attendance.id),
        total_classes=await _count(db, SchoolClass.id),
        database_size=await _database_size(db),
    )
    return AdminDetailsResponse(admin=AdminDetails.model_validate(admin), system_stats=stats)


async def update_admin_details(
    db: AsyncSession, current_user: CurrentUser, payload: AdminDetailsUpdate
) -> AdminDetailsUpdateResponse:
    name = (payload.name or "").strip()
    email = (payload.email or "").strip().lower()
    if not name or not email:
        raise ServiceError("Name and email are required", status.HTTP_400_BAD_REQUEST)

    taken = await db.execute(select(User.id).where(func.lower(User.email) == email, User.id != current_user.id))
    if taken.first():
        raise ServiceError("Email is already taken", status.HTTP_400_BAD_REQUEST)

    admin = await db.get(User, current_user.id)
    if not admin:
        raise NotFoundError("Admin not found")
    admin.name = name
    admin.email = email
    await db.commit()
    await db.refresh(admin)
    logger.info(f"Admin {admin.id} updated profile details")
    return AdminDetailsUpdateResponse(
        message="Admin details updated successfully",
        admin=AdminDetails.model_validate(admin),
    )


async def change_password(db: AsyncSession, current_user: CurrentUser, payload: ChangePasswordRequest) -> None:
    # A wrong current password is a form error here, not an auth failure
    await change_user_password(db, current_user.id, payload, wrong_password_status=status.HTTP_400_BAD_REQUEST)
