import logging
from datetime import datetime
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import LoginLog, User
from app.auth.schemas import ChangePasswordRequest, LoginRequest, LoginResponse, UserInfo
from app.auth.security import create_access_token, hash_password, verify_password
from app.core.exceptions import ServiceError
from app.core.models import SchoolClass
from app.core.schemas import ClassRef

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


async def _record_login_attempt(
    db: AsyncSession,
    user_id: Optional[int],
    success: bool,
    failure_reason: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    """Write a login log row. Failures here never block the login itself."""
    try:
        db.add(
            LoginLog(
                user_id=user_id,
                login_time=datetime.utcnow(),
                ip_address=ip_address,
                user_agent=user_agent,
                success=success,
                failure_reason=failure_reason,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception(f"Failed to write login log for user {user_id}")


async def build_user_info(db: AsyncSession, user: User) -> UserInfo:
    """User payload returned by /login and /me: student class or staff managed class."""
    class_ref = None
    managed_class = None
    if user.role == "STUDENT" and user.class_id:
        cls = await db.get(SchoolClass, user.class_id)
        if cls:
            class_ref = ClassRef(id=cls.id, name=cls.name)
    if user.role == "STAFF":
        result = await db.execute(
            select(SchoolClass).where(SchoolClass.staff_id == user.id).order_by(SchoolClass.id).limit(1)
        )
        cls = result.scalar_one_or_none()
        if cls:
            managed_class = ClassRef(id=cls.id, name=cls.name)
    return UserInfo(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        roll_number=user.roll_number,
        class_=class_ref,
        managed_class=managed_class,
        department_id=user.department_id,
    )


async def login_user(
    db: AsyncSession,
    payload: LoginRequest,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> LoginResponse:
    if not payload.email or not payload.password:
        raise ServiceError("Email and password are required", status.HTTP_400_BAD_REQUEST)

    email = payload.email.strip().lower()
    result = await db.execute(
        select(User).where(func.lower(User.email) == email, User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()

    if not user:
        logger.info(f"Login failed, no active user for {email}")
        await _record_login_attempt(db, None, False, "User not found", ip_address, user_agent)
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    if not verify_password(payload.password, user.password_hash):
        logger.info(f"Login failed, bad password for user {user.id}")
        await _record_login_attempt(db, user.id, False, "Invalid password", ip_address, user_agent)
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    user.last_login = datetime.utcnow()
    user.login_count = (user.login_count or 0) + 1
    await db.commit()
    await db.refresh(user)

    token = create_access_token(
        subject={
            "user_id": user.id,
            "role": user.role,
            "email": user.email,
            "department_id": user.department_id,
        }
    )
    user_info = await build_user_info(db, user)
    await _record_login_attempt(db, user.id, True, None, ip_address, user_agent)
    logger.info(f"User {user.id} ({user.role}) logged in")
    return LoginResponse(token=token, user=user_info)


async def change_password(
    db: AsyncSession,
    user_id: int,
    payload: ChangePasswordRequest,
    wrong_password_status: int = status.HTTP_401_UNAUTHORIZED,
) -> None:
    """Verify the current password and store the new one (bcrypt)."""
    if not payload.current_password or not payload.new_password:
        raise ServiceError(
            "Current password and new password are required",
            status.HTTP_400_BAD_REQUEST,
        )
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise ServiceError(
            "New password must be at least 6 characters long",
            status.HTTP_400_BAD_REQUEST,
        )
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    if not verify_password(payload.current_password, user.password_hash):
        raise ServiceError("Current password is incorrect", wrong_password_status)
    user.password_hash = hash_password(payload.new_password)
    await db.commit()
    logger.info(f"Password changed for user {user_id}")
