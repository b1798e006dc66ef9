"""
Data retention cleanup.

A cleanup is described once as an ordered plan of (name, model, conditions)
steps. Running the plan deletes the rows and commits; previewing runs the same
deletes and rolls them back, so the preview always matches the cleanup.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Tuple

from fastapi import status
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import LoginLog, User
from app.core.exceptions import NotFoundError, ServiceError
from app.core.models import Attendance, Department, Message, SchoolClass, StaffClass

from .schemas import CleanupPreviewResponse, CleanupRequest, CleanupResponse

logger = logging.getLogger(__name__)

DATA_ONLY = "data_only"
COMPLETE_DEPARTMENT_DELETION = "complete_department_deletion"
CLEANUP_TYPES = (DATA_ONLY, COMPLETE_DEPARTMENT_DELETION)
MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 365

Step = Tuple[str, Any, List[Any]]


def validate_request(payload: CleanupRequest) -> None:
    if payload.cleanup_type not in CLEANUP_TYPES:
        raise ServiceError("Invalid cleanup type", status.HTTP_400_BAD_REQUEST)
    if not MIN_RETENTION_DAYS <= payload.retention_days <= MAX_RETENTION_DAYS:
        raise ServiceError("Retention days must be between 1 and 365", status.HTTP_400_BAD_REQUEST)


def is_complete_deletion(payload: CleanupRequest) -> bool:
    return (
        payload.cleanup_type == COMPLETE_DEPARTMENT_DELETION
        and bool(payload.department_id)
        and payload.delete_important_data
    )


def created_window(model, payload: CleanupRequest) -> List[Any]:
    """An explicit date range wins; otherwise everything older than the retention window."""
    if payload.date_from or payload.date_to:
        conditions = []
        if payload.date_from:
            conditions.append(model.created_at >= datetime.combine(payload.date_from, time.min))
        if payload.date_to:
            conditions.append(model.created_at <= datetime.combine(payload.date_to, time.max))
        return conditions
    cutoff = datetime.utcnow() - timedelta(days=payload.retention_days)
    return [model.created_at < cutoff]


def _students(department_id: int):
    return select(User.id).where(User.department_id == department_id, User.role == "STUDENT")


def _members(department_id: int):
    return select(User.id).where(User.department_id == department_id)


def retention_plan(payload: CleanupRequest) -> List[Step]:
    department_id = payload.department_id
    messages = created_window(Message, payload) + [Message.is_staff_message.is_(False)]
    staff_messages = created_window(Message, payload) + [Message.is_staff_message.is_(True)]
    attendance = created_window(Attendance, payload)
    login_logs = created_window(LoginLog, payload)

    if department_id:
        messages.append(Message.student_id.in_(_students(department_id)))
        members = _members(department_id)
        staff_messages.append(or_(Message.sender_id.in_(members), Message.recipient_id.in_(members)))
        attendance.append(Attendance.student_id.in_(_students(department_id)))
        login_logs.append(LoginLog.user_id.in_(_students(department_id)))

    plan: List[Step] = [
        ("messages", Message, messages),
        ("staff_messages", Message, staff_messages),
        ("attendance", Attendance, attendance),
        ("login_logs", LoginLog, login_logs),
    ]
    if payload.delete_important_data and department_id:
        users = created_window(User, payload) + [
            User.department_id == department_id,
            User.role == "STUDENT",
            User.is_active.is_(False),
        ]
        removed_students = select(User.id).where(*users)
        # Rows referencing these students go before them
        plan.append(
            (
                "student_messages",
                Message,
                [
                    or_(
                        Message.student_id.in_(removed_students),
                        Message.staff_id.in_(removed_students),
                        Message.sender_id.in_(removed_students),
                        Message.recipient_id.in_(removed_students),
                    )
                ],
            )
        )
        plan.append(("student_attendance", Attendance, [Attendance.student_id.in_(removed_students)]))
        plan.append(("users", User, users))
    return plan


def department_plan(department_id: int) -> List[Step]:
    students = _students(department_id)
    return [
        ("messages", Message, [Message.student_id.in_(students)]),
        (
            "staff_messages",
            Message,
            [Message.is_staff_message.is_(True), or_(Message.sender_id.in_(students), Message.recipient_id.in_(students))],
        ),
        ("attendance", Attendance, [Attendance.student_id.in_(students)]),
        ("login_logs", LoginLog, [LoginLog.user_id.in_(students)]),
        ("students", User, [User.department_id == department_id, User.role == "STUDENT"]),
        ("classes", SchoolClass, [SchoolClass.department_id == department_id]),
        ("departments", Department, [Department.id == department_id]),
    ]


async def _detach_department(db: AsyncSession, department_id: int) -> None:
    """Clear references that would otherwise point at deleted classes or the deleted department."""
    classes = select(SchoolClass.id).where(SchoolClass.department_id == department_id)
    await db.execute(delete(StaffClass).where(StaffClass.class_id.in_(classes)))
    await db.execute(update(Message).where(Message.class_id.in_(classes)).values(class_id=None))
    await db.execute(update(User).where(User.class_id.in_(classes)).values(class_id=None))
    await db.execute(
        update(User)
        .where(and_(User.department_id == department_id, User.role != "STUDENT"))
        .values(department_id=None)
    )


async def _execute_plan(db: AsyncSession, payload: CleanupRequest) -> Dict[str, int]:
    """Run the deletes for a request in the current transaction; name -> rows removed."""
    complete = is_complete_deletion(payload)
    if complete:
        if not await db.get(Department, payload.department_id):
            raise NotFoundError("Department not found")
        await _detach_department(db, payload.department_id)
        plan = department_plan(payload.department_id)
    else:
        plan = retention_plan(payload)

    counts = {}
    for name, model, conditions in plan:
        result = await db.execute(delete(model).where(*conditions).execution_options(synchronize_session=False))
        counts[name] = result.rowcount or 0
    return counts


async def run_cleanup(db: AsyncSession, payload: CleanupRequest) -> CleanupResponse:
    validate_request(payload)
    try:
        counts = await _execute_plan(db, payload)
        await db.commit()
    except NotFoundError:
        raise
    except Exception:
        await db.rollback()
        logger.exception("Data cleanup failed, changes rolled back")
        raise

    results = {f"deleted_{name}": count for name, count in counts.items()}
    logger.info(f"Cleanup {payload.cleanup_type} (department {payload.department_id}) removed {results}")
    return CleanupResponse(
        message="Successfully cleaned data",
        results=results,
        cleanup_type=payload.cleanup_type,
        department_id=payload.department_id,
    )


async def preview_cleanup(db: AsyncSession, payload: CleanupRequest) -> CleanupPreviewResponse:
    """Run the same deletes as the cleanup, then roll them back and report the counts."""
    validate_request(payload)
    try:
        counts = await _execute_plan(db, payload)
    finally:
        await db.rollback()
    preview = {f"{name}_to_delete": count for name, count in counts.items()}
    preview["total_records"] = sum(counts.values())
    return CleanupPreviewResponse(
        retention_days=payload.retention_days,
        date_from=payload.date_from,
        date_to=payload.date_to,
        department_id=payload.department_id,
        cleanup_type=payload.cleanup_type,
        delete_important_data=payload.delete_important_data,
        preview=preview,
    )
