import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.core.models import Attendance, Message, SchoolClass

from .schemas import Activity, DashboardStats

logger = logging.getLogger(__name__)

RECENT_DAYS = 7
RECENT_ATTENDANCE_DAYS = 3
DEFAULT_ACTIVITY_LIMIT = 10
TOP_CLASS_DAYS = 30
TOP_CLASS_MIN_RECORDS = 5
LOW_ATTENDANCE_THRESHOLD = 75
LOW_ATTENDANCE_MIN_RECORDS = 3
DEFAULT_ATTENDANCE_RATE = 85


def _excerpt(content: str) -> str:
    return f'"{content[:50]}..."'


def _message_activity(message: Message, class_name: str = None) -> Activity:
    if message.message_type == "ALL_STUDENTS" or message.is_announcement:
        kind, icon, color = "announcement_sent", "bell", "red"
        description = f"Sent announcement to all students: {_excerpt(message.content)}"
    elif message.message_type == "CLASS":
        kind, icon, color = "class_message_sent", "users", "blue"
        description = f"Sent message to {class_name or 'class'}: {_excerpt(message.content)}"
    else:
        kind, icon, color = "message_sent", "message-square", "green"
        description = f"Sent personal message: {_excerpt(message.content)}"
    return Activity(
        id=f"message_{message.id}",
        type=kind,
        description=description,
        timestamp=message.created_at,
        icon=icon,
        color=color,
    )


async def recent_activities(db: AsyncSession, current_user: CurrentUser, limit: int = None) -> List[Activity]:
    """The caller's own messages, new users and fresh attendance, newest first."""
    limit = limit if limit and limit > 0 else DEFAULT_ACTIVITY_LIMIT
    now = datetime.utcnow()
    since = now - timedelta(days=RECENT_DAYS)
    activities: List[Activity] = []

    messages = await db.execute(
        select(Message, SchoolClass.name)
        .outerjoin(SchoolClass, SchoolClass.id == Message.class_id)
        .where(Message.staff_id == current_user.id, Message.created_at >= since)
        .order_by(Message.created_at.desc())
        .limit(5)
    )
    for message, class_name in messages.all():
        activities.append(_message_activity(message, class_name))

    users = await db.execute(
        select(User).where(User.created_at >= since).order_by(User.created_at.desc()).limit(5)
    )
    for user in users.scalars().all():
        activities.append(
            Activity(
                id=f"user_{user.id}",
                type="user_registered",
                description=f"New {user.role.lower()} registered: {user.name}",
                timestamp=user.created_at,
                icon="graduation-cap" if user.role == "STUDENT" else "user-check",
                color="blue" if user.role == "STUDENT" else "green",
            )
        )

    attendance = await db.execute(
        select(Attendance, User.name)
        .outerjoin(User, User.id == Attendance.staff_id)
        .where(Attendance.created_at >= now - timedelta(days=RECENT_ATTENDANCE_DAYS))
        .order_by(Attendance.created_at.desc())
        .limit(3)
    )
    for record, staff_name in attendance.all():
        activities.append(
            Activity(
                id=f"attendance_{record.id}",
                type="attendance_taken",
                description=f"Attendance taken by {staff_name or 'staff'} for {record.date.isoformat()}",
                timestamp=record.created_at,
                icon="calendar",
                color="purple",
            )
        )

    activities.sort(key=lambda a: a.timestamp.replace(tzinfo=None), reverse=True)
    return activities[:limit]


async def _class_attendance(db: AsyncSession, since) -> Dict[int, Tuple[int, int]]:
    """class id -> (present, total) for active students since the given date."""
    present = func.sum(case((Attendance.status == "PRESENT", 1), else_=0))
    result = await db.execute(
        select(User.class_id, present, func.count(Attendance.id))
        .select_from(Attendance)
        .join(User, User.id == Attendance.student_id)
        .where(
            User.role == "STUDENT",
            User.is_active.is_(True),
            User.class_id.isnot(None),
            Attendance.date >= since,
        )
        .group_by(User.class_id)
    )
    return {class_id: (int(p or 0), total) for class_id, p, total in result.all()}


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


async def dashboard_stats(db: AsyncSession) -> DashboardStats:
    now = datetime.utcnow()
    today = now.date()
    week_ago = now - timedelta(days=RECENT_DAYS)

    total_students = await _count(
        db, select(func.count(User.id)).where(User.role == "STUDENT", User.is_active.is_(True))
    )
    total_staff = await _count(db, select(func.count(User.id)).where(User.role == "STAFF", User.is_active.is_(True)))
    total_classes = await _count(db, select(func.count(SchoolClass.id)))
    messages_this_week = await _count(db, select(func.count(Message.id)).where(Message.created_at >= week_ago))
    attendance_today = await _count(db, select(func.count(Attendance.id)).where(Attendance.date == today))
    new_registrations = await _count(db, select(func.count(User.id)).where(User.created_at >= week_ago))
    average_login = (
        await db.execute(select(func.avg(User.login_count)).where(User.is_active.is_(True)))
    ).scalar_one()

    top_class = "N/A"
    monthly = await _class_attendance(db, today - timedelta(days=TOP_CLASS_DAYS))
    best_rate = -1.0
    best_id = None
    for class_id, (present, total) in monthly.items():
        rate = present / total * 100
        if total >= TOP_CLASS_MIN_RECORDS and rate > best_rate:
            best_rate, best_id = rate, class_id
    if best_id is not None:
        cls = await db.get(SchoolClass, best_id)
        top_class = cls.name if cls else top_class

    weekly = await _class_attendance(db, today - timedelta(days=RECENT_DAYS))
    low_attendance = sum(
        1
        for present, total in weekly.values()
        if total >= LOW_ATTENDANCE_MIN_RECORDS and present / total * 100 < LOW_ATTENDANCE_THRESHOLD
    )

    attendance_rate = DEFAULT_ATTENDANCE_RATE
    present = func.sum(case((Attendance.status == "PRESENT", 1), else_=0))
    present_count, record_count = (
        await db.execute(
            select(present, func.count(Attendance.id)).where(Attendance.date >= today - timedelta(days=RECENT_DAYS))
        )
    ).one()
    if record_count:
        attendance_rate = math.floor(int(present_count or 0) / record_count * 100 + 0.5)

    return DashboardStats(
        total_students=total_students,
        total_staff=total_staff,
        total_classes=total_classes,
        messages_this_week=messages_this_week,
        attendance_today=attendance_today,
        active_students=total_students,
        active_staff=total_staff,
        new_registrations=new_registrations,
        attendance_rate=attendance_rate,
        average_login=math.floor(float(average_login or 0) + 0.5),
        classes_with_low_attendance=low_attendance,
        top_performing_class=top_class,
    )
