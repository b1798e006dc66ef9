"""
Dashboard analytics.

Everything here is plain aggregation over attendance, messages and login logs
inside a trailing window of days ending today. Rates are whole percentages,
rounded half up.
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import LoginLog, User
from app.auth.schemas import CurrentUser
from app.core.exceptions import NotFoundError, ServiceError
from app.core.models import Attendance, Department, Message, SchoolClass
from app.core.schemas import DepartmentRef

from .schemas import (
    AttendanceTrendPoint,
    DepartmentComparison,
    DepartmentPerformance,
    DepartmentTrendPoint,
    DepartmentTrends,
    DepartmentTrendSummary,
    LoginStats,
    LoginUser,
    StaffActivity,
    SystemActivityPoint,
    TopLoginUser,
)

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 30
MAX_DAYS = 90
SYSTEM_DEFAULT_DAYS = 7
SYSTEM_MAX_DAYS = 30
COMPARISON_DAYS = 7
TOP_USERS = 10


def clamp_days(days: Optional[int], default: int, maximum: int) -> int:
    return max(1, min(maximum, days or default))


def window(days: int) -> Tuple[date, date, datetime]:
    """(first day, today, midnight of the first day) for a trailing window."""
    end = datetime.utcnow().date()
    start = end - timedelta(days=days - 1)
    return start, end, datetime.combine(start, time.min)


def each_day(start: date, end: date) -> List[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def percent(part: int, whole: int) -> int:
    if not whole:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def _day(value) -> date:
    return value.date() if isinstance(value, datetime) else value


async def _student_ids(db: AsyncSession, department_id: int) -> List[int]:
    result = await db.execute(
        select(User.id).where(
            User.role == "STUDENT", User.is_active.is_(True), User.department_id == department_id
        )
    )
    return list(result.scalars().all())


async def _count_active(db: AsyncSession, department_id: int, role: str) -> int:
    result = await db.execute(
        select(func.count(User.id)).where(
            User.role == role, User.is_active.is_(True), User.department_id == department_id
        )
    )
    return result.scalar_one()


async def _count_classes(db: AsyncSession, department_id: int) -> int:
    result = await db.execute(select(func.count(SchoolClass.id)).where(SchoolClass.department_id == department_id))
    return result.scalar_one()


async def _attendance_rate(db: AsyncSession, student_ids: Sequence[int], start: date, end: date) -> int:
    if not student_ids:
        return 0
    result = await db.execute(
        select(Attendance.status, func.count(Attendance.id))
        .where(Attendance.student_id.in_(student_ids), Attendance.date.between(start, end))
        .group_by(Attendance.status)
    )
    counts = dict(result.all())
    return percent(counts.get("PRESENT", 0), sum(counts.values()))


async def attendance_trends(
    db: AsyncSession, current_user: CurrentUser, days: Optional[int] = None, department_id: Optional[int] = None
) -> List[AttendanceTrendPoint]:
    """Daily attendance rate, one point per day of the window even when nothing was marked."""
    days = clamp_days(days, DEFAULT_DAYS, MAX_DAYS)
    start, end, _ = window(days)

    if current_user.role == "STAFF" and current_user.department_id:
        department_id = current_user.department_id
    elif current_user.role != "SUPER_ADMIN":
        department_id = None

    stmt = select(Attendance.date, Attendance.status).where(Attendance.date.between(start, end))
    if department_id:
        ids = await _student_ids(db, department_id)
        if not ids:
            return []
        stmt = stmt.where(Attendance.student_id.in_(ids))

    totals: Counter = Counter()
    present: Counter = Counter()
    for day, mark in (await db.execute(stmt)).all():
        totals[day] += 1
        if mark == "PRESENT":
            present[day] += 1

    return [
        AttendanceTrendPoint(date=day, rate=percent(present[day], totals[day]), total=totals[day])
        for day in each_day(start, end)
    ]


async def department_performance(
    db: AsyncSession, current_user: CurrentUser, days: Optional[int] = None, department_id: Optional[int] = None
) -> List[DepartmentPerformance]:
    days = clamp_days(days, DEFAULT_DAYS, MAX_DAYS)
    start, end, start_dt = window(days)

    stmt = select(Department).order_by(Department.name)
    if current_user.role == "STAFF" and current_user.department_id:
        stmt = stmt.where(Department.id == current_user.department_id)
    elif department_id:
        stmt = stmt.where(Department.id == department_id)
    departments = (await db.execute(stmt)).scalars().all()

    results = []
    for dept in departments:
        student_ids = await _student_ids(db, dept.id)
        staff_ids = (
            await db.execute(
                select(User.id).where(User.role == "STAFF", User.is_active.is_(True), User.department_id == dept.id)
            )
        ).scalars().all()
        messages = 0
        members = list(student_ids) + list(staff_ids)
        if members:
            messages = (
                await db.execute(
                    select(func.count(Message.id)).where(
                        or_(
                            Message.student_id.in_(members),
                            Message.staff_id.in_(members),
                            Message.sender_id.in_(members),
                            Message.recipient_id.in_(members),
                        ),
                        Message.created_at >= start_dt,
                    )
                )
            ).scalar_one()
        head = await db.get(User, dept.head_id) if dept.head_id else None
        results.append(
            DepartmentPerformance(
                department_id=dept.id,
                department_name=dept.name,
                student_count=len(student_ids),
                staff_count=len(staff_ids),
                class_count=await _count_classes(db, dept.id),
                attendance_rate=await _attendance_rate(db, student_ids, start, end),
                messages_count=messages,
                head_name=head.name if head else "Not assigned",
            )
        )
    return results


async def staff_activity(
    db: AsyncSession, days: Optional[int] = None, department_id: Optional[int] = None
) -> List[StaffActivity]:
    """Per active staff member: classes taught, messages sent and attendance marked in the window."""
    days = clamp_days(days, DEFAULT_DAYS, MAX_DAYS)
    start, end, start_dt = window(days)

    stmt = select(User).where(User.role == "STAFF", User.is_active.is_(True))
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    staff = (await db.execute(stmt.order_by(User.name))).scalars().all()
    if not staff:
        return []
    ids = [s.id for s in staff]

    dept_ids = {s.department_id for s in staff if s.department_id}
    departments: Dict[int, str] = {}
    if dept_ids:
        departments = dict(
            (await db.execute(select(Department.id, Department.name).where(Department.id.in_(dept_ids)))).all()
        )
    classes = dict(
        (
            await db.execute(
                select(SchoolClass.staff_id, func.count(SchoolClass.id))
                .where(SchoolClass.staff_id.in_(ids))
                .group_by(SchoolClass.staff_id)
            )
        ).all()
    )
    messages = dict(
        (
            await db.execute(
                select(Message.staff_id, func.count(Message.id))
                .where(
                    Message.staff_id.in_(ids),
                    Message.message_type != "STUDENT_TO_STAFF",
                    Message.created_at >= start_dt,
                )
                .group_by(Message.staff_id)
            )
        ).all()
    )
    last_message = dict(
        (
            await db.execute(
                select(Message.staff_id, func.max(Message.created_at))
                .where(Message.staff_id.in_(ids), Message.message_type != "STUDENT_TO_STAFF")
                .group_by(Message.staff_id)
            )
        ).all()
    )
    marked = dict(
        (
            await db.execute(
                select(Attendance.staff_id, func.count(Attendance.id))
                .where(Attendance.staff_id.in_(ids), Attendance.date.between(start, end))
                .group_by(Attendance.staff_id)
            )
        ).all()
    )

    return [
        StaffActivity(
            staff_id=s.id,
            staff_name=s.name,
            department_name=departments.get(s.department_id, "No Department"),
            classes_managed=classes.get(s.id, 0),
            messages_count=messages.get(s.id, 0),
            attendance_marked=marked.get(s.id, 0),
            last_active=last_message.get(s.id),
        )
        for s in staff
    ]


async def system_activity(db: AsyncSession, days: Optional[int] = None) -> List[SystemActivityPoint]:
    """Successful logins, messages and attendance records per day."""
    days = clamp_days(days, SYSTEM_DEFAULT_DAYS, SYSTEM_MAX_DAYS)
    start, end, start_dt = window(days)

    logins = Counter(
        _day(t)
        for t in (
            await db.execute(
                select(LoginLog.login_time).where(LoginLog.login_time >= start_dt, LoginLog.success.is_(True))
            )
        ).scalars()
    )
    messages = Counter(
        _day(t) for t in (await db.execute(select(Message.created_at).where(Message.created_at >= start_dt))).scalars()
    )
    attendance = Counter(
        (await db.execute(select(Attendance.date).where(Attendance.date.between(start, end)))).scalars()
    )
    return [
        SystemActivityPoint(
            date=day, logins=logins[day], messages=messages[day], attendance_records=attendance[day]
        )
        for day in each_day(start, end)
    ]


async def login_stats(db: AsyncSession, days: Optional[int] = None) -> LoginStats:
    days = clamp_days(days, DEFAULT_DAYS, MAX_DAYS)
    _, _, start_dt = window(days)

    rows = (
        await db.execute(
            select(LoginLog.user_id, LoginLog.success).where(LoginLog.login_time >= start_dt)
        )
    ).all()
    successful = [user_id for user_id, ok in rows if ok]
    failed = sum(1 for _, ok in rows if not ok)
    per_user = Counter(uid for uid in successful if uid is not None)

    users: Dict[int, User] = {}
    if per_user:
        result = await db.execute(select(User).where(User.id.in_(list(per_user))))
        users = {u.id: u for u in result.scalars().all()}
    role_stats: Dict[str, int] = defaultdict(int)
    for uid in per_user:
        role_stats[users[uid].role if uid in users else "UNKNOWN"] += 1

    top_users = []
    for uid, count in per_user.most_common(TOP_USERS):
        u = users.get(uid)
        user = (
            LoginUser(id=u.id, name=u.name, email=u.email, role=u.role)
            if u
            else LoginUser(id=uid, name="Unknown", email="", role="UNKNOWN")
        )
        top_users.append(TopLoginUser(user=user, login_count=count))

    return LoginStats(
        total_attempts=len(rows),
        total_logins=len(successful),
        successful_logins=len(successful),
        failed_logins=failed,
        unique_users=len(per_user),
        role_stats=dict(role_stats),
        top_users=top_users,
    )


async def _student_message_count(db: AsyncSession, student_ids: Sequence[int], since: datetime) -> int:
    if not student_ids:
        return 0
    result = await db.execute(
        select(func.count(Message.id)).where(Message.student_id.in_(student_ids), Message.created_at >= since)
    )
    return result.scalar_one()


async def department_comparison(db: AsyncSession) -> List[DepartmentComparison]:
    """Active departments side by side over the last week."""
    end = datetime.utcnow().date()
    start = end - timedelta(days=COMPARISON_DAYS)
    since = datetime.utcnow() - timedelta(days=COMPARISON_DAYS)
    departments = (
        await db.execute(select(Department).where(Department.is_active.is_(True)).order_by(Department.name))
    ).scalars().all()

    comparison = []
    for dept in departments:
        student_ids = await _student_ids(db, dept.id)
        rate = await _attendance_rate(db, student_ids, start, end)
        messages = await _student_message_count(db, student_ids, since)
        students = len(student_ids)
        efficiency = math.floor((rate + messages / students * 10) / 2 + 0.5) if students else 0
        comparison.append(
            DepartmentComparison(
                department_id=dept.id,
                department_name=dept.name,
                student_count=students,
                staff_count=await _count_active(db, dept.id, "STAFF"),
                class_count=await _count_classes(db, dept.id),
                recent_attendance_rate=rate,
                recent_messages=messages,
                efficiency=efficiency,
            )
        )
    return comparison


async def department_trends(
    db: AsyncSession, department_id: Optional[int], days: Optional[int] = None
) -> DepartmentTrends:
    if not department_id:
        raise ServiceError("Valid department ID is required", status.HTTP_400_BAD_REQUEST)
    department = await db.get(Department, department_id)
    if not department:
        raise NotFoundError("Department not found")

    days = clamp_days(days, DEFAULT_DAYS, MAX_DAYS)
    start, end, start_dt = window(days)
    student_ids = await _student_ids(db, department_id)

    totals: Counter = Counter()
    present: Counter = Counter()
    messages: Counter = Counter()
    if student_ids:
        marks = await db.execute(
            select(Attendance.date, Attendance.status).where(
                Attendance.student_id.in_(student_ids), Attendance.date.between(start, end)
            )
        )
        for day, mark in marks.all():
            totals[day] += 1
            if mark == "PRESENT":
                present[day] += 1
        sent = await db.execute(
            select(Message.created_at).where(Message.student_id.in_(student_ids), Message.created_at >= start_dt)
        )
        messages.update(_day(t) for t in sent.scalars())

    trends = [
        DepartmentTrendPoint(
            date=day,
            attendance_rate=percent(present[day], totals[day]),
            message_count=messages[day],
            active_students=len(student_ids),
        )
        for day in each_day(start, end)
    ]
    average = math.floor(sum(t.attendance_rate for t in trends) / len(trends) + 0.5) if trends else 0
    return DepartmentTrends(
        department=DepartmentRef.model_validate(department),
        trends=trends,
        summary=DepartmentTrendSummary(
            total_students=len(student_ids),
            avg_attendance_rate=average,
            total_messages=sum(t.message_count for t in trends),
        ),
    )
