"""Attendance marking, daily sheets, student summaries and class stats."""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence

from fastapi import status
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.core.email import send_absence_alert
from app.core.exceptions import PermissionDeniedError, ServiceError
from app.core.models import Attendance
from app.core.pagination import clamp_page

from .schemas import (
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceMarkResult,
    AttendancePagination,
    AttendanceRecord,
    AttendanceSummary,
    ClassAttendanceStats,
    DailyAttendanceRow,
    MyAttendanceResponse,
    ReportStudent,
    StudentAttendanceReport,
)

logger = logging.getLogger(__name__)

MY_ATTENDANCE_PAGE_SIZE = 20
MY_ATTENDANCE_PAGE_SIZE_MAX = 50
STATS_DEFAULT_DAYS = 7
STATS_MAX_DAYS = 60


def _department_scope(current_user: CurrentUser) -> Optional[int]:
    """Staff only reach students in their own department."""
    if current_user.role == "STAFF" and current_user.department_id:
        return current_user.department_id
    return None


def summarize(statuses: Sequence[str]) -> AttendanceSummary:
    total = len(statuses)
    present = sum(1 for s in statuses if s == "PRESENT")
    percentage = round(present / total * 100, 2) if total else 0.0
    return AttendanceSummary(
        total_days=total,
        present_days=present,
        absent_days=total - present,
        percentage=percentage,
    )


async def _records(db: AsyncSession, rows: Sequence[Attendance]) -> List[AttendanceRecord]:
    staff_ids = {r.staff_id for r in rows if r.staff_id}
    names: Dict[int, str] = {}
    if staff_ids:
        result = await db.execute(select(User.id, User.name).where(User.id.in_(staff_ids)))
        names = dict(result.all())
    return [
        AttendanceRecord(
            id=r.id,
            student_id=r.student_id,
            staff_id=r.staff_id,
            staff_name=names.get(r.staff_id),
            date=r.date,
            status=r.status,
            remarks=r.remarks,
            created_at=r.created_at,
        )
        for r in rows
    ]


async def _existing_marks(db: AsyncSession, on_date: date, student_ids: List[int]) -> Dict[int, Attendance]:
    result = await db.execute(
        select(Attendance).where(Attendance.date == on_date, Attendance.student_id.in_(student_ids))
    )
    return {a.student_id: a for a in result.scalars().all()}


async def mark_attendance(
    db: AsyncSession, current_user: CurrentUser, payload: AttendanceMarkRequest
) -> AttendanceMarkResponse:
    """
    Upsert one mark per (student, date).

    Every student is checked before anything is written. Parents of students
    marked ABSENT are emailed after the commit; delivery failures are only logged.
    """
    if not payload.mark_date or payload.attendance is None:
        raise ServiceError("Date and attendance data are required", status.HTTP_400_BAD_REQUEST)

    department_id = _department_scope(current_user)
    students: Dict[int, User] = {}
    for item in payload.attendance:
        student = await db.get(User, item.student_id)
        accessible = (
            student is not None
            and student.role == "STUDENT"
            and student.is_active
            and (not payload.class_id or student.class_id == payload.class_id)
            and (not department_id or student.department_id == department_id)
        )
        if not accessible:
            raise PermissionDeniedError(
                f"Student {item.student_id} not accessible or not in your department"
            )
        students[student.id] = student

    existing = await _existing_marks(db, payload.mark_date, list(students))

    results: List[AttendanceMarkResult] = []
    for item in payload.attendance:
        record = existing.get(item.student_id)
        created = record is None
        if created:
            record = Attendance(student_id=item.student_id, date=payload.mark_date)
            db.add(record)
            existing[item.student_id] = record
        record.status = item.status.value
        record.staff_id = current_user.id
        record.remarks = item.remarks or None
        results.append(
            AttendanceMarkResult(student_id=item.student_id, status=item.status, created=created, updated=not created)
        )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Attendance for this student and date was already recorded", status.HTTP_400_BAD_REQUEST
        )
    logger.info(f"User {current_user.id} marked attendance for {len(results)} students on {payload.mark_date}")

    sent = 0
    date_str = payload.mark_date.isoformat()
    for item in payload.attendance:
        if item.status.value != "ABSENT":
            continue
        student = students[item.student_id]
        if not student.parent_email:
            continue
        if await send_absence_alert(student.parent_email, student.name, student.roll_number, date_str, item.remarks):
            sent += 1
        else:
            logger.warning(f"Absence alert for student {student.id} on {date_str} was not delivered")

    return AttendanceMarkResponse(message="Attendance marked successfully", results=results, notifications_sent=sent)


async def get_attendance_for_date(
    db: AsyncSession, current_user: CurrentUser, on_date: date, class_id: Optional[int] = None
) -> List[DailyAttendanceRow]:
    """Every reachable active student with their mark for the day, or null when unmarked."""
    stmt = select(User).where(User.role == "STUDENT", User.is_active.is_(True))
    department_id = _department_scope(current_user)
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    if class_id:
        stmt = stmt.where(User.class_id == class_id)
    students = (await db.execute(stmt.order_by(User.roll_number))).scalars().all()
    if not students:
        return []

    marks = await db.execute(
        select(Attendance).where(
            Attendance.date == on_date, Attendance.student_id.in_([s.id for s in students])
        )
    )
    by_student = {a.student_id: a for a in marks.scalars().all()}
    return [
        DailyAttendanceRow(
            student_id=s.id,
            student_name=s.name,
            roll_number=s.roll_number,
            status=by_student[s.id].status if s.id in by_student else None,
            remarks=by_student[s.id].remarks if s.id in by_student else None,
        )
        for s in students
    ]


async def get_my_attendance(
    db: AsyncSession, current_user: CurrentUser, page: int = 1, page_size: int = MY_ATTENDANCE_PAGE_SIZE
) -> MyAttendanceResponse:
    page, page_size, offset = clamp_page(page, page_size, MY_ATTENDANCE_PAGE_SIZE, MY_ATTENDANCE_PAGE_SIZE_MAX)
    statuses = (
        await db.execute(select(Attendance.status).where(Attendance.student_id == current_user.id))
    ).scalars().all()
    rows = await db.execute(
        select(Attendance)
        .where(Attendance.student_id == current_user.id)
        .order_by(Attendance.date.desc())
        .limit(page_size)
        .offset(offset)
    )
    total = len(statuses)
    total_pages = math.ceil(total / page_size)
    return MyAttendanceResponse(
        attendance=await _records(db, rows.scalars().all()),
        summary=summarize(statuses),
        pagination=AttendancePagination(
            page=page,
            page_size=page_size,
            total_records=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


async def get_report(
    db: AsyncSession,
    current_user: CurrentUser,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    class_id: Optional[int] = None,
) -> List[StudentAttendanceReport]:
    """Attendance grouped by student, ordered by roll number then newest record first."""
    stmt = select(Attendance, User).join(User, User.id == Attendance.student_id)
    if start_date and end_date:
        stmt = stmt.where(Attendance.date.between(start_date, end_date))
    department_id = _department_scope(current_user)
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    if class_id:
        stmt = stmt.where(User.class_id == class_id)
    result = await db.execute(stmt.order_by(User.roll_number, Attendance.date.desc()))
    pairs = result.all()

    records = await _records(db, [a for a, _ in pairs])
    grouped: Dict[int, dict] = {}
    for (attendance, student), record in zip(pairs, records):
        entry = grouped.setdefault(student.id, {"student": student, "records": []})
        entry["records"].append(record)

    return [
        StudentAttendanceReport(
            student=ReportStudent.model_validate(entry["student"]),
            records=entry["records"],
            **summarize([r.status.value for r in entry["records"]]).model_dump(),
        )
        for entry in grouped.values()
    ]


async def get_class_stats(
    db: AsyncSession, current_user: CurrentUser, class_id: int, days: int = STATS_DEFAULT_DAYS
) -> ClassAttendanceStats:
    days = max(1, min(STATS_MAX_DAYS, days or STATS_DEFAULT_DAYS))
    end = datetime.utcnow().date()
    start = end - timedelta(days=days - 1)

    students = select(User.id).where(User.role == "STUDENT", User.is_active.is_(True), User.class_id == class_id)
    department_id = _department_scope(current_user)
    if department_id:
        students = students.where(User.department_id == department_id)

    result = await db.execute(
        select(
            func.count(Attendance.id),
            func.sum(case((Attendance.status == "PRESENT", 1), else_=0)),
            func.max(Attendance.date),
        ).where(Attendance.date.between(start, end), Attendance.student_id.in_(students))
    )
    total, present, last = result.one()
    total = total or 0
    rate = round((present or 0) / total * 100) if total else 0
    return ClassAttendanceStats(attendance_rate=rate, last_activity=last if total else None, total_marked=total)
