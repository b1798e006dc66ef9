import json
import logging
from typing import Dict, List, Optional, Sequence, Union

from fastapi import UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.core.email import broadcast_html, send_email
from app.core.exceptions import NotFoundError, PermissionDeniedError, ServiceError
from app.core.models import Department, Message, SchoolClass, StaffClass
from app.core.pagination import clamp_page, page_payload
from app.core.schemas import ClassRef, DepartmentRef
from app.core.uploads import discard_upload, resolve_download, save_upload

from .schemas import (
    AssignedStaffResponse,
    BroadcastResult,
    CountedRef,
    DirectMessageResult,
    EmailRecipient,
    EmailResult,
    EmailStudent,
    FromStudentsPage,
    MessageOut,
    MessagePage,
    StaffRef,
    StaffWithDepartment,
    StudentRef,
)

logger = logging.getLogger(__name__)

SENT_PAGE_SIZE = 10
RECEIVED_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

ADMIN_RECIPIENT_TYPES = ("all_students", "class", "department", "individual", "staff")
STUDENT_MESSAGE_TYPES = ("question", "doubt", "clarification", "general")


def _require_content(content: Optional[str], message: str = "Content is required") -> str:
    if not content or not content.strip():
        raise ServiceError(message, status.HTTP_400_BAD_REQUEST)
    return content


def optional_id(value: Optional[str]) -> Optional[int]:
    """Form and path ids where "ALL" or an empty value means no filter."""
    if value is None or value == "" or str(value).upper() == "ALL":
        return None
    try:
        return int(value)
    except ValueError:
        raise ServiceError(f"Invalid id: {value}", status.HTTP_400_BAD_REQUEST)


def parse_id_list(raw: Union[str, List[int], None], error: str) -> List[int]:
    """Accept a JSON array (as sent in multipart forms) or a comma separated list of ids."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        values = raw
    else:
        try:
            values = json.loads(raw)
        except ValueError:
            values = [v for v in raw.split(",") if v.strip()]
    if not isinstance(values, list):
        raise ServiceError(error, status.HTTP_400_BAD_REQUEST)
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise ServiceError(error, status.HTTP_400_BAD_REQUEST)


async def message_responses(db: AsyncSession, messages: Sequence[Message]) -> List[MessageOut]:
    """Serialize messages with their student, staff, sender, recipient and class attached."""
    user_ids = set()
    class_ids = set()
    for m in messages:
        user_ids.update(i for i in (m.student_id, m.staff_id, m.sender_id, m.recipient_id) if i)
        if m.class_id:
            class_ids.add(m.class_id)
    users: Dict[int, User] = {}
    if user_ids:
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in result.scalars().all()}
    classes: Dict[int, SchoolClass] = {}
    if class_ids:
        result = await db.execute(select(SchoolClass).where(SchoolClass.id.in_(class_ids)))
        classes = {c.id: c for c in result.scalars().all()}

    def staff_ref(user_id):
        return StaffRef.model_validate(users[user_id]) if user_id in users else None

    return [
        MessageOut(
            id=m.id,
            content=m.content,
            file_name=m.file_name,
            has_file=bool(m.file_path),
            is_announcement=m.is_announcement,
            is_read=m.is_read,
            is_staff_message=m.is_staff_message,
            message_type=m.message_type,
            student_message_type=m.student_message_type,
            reply_to_message_id=m.reply_to_message_id,
            email_type=m.email_type,
            class_id=m.class_id,
            student_id=m.student_id,
            staff_id=m.staff_id,
            sender_id=m.sender_id,
            recipient_id=m.recipient_id,
            created_at=m.created_at,
            student=StudentRef.model_validate(users[m.student_id]) if m.student_id in users else None,
            staff=staff_ref(m.staff_id),
            sender=staff_ref(m.sender_id),
            recipient=staff_ref(m.recipient_id),
            class_=ClassRef.model_validate(classes[m.class_id]) if m.class_id in classes else None,
        )
        for m in messages
    ]


async def _message_page(
    db: AsyncSession, filters: list, page: int, page_size: int, default_size: int
) -> MessagePage:
    page, page_size, offset = clamp_page(page, page_size, default_size, MAX_PAGE_SIZE)
    count = (await db.execute(select(func.count(Message.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(Message)
        .where(*filters)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(page_size)
        .offset(offset)
    )
    rows = await message_responses(db, result.scalars().all())
    return MessagePage(**page_payload(rows, count, page, page_size))


async def _active_students(
    db: AsyncSession,
    current_user: CurrentUser,
    class_id: Optional[int] = None,
    department_id: Optional[int] = None,
    student_ids: Optional[List[int]] = None,
) -> List[User]:
    """Active students the caller may reach. Staff are scoped to their own department."""
    stmt = select(User).where(User.role == "STUDENT", User.is_active.is_(True))
    if current_user.role == "STAFF" and current_user.department_id:
        stmt = stmt.where(User.department_id == current_user.department_id)
    elif current_user.role == "SUPER_ADMIN" and department_id:
        stmt = stmt.where(User.department_id == department_id)
    if class_id:
        stmt = stmt.where(User.class_id == class_id)
    if student_ids is not None:
        stmt = stmt.where(User.id.in_(student_ids))
    result = await db.execute(stmt.order_by(User.id))
    return list(result.scalars().all())


async def commit_with_attachment(db: AsyncSession, file_path: Optional[str]) -> None:
    """Commit new message rows; their stored attachment is removed when the commit fails."""
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        discard_upload(file_path)
        raise


async def _fan_out(
    db: AsyncSession,
    students: Sequence[User],
    author_id: int,
    content: str,
    file_path: Optional[str],
    file_name: Optional[str],
    is_announcement: bool,
    message_type: str,
    class_id: Optional[int] = None,
) -> None:
    """One message row per recipient student, committed together."""
    for student in students:
        db.add(
            Message(
                student_id=student.id,
                staff_id=author_id,
                sender_id=author_id,
                content=content,
                file_path=file_path,
                file_name=file_name,
                is_announcement=is_announcement,
                message_type=message_type,
                class_id=class_id,
            )
        )
    await commit_with_attachment(db, file_path)
    logger.info(f"User {author_id} sent {message_type} message to {len(students)} students")


async def send_announcement(
    db: AsyncSession,
    current_user: CurrentUser,
    content: Optional[str],
    class_id: Optional[int] = None,
    department_id: Optional[int] = None,
    file: Optional[UploadFile] = None,
    message_type: str = "ALL_STUDENTS",
) -> BroadcastResult:
    content = _require_content(content, "Content is required for announcements")
    students = await _active_students(db, current_user, class_id=class_id, department_id=department_id)
    if not students:
        raise NotFoundError("No active students found")
    file_path, file_name = await save_upload(file)
    await _fan_out(db, students, current_user.id, content, file_path, file_name, True, message_type, class_id)
    return BroadcastResult(
        message=f"Announcement sent to {len(students)} students successfully!",
        recipients=len(students),
        is_announcement=True,
    )


async def send_message(
    db: AsyncSession,
    current_user: CurrentUser,
    content: Optional[str],
    student_id: Optional[int] = None,
    is_announcement: bool = False,
    class_id: Optional[int] = None,
    department_id: Optional[int] = None,
    file: Optional[UploadFile] = None,
) -> Union[MessageOut, BroadcastResult]:
    """Either an announcement fanned out to students, or one message to one student."""
    content = _require_content(content)
    if is_announcement:
        return await send_announcement(db, current_user, content, class_id, department_id, file)
    if not student_id:
        raise ServiceError("Student ID is required for individual messages", status.HTTP_400_BAD_REQUEST)

    student = await db.get(User, student_id)
    if not student or student.role != "STUDENT" or not student.is_active:
        raise NotFoundError("Student not found")
    file_path, file_name = await save_upload(file)
    message = Message(
        student_id=student.id,
        staff_id=current_user.id,
        sender_id=current_user.id,
        content=content,
        file_path=file_path,
        file_name=file_name,
        is_announcement=False,
        message_type="INDIVIDUAL",
    )
    db.add(message)
    await commit_with_attachment(db, file_path)
    await db.refresh(message)
    return (await message_responses(db, [message]))[0]


async def list_sent(db: AsyncSession, current_user: CurrentUser, page: int, page_size: int) -> MessagePage:
    filters = [Message.staff_id == current_user.id, Message.message_type != "STUDENT_TO_STAFF"]
    return await _message_page(db, filters, page, page_size, SENT_PAGE_SIZE)


async def list_received(db: AsyncSession, current_user: CurrentUser, page: int, page_size: int) -> MessagePage:
    """Everything addressed to the student: direct, class, announcement and reply rows."""
    filters = [Message.student_id == current_user.id, Message.message_type != "STUDENT_TO_STAFF"]
    return await _message_page(db, filters, page, page_size, RECEIVED_PAGE_SIZE)


def is_recipient(current_user: CurrentUser, message: Message) -> bool:
    if message.recipient_id is not None:
        return message.recipient_id == current_user.id
    if message.message_type == "STUDENT_TO_STAFF":
        return message.staff_id == current_user.id
    return current_user.role == "STUDENT" and message.student_id == current_user.id


async def mark_read(db: AsyncSession, current_user: CurrentUser, message_id: int) -> bool:
    message = await db.get(Message, message_id)
    if not message or not is_recipient(current_user, message):
        return False
    message.is_read = True
    await db.commit()
    return True


def can_access(current_user: CurrentUser, message: Message) -> bool:
    if current_user.role == "SUPER_ADMIN" or message.is_announcement:
        return True
    if current_user.role == "STUDENT":
        return message.student_id == current_user.id
    return current_user.id in (message.staff_id, message.sender_id, message.recipient_id)


async def get_download(db: AsyncSession, current_user: CurrentUser, message_id: int):
    """(path, original file name) of an attachment the caller may read."""
    message = await db.get(Message, message_id)
    if not message or not message.file_path:
        raise NotFoundError("File not found")
    if not can_access(current_user, message):
        raise PermissionDeniedError("Access denied")
    return resolve_download(message.file_path), message.file_name


async def send_to_class(
    db: AsyncSession,
    current_user: CurrentUser,
    class_id: Optional[int],
    content: Optional[str],
    file: Optional[UploadFile] = None,
) -> BroadcastResult:
    content = _require_content(content)
    if not class_id:
        raise ServiceError("Class ID is required", status.HTTP_400_BAD_REQUEST)
    if not await db.get(SchoolClass, class_id):
        raise NotFoundError("Class not found")
    students = await _active_students(db, current_user, class_id=class_id)
    if not students:
        raise NotFoundError("No active students found in this class")
    file_path, file_name = await save_upload(file)
    await _fan_out(db, students, current_user.id, content, file_path, file_name, False, "CLASS", class_id)
    return BroadcastResult(
        message=f"Message sent to all {len(students)} students in the class successfully!",
        recipients=len(students),
        class_id=class_id,
        message_type="CLASS",
    )


async def send_to_group(
    db: AsyncSession,
    current_user: CurrentUser,
    student_ids: Union[str, List[int], None],
    content: Optional[str],
    file: Optional[UploadFile] = None,
) -> BroadcastResult:
    content = _require_content(content)
    ids = list(dict.fromkeys(parse_id_list(student_ids, "Invalid student IDs format")))
    if not ids:
        raise ServiceError("At least one student ID is required", status.HTTP_400_BAD_REQUEST)
    students = await _active_students(db, current_user, student_ids=ids)
    if len(students) != len(ids):
        raise ServiceError("Some students not found or inactive", status.HTTP_400_BAD_REQUEST)
    file_path, file_name = await save_upload(file)
    await _fan_out(db, students, current_user.id, content, file_path, file_name, False, "INDIVIDUAL")
    return BroadcastResult(
        message=f"Message sent to {len(students)} selected students successfully!",
        recipients=len(students),
        student_names=[s.name for s in students],
    )


async def send_email_to_students(
    db: AsyncSession,
    current_user: CurrentUser,
    student_ids: Union[str, List[int], None],
    subject: Optional[str],
    content: Optional[str],
    email_type: Optional[str],
    file: Optional[UploadFile] = None,
) -> EmailResult:
    """
    Email students or their parents and keep one EMAIL message as the record.

    Students without a parent email are skipped for PARENT emails. Delivery
    failures are counted, never raised.
    """
    if not content or not subject:
        raise ServiceError("Content and subject are required", status.HTTP_400_BAD_REQUEST)
    ids = list(dict.fromkeys(parse_id_list(student_ids, "Invalid recipients format")))
    if not ids:
        raise ServiceError("At least one recipient is required", status.HTTP_400_BAD_REQUEST)
    if email_type not in ("STUDENT", "PARENT"):
        raise ServiceError("Valid email type (STUDENT or PARENT) is required", status.HTTP_400_BAD_REQUEST)

    result = await db.execute(
        select(User).where(User.id.in_(ids), User.role == "STUDENT", User.is_active.is_(True))
    )
    students = result.scalars().all()
    if len(students) != len(ids):
        raise ServiceError("Some students not found or inactive", status.HTTP_400_BAD_REQUEST)

    file_path, file_name = await save_upload(file)
    sender = await db.get(User, current_user.id)
    sender_name = sender.name if sender else "Administration"

    successful: List[EmailRecipient] = []
    failed = 0
    skipped = 0
    for student in students:
        if email_type == "STUDENT":
            address = student.email
            html = broadcast_html(subject, content, sender_name)
        else:
            if not student.parent_email:
                logger.warning(f"Parent email not available for student {student.id} ({student.roll_number})")
                skipped += 1
                continue
            address = student.parent_email
            html = broadcast_html(subject, content, sender_name, student_name=student.name)
        if await send_email(address, subject, html):
            successful.append(
                EmailRecipient(
                    student_id=student.id,
                    student_name=student.name,
                    recipient_email=address,
                    recipient_type=email_type,
                )
            )
        else:
            failed += 1

    record = Message(
        student_id=successful[0].student_id if successful else None,
        staff_id=current_user.id,
        sender_id=current_user.id,
        content=content,
        file_path=file_path,
        file_name=file_name,
        is_announcement=False,
        message_type="EMAIL",
        email_type=email_type,
        email_recipients=json.dumps([r.model_dump() for r in successful]),
    )
    db.add(record)
    await commit_with_attachment(db, file_path)
    await db.refresh(record)
    logger.info(f"Email '{subject}' sent to {len(successful)}/{len(students)} recipients ({failed} failed)")

    return EmailResult(
        message=f"Email sent successfully to {len(successful)} recipients!",
        recipients=len(successful),
        total_attempted=len(students),
        sent=len(successful),
        failed=failed,
        skipped=skipped,
        message_id=record.id,
        email_type=email_type,
        successful_recipients=successful,
    )


async def _departments_and_classes(db: AsyncSession, users: Sequence[User]):
    dept_ids = {u.department_id for u in users if u.department_id}
    class_ids = {u.class_id for u in users if u.class_id}
    departments, classes = {}, {}
    if dept_ids:
        result = await db.execute(select(Department).where(Department.id.in_(dept_ids)))
        departments = {d.id: d for d in result.scalars().all()}
    if class_ids:
        result = await db.execute(select(SchoolClass).where(SchoolClass.id.in_(class_ids)))
        classes = {c.id: c for c in result.scalars().all()}
    return departments, classes


async def students_for_email(
    db: AsyncSession, class_id: Optional[int] = None, department_id: Optional[int] = None
) -> List[EmailStudent]:
    stmt = select(User).where(User.role == "STUDENT", User.is_active.is_(True))
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    if class_id:
        stmt = stmt.where(User.class_id == class_id)
    students = (await db.execute(stmt.order_by(User.name))).scalars().all()
    departments, classes = await _departments_and_classes(db, students)
    return [
        EmailStudent(
            id=s.id,
            name=s.name,
            email=s.email,
            parent_email=s.parent_email,
            roll_number=s.roll_number,
            class_=ClassRef.model_validate(classes[s.class_id]) if s.class_id in classes else None,
            department=DepartmentRef.model_validate(departments[s.department_id])
            if s.department_id in departments
            else None,
        )
        for s in students
    ]


async def admin_send(
    db: AsyncSession,
    current_user: CurrentUser,
    recipient_type: Optional[str],
    content: Optional[str],
    class_id: Optional[int] = None,
    department_id: Optional[int] = None,
    recipient_id: Optional[int] = None,
    file: Optional[UploadFile] = None,
) -> BroadcastResult:
    content = _require_content(content)
    if recipient_type not in ADMIN_RECIPIENT_TYPES:
        raise ServiceError("Valid message type is required", status.HTTP_400_BAD_REQUEST)

    active_students = select(User).where(User.role == "STUDENT", User.is_active.is_(True))
    if recipient_type == "all_students":
        stmt, message_type = active_students, "ALL_STUDENTS"
    elif recipient_type == "department":
        if not department_id:
            raise ServiceError("Department ID is required for department messages", status.HTTP_400_BAD_REQUEST)
        stmt, message_type = active_students.where(User.department_id == department_id), "DEPARTMENT"
    elif recipient_type == "class":
        if not class_id:
            raise ServiceError("Class ID is required for class messages", status.HTTP_400_BAD_REQUEST)
        stmt, message_type = active_students.where(User.class_id == class_id), "CLASS"
    elif recipient_type == "individual":
        if not recipient_id:
            raise ServiceError("Recipient ID is required for individual messages", status.HTTP_400_BAD_REQUEST)
        stmt, message_type = active_students.where(User.id == recipient_id), "INDIVIDUAL"
    else:
        stmt = select(User).where(User.role == "STAFF", User.is_active.is_(True))
        if department_id:
            stmt = stmt.where(User.department_id == department_id)
        message_type = "STAFF"

    recipients = (await db.execute(stmt.order_by(User.id))).scalars().all()
    if not recipients:
        if recipient_type == "individual":
            raise NotFoundError("Recipient not found")
        raise NotFoundError("No recipients found")

    file_path, file_name = await save_upload(file)
    is_announcement = recipient_type != "individual"
    if recipient_type == "staff":
        for staff in recipients:
            db.add(
                Message(
                    sender_id=current_user.id,
                    recipient_id=staff.id,
                    is_staff_message=True,
                    content=content,
                    file_path=file_path,
                    file_name=file_name,
                    is_announcement=is_announcement,
                    message_type=message_type,
                )
            )
        await commit_with_attachment(db, file_path)
    else:
        await _fan_out(
            db, recipients, current_user.id, content, file_path, file_name, is_announcement, message_type, class_id
        )

    return BroadcastResult(
        message=f"Message sent successfully to {len(recipients)} recipients!",
        recipients=len(recipients),
        is_announcement=is_announcement,
        message_type=recipient_type,
    )


async def departments_for_messaging(db: AsyncSession) -> List[CountedRef]:
    counts = (
        select(User.department_id, func.count(User.id).label("n"))
        .where(User.role == "STUDENT", User.is_active.is_(True))
        .group_by(User.department_id)
        .subquery()
    )
    result = await db.execute(
        select(Department.id, Department.name, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.department_id == Department.id)
        .where(Department.is_active.is_(True))
        .order_by(Department.name)
    )
    return [CountedRef(id=i, name=n, student_count=c) for i, n, c in result.all()]


async def classes_by_department(db: AsyncSession, department_id: int) -> List[CountedRef]:
    counts = (
        select(User.class_id, func.count(User.id).label("n"))
        .where(User.role == "STUDENT", User.is_active.is_(True))
        .group_by(User.class_id)
        .subquery()
    )
    result = await db.execute(
        select(SchoolClass.id, SchoolClass.name, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.class_id == SchoolClass.id)
        .where(SchoolClass.department_id == department_id)
        .order_by(SchoolClass.name)
    )
    return [CountedRef(id=i, name=n, student_count=c) for i, n, c in result.all()]


async def class_staff(db: AsyncSession, class_id: int) -> List[User]:
    """Active staff linked to the class; the legacy class teacher when there are no links."""
    result = await db.execute(
        select(User)
        .join(StaffClass, StaffClass.staff_id == User.id)
        .where(StaffClass.class_id == class_id, User.is_active.is_(True))
        .order_by(User.name)
    )
    staff = list(result.scalars().all())
    if staff:
        return staff
    cls = await db.get(SchoolClass, class_id)
    if cls and cls.staff_id:
        teacher = await db.get(User, cls.staff_id)
        if teacher and teacher.is_active:
            return [teacher]
    return []


async def assigned_staff(db: AsyncSession, current_user: CurrentUser) -> AssignedStaffResponse:
    student = await db.get(User, current_user.id)
    if not student or not student.class_id:
        raise NotFoundError("Student class not found")
    cls = await db.get(SchoolClass, student.class_id)
    staff = await class_staff(db, student.class_id)
    return AssignedStaffResponse(
        student_class=ClassRef.model_validate(cls) if cls else None,
        assigned_staff=[StaffRef.model_validate(s) for s in staff],
        total_staff=len(staff),
    )


async def student_to_staff(
    db: AsyncSession,
    current_user: CurrentUser,
    staff_id: Optional[int],
    content: Optional[str],
    student_message_type: Optional[str] = "question",
    file: Optional[UploadFile] = None,
) -> DirectMessageResult:
    content = _require_content(content, "Message content is required")
    if not staff_id:
        raise ServiceError("Staff ID is required", status.HTTP_400_BAD_REQUEST)
    student_message_type = student_message_type or "question"
    if student_message_type not in STUDENT_MESSAGE_TYPES:
        raise ServiceError("Invalid message type", status.HTTP_400_BAD_REQUEST)

    student = await db.get(User, current_user.id)
    if not student or not student.class_id:
        raise ServiceError("Student must be assigned to a class to send messages", status.HTTP_400_BAD_REQUEST)
    if staff_id not in {s.id for s in await class_staff(db, student.class_id)}:
        raise PermissionDeniedError("You can only send messages to staff assigned to your class")

    file_path, file_name = await save_upload(file)
    message = Message(
        student_id=student.id,
        staff_id=staff_id,
        sender_id=student.id,
        content=content,
        file_path=file_path,
        file_name=file_name,
        is_announcement=False,
        message_type="STUDENT_TO_STAFF",
        class_id=student.class_id,
        student_message_type=student_message_type,
    )
    db.add(message)
    await commit_with_attachment(db, file_path)
    await db.refresh(message)
    return DirectMessageResult(
        message="Message sent successfully to staff member",
        data=(await message_responses(db, [message]))[0],
        message_type=student_message_type,
    )


async def sent_to_staff(db: AsyncSession, current_user: CurrentUser, page: int, page_size: int) -> MessagePage:
    filters = [Message.student_id == current_user.id, Message.message_type == "STUDENT_TO_STAFF"]
    return await _message_page(db, filters, page, page_size, SENT_PAGE_SIZE)


async def staff_class_ids(db: AsyncSession, staff_id: int) -> List[int]:
    """Classes a staff member teaches, from assignments and the legacy class teacher column."""
    linked = await db.execute(select(StaffClass.class_id).where(StaffClass.staff_id == staff_id))
    managed = await db.execute(select(SchoolClass.id).where(SchoolClass.staff_id == staff_id))
    return sorted(set(linked.scalars().all()) | set(managed.scalars().all()))


async def from_students(db: AsyncSession, current_user: CurrentUser, page: int, page_size: int) -> FromStudentsPage:
    class_ids = await staff_class_ids(db, current_user.id)
    if not class_ids:
        page, page_size, _ = clamp_page(page, page_size, SENT_PAGE_SIZE, MAX_PAGE_SIZE)
        return FromStudentsPage(**page_payload([], 0, page, page_size), assigned_classes=0)
    filters = [
        Message.staff_id == current_user.id,
        Message.message_type == "STUDENT_TO_STAFF",
        Message.class_id.in_(class_ids),
    ]
    result = await _message_page(db, filters, page, page_size, SENT_PAGE_SIZE)
    return FromStudentsPage(**dict(result), assigned_classes=len(class_ids))


async def reply_to_student(
    db: AsyncSession,
    current_user: CurrentUser,
    original_message_id: Optional[int],
    content: Optional[str],
    file: Optional[UploadFile] = None,
) -> DirectMessageResult:
    content = _require_content(content, "Reply content is required")
    if not original_message_id:
        raise ServiceError("Original message ID is required", status.HTTP_400_BAD_REQUEST)
    original = await db.get(Message, original_message_id)
    if (
        not original
        or original.staff_id != current_user.id
        or original.message_type != "STUDENT_TO_STAFF"
    ):
        raise NotFoundError("Original message not found or you do not have permission to reply")

    file_path, file_name = await save_upload(file)
    reply = Message(
        student_id=original.student_id,
        staff_id=current_user.id,
        sender_id=current_user.id,
        content=content,
        file_path=file_path,
        file_name=file_name,
        is_announcement=False,
        message_type="STAFF_REPLY",
        class_id=original.class_id,
        reply_to_message_id=original.id,
    )
    db.add(reply)
    await commit_with_attachment(db, file_path)
    await db.refresh(reply)
    return DirectMessageResult(
        message="Reply sent successfully",
        data=(await message_responses(db, [reply]))[0],
        original_message_id=original.id,
    )


async def staff_by_department(db: AsyncSession, department_id: Optional[int]) -> List[StaffWithDepartment]:
    """Active staff, optionally limited to one department."""
    stmt = select(User).where(User.role == "STAFF", User.is_active.is_(True))
    if department_id is not None:
        stmt = stmt.where(User.department_id == department_id)
    staff = (await db.execute(stmt.order_by(User.name))).scalars().all()
    departments, _ = await _departments_and_classes(db, staff)
    return [
        StaffWithDepartment(
            id=s.id,
            name=s.name,
            email=s.email,
            department=DepartmentRef.model_validate(departments[s.department_id])
            if s.department_id in departments
            else None,
        )
        for s in staff
    ]
