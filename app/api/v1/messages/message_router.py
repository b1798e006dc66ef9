from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin, require_staff, require_staff_or_admin, require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AssignedStaffResponse,
    BroadcastResult,
    CountedRef,
    DirectMessageResult,
    EmailResult,
    EmailStudent,
    FromStudentsPage,
    MessageOut,
    MessagePage,
    ReadResponse,
    StaffWithDepartment,
)
from . import service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("/send", response_model=Union[MessageOut, BroadcastResult], status_code=status.HTTP_201_CREATED)
async def send_message(
    content: Optional[str] = Form(None),
    student_id: Optional[int] = Form(None),
    is_announcement: bool = Form(False),
    class_id: Optional[str] = Form(None),
    department_id: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> Union[MessageOut, BroadcastResult]:
    """Send to one student, or fan out an announcement when is_announcement is set."""
    try:
        return await service.send_message(
            db,
            current_user,
            content,
            student_id=student_id,
            is_announcement=is_announcement,
            class_id=service.optional_id(class_id),
            department_id=service.optional_id(department_id),
            file=file,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/announcement", response_model=BroadcastResult, status_code=status.HTTP_201_CREATED)
async def send_announcement(
    content: Optional[str] = Form(None),
    class_id: Optional[str] = Form(None),
    department_id: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> BroadcastResult:
    try:
        return await service.send_announcement(
            db,
            current_user,
            content,
            class_id=service.optional_id(class_id),
            department_id=service.optional_id(department_id),
            file=file,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/sent", response_model=MessagePage)
async def list_sent(
    page: int = Query(1),
    page_size: int = Query(service.SENT_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> MessagePage:
    return await service.list_sent(db, current_user, page, page_size)


@router.get("/received", response_model=MessagePage)
async def list_received(
    page: int = Query(1),
    page_size: int = Query(service.RECEIVED_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> MessagePage:
    return await service.list_received(db, current_user, page, page_size)


@router.api_route("/{message_id}/read", methods=["PATCH", "PUT"], response_model=ReadResponse)
async def mark_read(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ReadResponse:
    if not await service.mark_read(db, current_user, message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return ReadResponse()


@router.get("/download/{message_id}")
async def download_attachment(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FileResponse:
    try:
        path, file_name = await service.get_download(db, current_user, message_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return FileResponse(path, filename=file_name or path.name)


@router.post("/send-to-class", response_model=BroadcastResult, status_code=status.HTTP_201_CREATED)
async def send_to_class(
    class_id: Optional[int] = Form(None),
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> BroadcastResult:
    try:
        return await service.send_to_class(db, current_user, class_id, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/send-to-group", response_model=BroadcastResult, status_code=status.HTTP_201_CREATED)
async def send_to_group(
    student_ids: Optional[str] = Form(None, description="JSON array of student ids"),
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> BroadcastResult:
    try:
        return await service.send_to_group(db, current_user, student_ids, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/send-to-all-students", response_model=BroadcastResult, status_code=status.HTTP_201_CREATED)
async def send_to_all_students(
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff_or_admin),
) -> BroadcastResult:
    try:
        return await service.send_announcement(db, current_user, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/send-email", response_model=EmailResult, status_code=status.HTTP_201_CREATED)
async def send_email(
    student_ids: Optional[str] = Form(None, description="JSON array of student ids"),
    subject: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    email_type: Optional[str] = Form(None, description="STUDENT or PARENT"),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> EmailResult:
    try:
        return await service.send_email_to_students(
            db, current_user, student_ids, subject, content, email_type, file=file
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students-for-email", response_model=List[EmailStudent])
async def students_for_email(
    class_id: Optional[str] = Query(None),
    department_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[EmailStudent]:
    try:
        return await service.students_for_email(
            db, class_id=service.optional_id(class_id), department_id=service.optional_id(department_id)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/admin-send", response_model=BroadcastResult, status_code=status.HTTP_201_CREATED)
async def admin_send(
    content: Optional[str] = Form(None),
    recipient_type: Optional[str] = Form(None, description="all_students, class, department, individual or staff"),
    class_id: Optional[str] = Form(None),
    department_id: Optional[str] = Form(None),
    recipient_id: Optional[int] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> BroadcastResult:
    try:
        return await service.admin_send(
            db,
            current_user,
            recipient_type,
            content,
            class_id=service.optional_id(class_id),
            department_id=service.optional_id(department_id),
            recipient_id=recipient_id,
            file=file,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/departments", response_model=List[CountedRef])
async def departments_for_messaging(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[CountedRef]:
    return await service.departments_for_messaging(db)


@router.get("/classes-by-department/{department_id}", response_model=List[CountedRef])
async def classes_by_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[CountedRef]:
    return await service.classes_by_department(db, department_id)


@router.get("/assigned-staff", response_model=AssignedStaffResponse)
async def assigned_staff(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> AssignedStaffResponse:
    try:
        return await service.assigned_staff(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/student-to-staff", response_model=DirectMessageResult, status_code=status.HTTP_201_CREATED)
async def student_to_staff(
    staff_id: Optional[int] = Form(None),
    content: Optional[str] = Form(None),
    student_message_type: Optional[str] = Form("question"),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> DirectMessageResult:
    """Students may only write to staff who teach their class."""
    try:
        return await service.student_to_staff(
            db, current_user, staff_id, content, student_message_type=student_message_type, file=file
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/sent-to-staff", response_model=MessagePage)
async def sent_to_staff(
    page: int = Query(1),
    page_size: int = Query(service.SENT_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> MessagePage:
    return await service.sent_to_staff(db, current_user, page, page_size)


@router.get("/from-students", response_model=FromStudentsPage)
async def from_students(
    page: int = Query(1),
    page_size: int = Query(service.SENT_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> FromStudentsPage:
    return await service.from_students(db, current_user, page, page_size)


@router.post("/reply-to-student", response_model=DirectMessageResult, status_code=status.HTTP_201_CREATED)
async def reply_to_student_form(
    original_message_id: Optional[int] = Form(None),
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> DirectMessageResult:
    try:
        return await service.reply_to_student(db, current_user, original_message_id, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/reply-to-student/{message_id}",
    response_model=DirectMessageResult,
    status_code=status.HTTP_201_CREATED,
)
async def reply_to_student(
    message_id: int,
    content: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> DirectMessageResult:
    try:
        return await service.reply_to_student(db, current_user, message_id, content, file=file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/staff-by-department/{department_id}", response_model=List[StaffWithDepartment])
async def staff_by_department(
    department_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> List[StaffWithDepartment]:
    """department_id may be ALL."""
    try:
        return await service.staff_by_department(db, service.optional_id(department_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
