from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.schemas import ClassRef, DepartmentRef


class StudentRef(BaseModel):
    id: int
    name: str
    roll_number: Optional[str] = None
    class_id: Optional[int] = None

    class Config:
        from_attributes = True


class StaffRef(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    role: Optional[str] = None

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    id: int
    content: str
    file_name: Optional[str] = None
    has_file: bool = False
    is_announcement: bool
    is_read: bool
    is_staff_message: bool
    message_type: str
    student_message_type: Optional[str] = None
    reply_to_message_id: Optional[int] = None
    email_type: Optional[str] = None
    class_id: Optional[int] = None
    student_id: Optional[int] = None
    staff_id: Optional[int] = None
    sender_id: Optional[int] = None
    recipient_id: Optional[int] = None
    created_at: datetime
    student: Optional[StudentRef] = None
    staff: Optional[StaffRef] = None
    sender: Optional[StaffRef] = None
    recipient: Optional[StaffRef] = None
    class_: Optional[ClassRef] = Field(None, alias="class")

    class Config:
        populate_by_name = True


class MessagePage(BaseModel):
    rows: List[MessageOut]
    count: int
    current_page: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class FromStudentsPage(MessagePage):
    assigned_classes: int = 0


class BroadcastResult(BaseModel):
    message: str
    recipients: int
    is_announcement: bool = False
    class_id: Optional[int] = None
    student_names: Optional[List[str]] = None
    message_type: Optional[str] = None


class EmailRecipient(BaseModel):
    student_id: int
    student_name: str
    recipient_email: str
    recipient_type: str


class EmailResult(BaseModel):
    message: str
    recipients: int
    total_attempted: int
    sent: int
    failed: int
    skipped: int
    message_id: Optional[int] = None
    email_type: str
    successful_recipients: List[EmailRecipient]


class EmailStudent(BaseModel):
    id: int
    name: str
    email: str
    parent_email: Optional[str] = None
    roll_number: Optional[str] = None
    class_: Optional[ClassRef] = Field(None, alias="class")
    department: Optional[DepartmentRef] = None

    class Config:
        populate_by_name = True


class CountedRef(BaseModel):
    id: int
    name: str
    student_count: int


class AssignedStaffResponse(BaseModel):
    student_class: Optional[ClassRef] = None
    assigned_staff: List[StaffRef]
    total_staff: int


class DirectMessageResult(BaseModel):
    message: str
    data: MessageOut
    message_type: Optional[str] = None
    original_message_id: Optional[int] = None


class StaffWithDepartment(BaseModel):
    id: int
    name: str
    email: str
    department: Optional[DepartmentRef] = None


class ReadResponse(BaseModel):
    message: str = "Message marked as read"

