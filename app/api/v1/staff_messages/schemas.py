from typing import List, Optional

from pydantic import BaseModel

from app.core.schemas import DepartmentRef
from app.api.v1.messages.schemas import MessageOut


class ConversationResponse(BaseModel):
    messages: List[MessageOut]
    user_role: str


class UnreadCount(BaseModel):
    unread_count: int


class StaffMember(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department_id: Optional[int] = None
    department: Optional[DepartmentRef] = None


class StaffListResponse(BaseModel):
    staff: List[StaffMember]


class AdminListResponse(BaseModel):
    admins: List[StaffMember]


class StaffMessageSent(BaseModel):
    message: str
    data: MessageOut
