from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.core.schemas import ClassRef


class LoginRequest(BaseModel):
    # Optional so that a missing field yields the same 400 as an empty one
    email: Optional[str] = None
    password: Optional[str] = None


class UserInfo(BaseModel):
    id: int
    name: str
    email: str
    role: str
    roll_number: Optional[str] = None
    # Student's own class
    class_: Optional[ClassRef] = Field(None, alias="class")
    # Class whose class teacher is this staff member
    managed_class: Optional[ClassRef] = None
    department_id: Optional[int] = None

    class Config:
        populate_by_name = True


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserInfo


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role checks."""

    id: int
    name: str
    email: str
    role: str
    department_id: Optional[int] = None
    class_id: Optional[int] = None
    roll_number: Optional[str] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True
