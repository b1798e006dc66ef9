from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.schemas import DepartmentRef, UserRef


class DepartmentCreate(BaseModel):
    # Optional so a missing name is reported as 400 like an empty one
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    head_id: Optional[int] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    head_id: Optional[int] = None
    is_active: Optional[bool] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    head_id: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DepartmentListItem(DepartmentResponse):
    head: Optional[UserRef] = None
    student_count: int = 0
    class_count: int = 0


class DepartmentClassItem(BaseModel):
    id: int
    name: str
    staff: Optional[UserRef] = None


class DepartmentDetail(DepartmentResponse):
    head: Optional[UserRef] = None
    classes: List[DepartmentClassItem] = Field(default_factory=list)
    student_count: int = 0
    staff_count: int = 0
    class_count: int = 0


class DepartmentStats(BaseModel):
    student_count: int
    staff_count: int
    class_count: int
    active_students: int
    inactive_students: int


class AssignStaffRequest(BaseModel):
    staff_ids: List[int] = Field(..., min_length=1)


class AssignStudentsRequest(BaseModel):
    student_ids: List[int] = Field(..., min_length=1)


class UnassignedStudent(BaseModel):
    id: int
    name: str
    email: str
    roll_number: Optional[str] = None

    class Config:
        from_attributes = True


class AvailableStaff(BaseModel):
    id: int
    name: str
    email: str
    department: Optional[DepartmentRef] = None
