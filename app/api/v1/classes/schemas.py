from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.schemas import UserRef


class ClassCreate(BaseModel):
    # Optional so missing fields surface as 400 with a readable message
    name: Optional[str] = Field(None, max_length=100)
    department_id: Optional[int] = None
    staff_id: Optional[int] = None


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    department_id: Optional[int] = None
    staff_id: Optional[int] = None


class ClassDepartment(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ClassResponse(BaseModel):
    id: int
    name: str
    staff_id: Optional[int] = None
    department_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    department: Optional[ClassDepartment] = None
    # Class teacher
    staff: Optional[UserRef] = None
    student_count: int = 0


class DeletedClass(BaseModel):
    id: int
    name: str


class ClassDeleteResponse(BaseModel):
    message: str
    deleted_class: DeletedClass


class ClassStats(BaseModel):
    class_id: int
    class_name: str
    students_count: int
    staff_count: int
    incharge: Optional[UserRef] = None
    total_members: int


class ClassAssignStudents(BaseModel):
    student_ids: List[int] = []


class ClassAssignResponse(BaseModel):
    message: str
    assigned_count: int
    class_id: int
