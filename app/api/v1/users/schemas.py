from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.schemas import ClassRef, DepartmentRef, UserRef


# ----- Students -----

class StudentCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None
    roll_number: Optional[str] = Field(None, max_length=50)
    parent_email: Optional[str] = None
    password: Optional[str] = None
    class_id: Optional[int] = None
    department_id: Optional[int] = None


class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None
    roll_number: Optional[str] = Field(None, max_length=50)
    parent_email: Optional[str] = None
    password: Optional[str] = None
    class_id: Optional[int] = None
    department_id: Optional[int] = None


class StudentResponse(BaseModel):
    id: int
    name: str
    email: str
    roll_number: Optional[str] = None
    parent_email: Optional[str] = None
    class_id: Optional[int] = None
    department_id: Optional[int] = None
    class_: Optional[ClassRef] = Field(None, alias="class")
    department: Optional[DepartmentRef] = None

    class Config:
        populate_by_name = True


class StudentListResponse(BaseModel):
    rows: List[StudentResponse]
    count: int
    current_page: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class StudentBrief(BaseModel):
    id: int
    name: str
    email: str
    roll_number: Optional[str] = None
    class_id: Optional[int] = None

    class Config:
        from_attributes = True


# ----- Staff -----

class StaffCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None
    password: Optional[str] = None
    department_id: Optional[int] = None
    class_id: Optional[int] = None
    # Assign an existing class by name, or create it in the staff member's department
    class_name: Optional[str] = None


class StaffUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None
    password: Optional[str] = None
    department_id: Optional[int] = None
    class_id: Optional[int] = None
    class_name: Optional[str] = None


class StaffResponse(BaseModel):
    id: int
    name: str
    email: str
    department_id: Optional[int] = None
    department: Optional[DepartmentRef] = None
    managed_class: Optional[ClassRef] = None


class StaffListItem(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department_id: Optional[int] = None
    department: Optional[DepartmentRef] = None
    managed_class: Optional[ClassRef] = None
    assigned_classes: List[ClassRef] = []
    managed_classes: List[ClassRef] = []
    status: str
    join_date: datetime
    last_login: Optional[datetime] = None


# ----- Classes (admin management) -----

class UserClassCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    staff_id: Optional[int] = None
    department_id: Optional[int] = None


class UserClassUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    staff_id: Optional[int] = None
    department_id: Optional[int] = None


class UserClassResponse(BaseModel):
    id: int
    name: str
    staff_id: Optional[int] = None
    department_id: Optional[int] = None
    staff: Optional[UserRef] = None
    department: Optional[DepartmentRef] = None
    student_count: int = 0


class StudentIdsRequest(BaseModel):
    student_ids: List[int] = []


class AssignedStudentsResponse(BaseModel):
    message: str
    students: List[StudentBrief]


# ----- Staff <-> class assignments -----

class ClassIdsRequest(BaseModel):
    class_ids: List[int] = []


class AssignedClass(BaseModel):
    id: int
    name: str
    assigned_at: Optional[datetime] = None


class AssignedClassDetail(AssignedClass):
    assigned_by: Optional[UserRef] = None
    department: Optional[DepartmentRef] = None


class StaffAssignments(BaseModel):
    id: int
    name: str
    email: str
    department: Optional[DepartmentRef] = None
    assigned_classes: List[AssignedClass] = []


class StaffAssignmentsResponse(BaseModel):
    message: str
    staff: StaffAssignments


class StaffSummary(BaseModel):
    id: int
    name: str
    email: str
    department: Optional[DepartmentRef] = None


class StaffClassesResponse(BaseModel):
    staff: StaffSummary
    assigned_classes: List[AssignedClassDetail]


class AvailableClass(BaseModel):
    id: int
    name: str
    department_id: Optional[int] = None
    department: Optional[DepartmentRef] = None
    staff: Optional[UserRef] = None


class AvailableStaffRef(BaseModel):
    id: int
    department: Optional[DepartmentRef] = None


class AvailableClassesResponse(BaseModel):
    staff: AvailableStaffRef
    available_classes: List[AvailableClass]


# ----- Profiles -----

class ProfileDepartment(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    head: Optional[UserRef] = None
    student_count: int = 0
    staff_count: int = 0
    class_count: int = 0


class ProfileClass(BaseModel):
    id: int
    name: str
    staff: Optional[UserRef] = None


class ClassWithCount(BaseModel):
    id: int
    name: str
    student_count: int


class StudentProfile(BaseModel):
    id: int
    name: str
    email: str
    role: str = "STUDENT"
    roll_number: Optional[str] = None
    parent_email: Optional[str] = None
    class_id: Optional[int] = None
    department_id: Optional[int] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    class_: Optional[ProfileClass] = Field(None, alias="class")
    department: Optional[ProfileDepartment] = None

    class Config:
        populate_by_name = True


class StaffProfile(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department_id: Optional[int] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    managed_class: Optional[ClassRef] = None
    department: Optional[ProfileDepartment] = None
    managed_classes: Optional[List[ClassWithCount]] = None
    assigned_classes: Optional[List[ClassWithCount]] = None
