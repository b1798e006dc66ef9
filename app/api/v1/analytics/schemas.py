from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from app.core.schemas import DepartmentRef


class AttendanceTrendPoint(BaseModel):
    date: date
    rate: int
    total: int


class DepartmentPerformance(BaseModel):
    department_id: int
    department_name: str
    student_count: int
    staff_count: int
    class_count: int
    attendance_rate: int
    messages_count: int
    head_name: str


class StaffActivity(BaseModel):
    staff_id: int
    staff_name: str
    department_name: str
    classes_managed: int
    messages_count: int
    attendance_marked: int
    last_active: Optional[datetime] = None


class SystemActivityPoint(BaseModel):
    date: date
    logins: int
    messages: int
    attendance_records: int


class LoginUser(BaseModel):
    id: int
    name: str
    email: str
    role: str


class TopLoginUser(BaseModel):
    user: LoginUser
    login_count: int


class LoginStats(BaseModel):
    total_attempts: int
    total_logins: int
    successful_logins: int
    failed_logins: int
    unique_users: int
    role_stats: Dict[str, int]
    top_users: List[TopLoginUser]


class DepartmentComparison(BaseModel):
    department_id: int
    department_name: str
    student_count: int
    staff_count: int
    class_count: int
    recent_attendance_rate: int
    recent_messages: int
    efficiency: int


class DepartmentTrendPoint(BaseModel):
    date: date
    attendance_rate: int
    message_count: int
    active_students: int


class DepartmentTrendSummary(BaseModel):
    total_students: int
    avg_attendance_rate: int
    total_messages: int


class DepartmentTrends(BaseModel):
    department: DepartmentRef
    trends: List[DepartmentTrendPoint]
    summary: DepartmentTrendSummary
