from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.enums import AttendanceStatus


class AttendanceMarkItem(BaseModel):
    student_id: int
    status: AttendanceStatus
    remarks: Optional[str] = None


class AttendanceMarkRequest(BaseModel):
    mark_date: Optional[date] = Field(None, alias="date")
    class_id: Optional[int] = None
    attendance: Optional[List[AttendanceMarkItem]] = None

    class Config:
        populate_by_name = True


class AttendanceMarkResult(BaseModel):
    student_id: int
    status: AttendanceStatus
    created: bool
    updated: bool


class AttendanceMarkResponse(BaseModel):
    message: str
    results: List[AttendanceMarkResult]
    notifications_sent: int = 0


class DailyAttendanceRow(BaseModel):
    student_id: int
    student_name: str
    roll_number: Optional[str] = None
    status: Optional[AttendanceStatus] = None
    remarks: Optional[str] = None


class AttendanceRecord(BaseModel):
    id: int
    student_id: int
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    created_at: datetime


class AttendanceSummary(BaseModel):
    total_days: int
    present_days: int
    absent_days: int
    percentage: float


class AttendancePagination(BaseModel):
    page: int
    page_size: int
    total_records: int
    total_pages: int
    has_next: bool
    has_prev: bool


class MyAttendanceResponse(BaseModel):
    attendance: List[AttendanceRecord]
    summary: AttendanceSummary
    pagination: AttendancePagination


class ReportStudent(BaseModel):
    id: int
    name: str
    roll_number: Optional[str] = None
    class_id: Optional[int] = None
    department_id: Optional[int] = None

    class Config:
        from_attributes = True


class StudentAttendanceReport(AttendanceSummary):
    student: ReportStudent
    records: List[AttendanceRecord] = Field(default_factory=list)


class ClassAttendanceStats(BaseModel):
    attendance_rate: int
    last_activity: Optional[date] = None
    total_marked: int
