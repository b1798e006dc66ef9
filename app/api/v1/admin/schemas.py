from datetime import datetime

from pydantic import BaseModel


class Activity(BaseModel):
    id: str
    type: str
    description: str
    timestamp: datetime
    icon: str
    color: str


class DashboardStats(BaseModel):
    total_students: int
    total_staff: int
    total_classes: int
    messages_this_week: int
    attendance_today: int
    active_students: int
    active_staff: int
    new_registrations: int
    attendance_rate: int
    average_login: int
    classes_with_low_attendance: int
    top_performing_class: str
