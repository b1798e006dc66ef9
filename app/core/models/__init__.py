from app.core.models.attendance import Attendance
from app.core.models.class_model import SchoolClass
from app.core.models.department import Department
from app.core.models.message import Message
from app.core.models.staff_class import StaffClass

__all__ = [
    "Attendance",
    "Department",
    "Message",
    "SchoolClass",
    "StaffClass",
]
