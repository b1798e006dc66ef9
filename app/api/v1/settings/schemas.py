from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AdminDetails(BaseModel):
    id: int
    name: str
    email: str
    role: str
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    login_count: int = 0

    class Config:
        from_attributes = True


class SystemStats(BaseModel):
    total_users: int
    total_messages: int
    total_attendance: int
    total_classes: int
    database_size: str


class AdminDetailsResponse(BaseModel):
    admin: AdminDetails
    system_stats: SystemStats


class AdminDetailsUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None


class AdminDetailsUpdateResponse(BaseModel):
    message: str
    admin: AdminDetails


class BackupRequest(BaseModel):
    backup_type: str = "full"  # full | department
    department_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class BackupResult(BaseModel):
    message: str
    sql_file: str
    zip_file: str
    size: int
    timestamp: str
    backup_type: str
    department_id: Optional[int] = None


class BackupFile(BaseModel):
    filename: str
    size: int
    created: datetime
    type: str


class BackupList(BaseModel):
    backups: List[BackupFile]


class CleanupRequest(BaseModel):
    cleanup_type: str = "data_only"  # data_only | complete_department_deletion
    retention_days: int = 30
    department_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    delete_important_data: bool = False


class CleanupResponse(BaseModel):
    message: str
    results: Dict[str, int]
    cleanup_type: str
    department_id: Optional[int] = None


class CleanupPreviewResponse(BaseModel):
    retention_days: int
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    department_id: Optional[int] = None
    cleanup_type: str
    delete_important_data: bool
    preview: Dict[str, int]
