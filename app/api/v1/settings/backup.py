"""
Database backups.

A backup is a plain SQL file of INSERT statements, one block per table, written
straight into a zip archive under BACKUP_DIR. Department backups hold just that
department with its classes, users, and its students' messages and attendance.
A date range limits the time-stamped rows (users, messages, attendance, login
logs) by creation time.
"""

import logging
import re
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, List, Optional, Sequence

from fastapi import status
from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import LoginLog, User
from app.core.config import settings
from app.core.exceptions import NotFoundError, ServiceError
from app.core.models import Attendance, Department, Message, SchoolClass, StaffClass

from .schemas import BackupFile, BackupList, BackupRequest, BackupResult

logger = logging.getLogger(__name__)

BACKUP_TYPES = ("full", "department")
BACKUP_SUFFIXES = (".zip", ".sql")


def backup_dir() -> Path:
    return Path(settings.backup_dir)


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat()}'"
    return "'" + str(value).replace("'", "''") + "'"


def insert_block(table: Table, rows: Sequence[Any]) -> str:
    if not rows:
        return ""
    columns = [c.name for c in table.columns]
    values = ",\n".join("(" + ", ".join(sql_literal(row[c]) for c in columns) + ")" for row in rows)
    quoted = ", ".join(f'"{c}"' for c in columns)
    return f'-- {table.name}\nINSERT INTO "{table.name}" ({quoted}) VALUES\n{values};\n\n'


def created_between(model, date_from: Optional[date], date_to: Optional[date]) -> List[Any]:
    conditions = []
    if date_from:
        conditions.append(model.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        conditions.append(model.created_at <= datetime.combine(date_to, time.max))
    return conditions


async def _rows(db: AsyncSession, model, *conditions) -> Sequence[Any]:
    table = model.__table__
    result = await db.execute(select(table).where(*conditions).order_by(table.c.id))
    return result.mappings().all()


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_") or "department"


async def _full_dump(db: AsyncSession, date_from, date_to) -> List[str]:
    blocks = []
    blocks.append(insert_block(Department.__table__, await _rows(db, Department)))
    blocks.append(insert_block(User.__table__, await _rows(db, User, *created_between(User, date_from, date_to))))
    blocks.append(insert_block(SchoolClass.__table__, await _rows(db, SchoolClass)))
    blocks.append(insert_block(StaffClass.__table__, await _rows(db, StaffClass)))
    for model in (Message, Attendance, LoginLog):
        blocks.append(insert_block(model.__table__, await _rows(db, model, *created_between(model, date_from, date_to))))
    return blocks


async def _department_dump(db: AsyncSession, department_id: int, date_from, date_to) -> List[str]:
    students = select(User.id).where(User.department_id == department_id, User.role == "STUDENT")
    classes = select(SchoolClass.id).where(SchoolClass.department_id == department_id)
    return [
        insert_block(Department.__table__, await _rows(db, Department, Department.id == department_id)),
        insert_block(User.__table__, await _rows(db, User, User.department_id == department_id)),
        insert_block(SchoolClass.__table__, await _rows(db, SchoolClass, SchoolClass.department_id == department_id)),
        insert_block(StaffClass.__table__, await _rows(db, StaffClass, StaffClass.class_id.in_(classes))),
        insert_block(
            Message.__table__,
            await _rows(db, Message, Message.student_id.in_(students), *created_between(Message, date_from, date_to)),
        ),
        insert_block(
            Attendance.__table__,
            await _rows(
                db, Attendance, Attendance.student_id.in_(students), *created_between(Attendance, date_from, date_to)
            ),
        ),
    ]


async def create_backup(db: AsyncSession, payload: BackupRequest) -> BackupResult:
    if payload.backup_type not in BACKUP_TYPES:
        raise ServiceError("Backup type must be full or department", status.HTTP_400_BAD_REQUEST)

    now = datetime.utcnow()
    timestamp = now.isoformat().replace(":", "-").replace(".", "-")
    header = [
        "-- College attendance system backup",
        f"-- Generated on: {now.isoformat()}",
    ]

    name = "backup"
    department_id = None
    if payload.backup_type == "department":
        if not payload.department_id:
            raise ServiceError("Department is required for a department backup", status.HTTP_400_BAD_REQUEST)
        department = await db.get(Department, payload.department_id)
        if not department:
            raise NotFoundError("Department not found")
        department_id = department.id
        name = f"department_{_safe_name(department.name)}_backup"
        header.append(f"-- Department ID: {department.id}")
    if payload.date_from or payload.date_to:
        start = payload.date_from.isoformat() if payload.date_from else "start"
        end = payload.date_to.isoformat() if payload.date_to else "end"
        name += f"_{start}_to_{end}"
        header.append(f"-- Date Range: {start} to {end}")

    if department_id:
        blocks = await _department_dump(db, department_id, payload.date_from, payload.date_to)
    else:
        blocks = await _full_dump(db, payload.date_from, payload.date_to)
    content = "\n".join(header) + "\n\n" + "".join(blocks)

    sql_file = f"{name}_{timestamp}.sql"
    zip_file = f"{name}_{timestamp}.zip"
    target_dir = backup_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    zip_path = target_dir / zip_file
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        archive.writestr(sql_file, content)

    size = zip_path.stat().st_size
    logger.info(f"Created {payload.backup_type} backup {zip_file} ({size} bytes)")
    return BackupResult(
        message="Backup created successfully",
        sql_file=sql_file,
        zip_file=zip_file,
        size=size,
        timestamp=timestamp,
        backup_type=payload.backup_type,
        department_id=department_id,
    )


def list_backups() -> BackupList:
    directory = backup_dir()
    if not directory.is_dir():
        return BackupList(backups=[])
    files = []
    for path in directory.iterdir():
        if not path.is_file() or path.suffix not in BACKUP_SUFFIXES:
            continue
        stat = path.stat()
        files.append(
            BackupFile(
                filename=path.name,
                size=stat.st_size,
                created=datetime.utcfromtimestamp(stat.st_mtime),
                type=path.suffix.lstrip("."),
            )
        )
    files.sort(key=lambda f: f.created, reverse=True)
    return BackupList(backups=files)


def resolve_backup(filename: str) -> Path:
    """Path of an existing backup file; rejects anything that could leave BACKUP_DIR."""
    if ".." in filename or "/" in filename or "\\" in filename:
        raise ServiceError("Invalid filename", status.HTTP_400_BAD_REQUEST)
    path = backup_dir() / filename
    if not path.is_file():
        raise NotFoundError("Backup file not found")
    return path
