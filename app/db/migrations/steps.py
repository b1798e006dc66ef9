"""
Schema migration steps.

Every step inspects the live schema first and only adds what is missing, so
running the whole list again is a no-op. Steps receive a connection inside
their own transaction.
"""

import logging
from typing import List

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection

from app.auth.models import LoginLog, User
from app.core.models import Attendance, Department, Message, SchoolClass, StaffClass
from app.db.session import Base

logger = logging.getLogger(__name__)

TIMESTAMP = "TIMESTAMP WITH TIME ZONE"


async def table_names(conn: AsyncConnection) -> List[str]:
    return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())


async def column_names(conn: AsyncConnection, table: str) -> List[str]:
    return await conn.run_sync(
        lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns(table)]
    )


async def create_tables(conn: AsyncConnection, *models) -> None:
    existing = await table_names(conn)
    missing = [m.__table__ for m in models if m.__tablename__ not in existing]
    if not missing:
        return
    await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=missing, checkfirst=True))
    logger.info(f"Created tables: {', '.join(t.name for t in missing)}")


async def add_column(conn: AsyncConnection, table: str, column: str, ddl: str) -> bool:
    if column in await column_names(conn, table):
        return False
    await conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
    logger.info(f"Added {table}.{column}")
    return True


async def create_index(conn: AsyncConnection, name: str, table: str, columns: str) -> None:
    await conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({columns})"))


async def base_tables(conn: AsyncConnection) -> None:
    await create_tables(conn, Department, User, SchoolClass, Message, Attendance)


async def login_tracking(conn: AsyncConnection) -> None:
    await add_column(conn, "users", "last_login", f"{TIMESTAMP} NULL")
    await add_column(conn, "users", "login_count", "INTEGER NOT NULL DEFAULT 0")
    await create_tables(conn, LoginLog)
    await create_index(conn, "ix_login_logs_user_id", "login_logs", "user_id")
    await create_index(conn, "ix_login_logs_login_time", "login_logs", "login_time")
    await create_index(conn, "ix_login_logs_success", "login_logs", "success")


async def department_fields(conn: AsyncConnection) -> None:
    """Department links on users and classes; existing rows go to the first department."""
    await create_tables(conn, Department)
    await add_column(conn, "users", "department_id", "INTEGER REFERENCES departments(id) ON DELETE SET NULL")
    await add_column(conn, "classes", "department_id", "INTEGER REFERENCES departments(id) ON DELETE SET NULL")

    first = (await conn.execute(text("SELECT id FROM departments ORDER BY id LIMIT 1"))).scalar()
    if first is None:
        return
    classes = await conn.execute(
        text("UPDATE classes SET department_id = :dept WHERE department_id IS NULL"), {"dept": first}
    )
    users = await conn.execute(
        text(
            "UPDATE users SET department_id = :dept "
            "WHERE department_id IS NULL AND role IN ('STUDENT', 'STAFF')"
        ),
        {"dept": first},
    )
    if classes.rowcount or users.rowcount:
        logger.info(f"Assigned {classes.rowcount} classes and {users.rowcount} users to department {first}")


async def staff_messaging(conn: AsyncConnection) -> None:
    await add_column(conn, "messages", "sender_id", "INTEGER REFERENCES users(id) ON DELETE CASCADE")
    await add_column(conn, "messages", "recipient_id", "INTEGER REFERENCES users(id) ON DELETE CASCADE")
    await add_column(conn, "messages", "is_staff_message", "BOOLEAN NOT NULL DEFAULT FALSE")
    await add_column(conn, "messages", "message_type", "VARCHAR(30) NOT NULL DEFAULT 'INDIVIDUAL'")


async def student_messaging(conn: AsyncConnection) -> None:
    await add_column(conn, "messages", "student_message_type", "VARCHAR(20) DEFAULT 'general'")
    await add_column(
        conn, "messages", "reply_to_message_id", "INTEGER REFERENCES messages(id) ON DELETE SET NULL"
    )
    await create_index(conn, "ix_messages_reply_to", "messages", "reply_to_message_id")
    await create_index(conn, "ix_messages_type_student_type", "messages", "message_type, student_message_type")
    await create_index(conn, "ix_messages_staff_type", "messages", "staff_id, message_type")


async def email_fields(conn: AsyncConnection) -> None:
    await add_column(conn, "messages", "email_type", "VARCHAR(20)")
    await add_column(conn, "messages", "email_recipients", "TEXT")


async def staff_classes(conn: AsyncConnection) -> None:
    """Many-to-many staff assignments, seeded from the single class teacher column."""
    await create_tables(conn, StaffClass)
    result = await conn.execute(
        text(
            "INSERT INTO staff_classes (staff_id, class_id, assigned_at, created_at, updated_at) "
            "SELECT c.staff_id, c.id, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP "
            "FROM classes c "
            "WHERE c.staff_id IS NOT NULL AND NOT EXISTS ("
            "SELECT 1 FROM staff_classes sc WHERE sc.staff_id = c.staff_id AND sc.class_id = c.id)"
        )
    )
    if result.rowcount:
        logger.info(f"Copied {result.rowcount} class teacher assignments into staff_classes")


MIGRATIONS = [
    ("base_tables", base_tables),
    ("login_tracking", login_tracking),
    ("department_fields", department_fields),
    ("staff_messaging", staff_messaging),
    ("student_messaging", student_messaging),
    ("email_fields", email_fields),
    ("staff_classes", staff_classes),
]
