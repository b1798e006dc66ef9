import pytest
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.migrations import run_migrations

LEGACY_SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        email VARCHAR(255) NOT NULL UNIQUE,
        password_hash VARCHAR(255) NOT NULL,
        role VARCHAR(20) NOT NULL,
        roll_number VARCHAR(50),
        parent_email VARCHAR(255),
        class_id INTEGER,
        is_active BOOLEAN NOT NULL DEFAULT 1,
        last_login TIMESTAMP,
        login_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE classes (
        id INTEGER PRIMARY KEY,
        name VARCHAR(100) NOT NULL UNIQUE,
        staff_id INTEGER,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    "INSERT INTO users (id, name, email, password_hash, role, created_at, updated_at) "
    "VALUES (1, 'Prof. Old', 'old@college.com', 'x', 'STAFF', '2023-01-01', '2023-01-01')",
    "INSERT INTO classes (id, name, staff_id, created_at, updated_at) "
    "VALUES (1, 'Legacy Class', 1, '2023-01-01', '2023-01-01')",
]


@pytest.fixture()
async def bare_engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield test_engine
    await test_engine.dispose()


async def _tables(engine):
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


async def _columns(engine, table):
    async with engine.connect() as conn:
        return {
            c["name"]
            for c in await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_columns(table))
        }


@pytest.mark.asyncio
async def test_migrations_create_fresh_schema_and_rerun_cleanly(bare_engine) -> None:
    assert await run_migrations(bare_engine) == []
    assert {"users", "departments", "classes", "messages", "attendance", "login_logs", "staff_classes"} <= (
        await _tables(bare_engine)
    )

    assert await run_migrations(bare_engine) == []


@pytest.mark.asyncio
async def test_migrations_upgrade_legacy_schema(bare_engine) -> None:
    async with bare_engine.begin() as conn:
        for statement in LEGACY_SCHEMA:
            await conn.execute(text(statement))

    assert await run_migrations(bare_engine) == []

    assert "department_id" in await _columns(bare_engine, "users")
    assert "department_id" in await _columns(bare_engine, "classes")
    async with bare_engine.connect() as conn:
        rows = (await conn.execute(text("SELECT staff_id, class_id FROM staff_classes"))).all()
    assert [tuple(r) for r in rows] == [(1, 1)]

    # The class teacher copy is not repeated
    assert await run_migrations(bare_engine) == []
    async with bare_engine.connect() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM staff_classes"))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_later_steps(bare_engine) -> None:
    ran = []

    async def broken(conn):
        await conn.execute(text("SELECT * FROM no_such_table"))

    async def works(conn):
        await conn.execute(text("CREATE TABLE marker (id INTEGER PRIMARY KEY)"))
        ran.append("works")

    failed = await run_migrations(bare_engine, [("broken", broken), ("works", works)])
    assert failed == ["broken"]
    assert ran == ["works"]
    assert "marker" in await _tables(bare_engine)
