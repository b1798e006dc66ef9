import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from typing import AsyncGenerator, Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.auth.security import create_access_token, hash_password
from app.core.models import Department, SchoolClass, StaffClass
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEFAULT_PASSWORD = "Secret@123"


@pytest.fixture()
async def engine():
    """A fresh in-memory database per test; StaticPool keeps the single connection alive."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def upload_dirs(tmp_path, monkeypatch):
    """Point uploads and backups at a temporary directory."""
    from app.core.config import settings

    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "backup_dir", str(tmp_path / "backups"))
    return tmp_path


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(
        subject={
            "user_id": user.id,
            "role": user.role,
            "email": user.email,
            "department_id": user.department_id,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_department(db_session: AsyncSession):
    async def _make(name: str = "Computer Science", **kwargs) -> Department:
        dept = Department(name=name, is_active=kwargs.pop("is_active", True), **kwargs)
        db_session.add(dept)
        await db_session.commit()
        await db_session.refresh(dept)
        return dept

    return _make


@pytest.fixture()
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        role: str = "STUDENT",
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        **kwargs,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        if role == "STUDENT" and "roll_number" not in kwargs:
            kwargs["roll_number"] = f"R{n:03d}"
        user = User(
            name=name or f"{role.title()} {n}",
            email=email or f"{role.lower()}{n}@college.com",
            password_hash=hash_password(password),
            role=role,
            is_active=kwargs.pop("is_active", True),
            login_count=kwargs.pop("login_count", 0),
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_class(db_session: AsyncSession):
    async def _make(name: str, department: Optional[Department] = None, staff: Optional[User] = None) -> SchoolClass:
        cls = SchoolClass(
            name=name,
            department_id=department.id if department else None,
            staff_id=staff.id if staff else None,
        )
        db_session.add(cls)
        await db_session.commit()
        await db_session.refresh(cls)
        if staff:
            db_session.add(StaffClass(staff_id=staff.id, class_id=cls.id))
            await db_session.commit()
        return cls

    return _make


@pytest.fixture()
async def admin(make_user) -> User:
    return await make_user(role="SUPER_ADMIN", name="Admin", email="admin@college.com")


@pytest.fixture()
def admin_headers(admin: User) -> Dict[str, str]:
    return auth_headers(admin)


@pytest.fixture()
def headers_for():
    return auth_headers
