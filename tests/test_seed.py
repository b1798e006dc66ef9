import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.models import Attendance, Department, Message, SchoolClass, StaffClass
from app.db.seed import ATTENDANCE_DAYS, STUDENTS, seed


async def _counts(db: AsyncSession):
    counts = {}
    for model in (User, Department, SchoolClass, StaffClass, Attendance, Message):
        counts[model.__tablename__] = (await db.execute(select(func.count()).select_from(model))).scalar_one()
    return counts


@pytest.mark.asyncio
async def test_seed_is_idempotent(db_session: AsyncSession) -> None:
    await seed(db_session)
    first = await _counts(db_session)
    assert first["departments"] == 5
    assert first["classes"] == 12
    assert first["staff_classes"] == 12
    assert first["attendance"] == ATTENDANCE_DAYS * len(STUDENTS)

    admin = (await db_session.execute(select(User).where(User.role == "SUPER_ADMIN"))).scalar_one()
    assert admin.email == "admin@college.com"

    await seed(db_session)
    assert await _counts(db_session) == first
