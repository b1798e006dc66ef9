from typing import AsyncIterator, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings

Base = declarative_base()


def engine_options(database_url: str) -> Dict:
    """Pool settings for a database URL. SQLite files have no server side to go stale."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Idle connections dropped by Postgres or the network are replaced before use.
    return {"pool_pre_ping": True, "pool_recycle": 300}


def make_engine(database_url: str = None) -> AsyncEngine:
    database_url = database_url or settings.database_url
    return create_async_engine(database_url, echo=False, **engine_options(database_url))


engine = make_engine()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session
