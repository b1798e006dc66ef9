import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.migrations.steps import MIGRATIONS

logger = logging.getLogger(__name__)


async def run_migrations(db_engine: AsyncEngine, migrations=MIGRATIONS) -> List[str]:
    """
    Run every step in order, each in its own transaction.

    A failing step is rolled back and logged; later steps still run.
    Returns the names of the steps that failed.
    """
    failed = []
    for name, step in migrations:
        try:
            async with db_engine.begin() as conn:
                await step(conn)
        except Exception:
            logger.exception(f"Migration step {name} failed")
            failed.append(name)
        else:
            logger.info(f"Migration step {name} done")
    return failed
