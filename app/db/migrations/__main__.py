"""
Bring an existing database up to the current schema.

Usage:
  python -m app.db.migrations
"""
import asyncio
import sys

from app.core.logging import configure_logging
from app.db.migrations import run_migrations
from app.db.session import engine


async def main() -> int:
    configure_logging()
    failed = await run_migrations(engine)
    await engine.dispose()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
