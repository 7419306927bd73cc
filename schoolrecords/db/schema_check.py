"""
Create any missing tables in the configured database.

    python -m schoolrecords.db.schema_check
"""

import asyncio
import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import schoolrecords.core.models  # noqa: F401  registers every table on Base.metadata
from schoolrecords.db.session import Base, engine

logger = logging.getLogger(__name__)


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create tables that do not exist yet (in dependency order) and return their names."""
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        await conn.run_sync(Base.metadata.create_all)
    if missing:
        logger.info("Created missing tables: %s", ", ".join(missing))
    return missing


async def main() -> None:
    missing = await ensure_tables(engine)
    if missing:
        print("Created missing tables: " + ", ".join(missing))
    else:
        print("All tables already exist in the database.")


if __name__ == "__main__":
    asyncio.run(main())
