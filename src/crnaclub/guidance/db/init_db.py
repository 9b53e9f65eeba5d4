"""Create the guidance tables directly from metadata.

The API does this at startup when STATE_BACKEND=database.

Usage:
    python -m crnaclub.guidance.db.init_db
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from crnaclub.guidance.db.models import Base
from crnaclub.guidance.db.session import get_engine

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine | None = None) -> None:
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Guidance tables ready")


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    await create_tables()
    print("DB initialized.")


if __name__ == "__main__":
    asyncio.run(main())
