"""
activity_logger.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create activity tables (including any derived store targets) for local development and tests.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from activity_logger.db.base import Base


async def init_db(engine: AsyncEngine) -> None:
    """
    Dev/test bootstrap: create tables if they don't exist.
    Production deployments own their schema.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
