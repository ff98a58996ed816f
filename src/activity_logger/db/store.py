"""
activity_logger.db.store

Activity store boundary used by the middleware.

Responsibilities:
- Define the `ActivityStore` protocol (create at phase 1, update at phase 2).
- Provide a SQLAlchemy implementation that opens one session per call.
- Bound each call by a connection timeout and surface failures as `StorageError`.
- Report configured target tables that are missing (readiness).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_logger.db.models import activity_table
from activity_logger.db.repositories.activities import ActivityRepo
from activity_logger.errors import ConfigurationError, StorageError
from activity_logger.models import Activity
from activity_logger.observability.logging import get_logger

log = get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]


class ActivityStore(Protocol):
    async def create(self, activity: Activity) -> None: ...

    async def update(self, activity: Activity) -> None: ...


@dataclass(frozen=True, slots=True)
class ActivityStoreConfig:
    # Targets name the tables written at phase 1 (insert) and phase 2 (update).
    create_target: str = "activities"
    update_target: str = "activities"
    connection_timeout: float = 2.0

    def validate(self) -> None:
        if not self.create_target.strip():
            raise ConfigurationError("activity store create_target is required")
        if not self.update_target.strip():
            raise ConfigurationError("activity store update_target is required")
        if self.connection_timeout <= 0:
            raise ConfigurationError("activity store connection_timeout must be positive")


class SqlActivityStore:
    """
    `session_factory` is called once per store call, e.g. an `async_sessionmaker`
    or a lambda that looks one up on `app.state` after startup.
    """

    def __init__(self, *, session_factory: SessionFactory, config: ActivityStoreConfig) -> None:
        config.validate()
        self._session_factory = session_factory
        self._config = config
        self._create_table = activity_table(config.create_target)
        self._update_table = activity_table(config.update_target)

    async def create(self, activity: Activity) -> None:
        target = self._config.create_target
        try:
            async with asyncio.timeout(self._config.connection_timeout):
                async with self._session_factory() as session:
                    await ActivityRepo(session, table=self._create_table).insert(activity)
                    await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"create into {target!r} failed: {e}") from e
        except TimeoutError as e:
            raise StorageError(f"create into {target!r} timed out") from e

    async def update(self, activity: Activity) -> None:
        target = self._config.update_target
        try:
            async with asyncio.timeout(self._config.connection_timeout):
                async with self._session_factory() as session:
                    matched = await ActivityRepo(session, table=self._update_table).update_outcome(
                        activity
                    )
                    await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"update of {target!r} failed: {e}") from e
        except TimeoutError as e:
            raise StorageError(f"update of {target!r} timed out") from e

        if matched == 0:
            # The create half is missing (failed or elsewhere); left for the store owner to reconcile.
            log.warning("activity_update_orphaned", trace_id=str(activity.trace_id), target=target)

    async def missing_targets(self) -> list[str]:
        """
        Names of configured target tables that do not exist in the database.

        Used by readiness probes; dev/test tables come from `init_db`, prod schemas do not.
        """

        targets = sorted({self._config.create_target, self._config.update_target})
        try:
            async with asyncio.timeout(self._config.connection_timeout):
                async with self._session_factory() as session:
                    conn = await session.connection()
                    existing = await conn.run_sync(lambda c: set(inspect(c).get_table_names()))
        except SQLAlchemyError as e:
            raise StorageError(f"target check failed: {e}") from e
        except TimeoutError as e:
            raise StorageError("target check timed out") from e
        return [t for t in targets if t not in existing]


# --- Module Notes -----------------------------------------------------------
# Create and update are not transactional together; an update with no matching row is only logged.
