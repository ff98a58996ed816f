"""
activity_logger.db.repositories.activities

Repository for activity rows.

Responsibilities:
- Insert the phase-1 record.
- Apply the phase-2 outcome (response body, status, timestamp, cancellation) by trace id.
- Fetch a row by trace id.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Table, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from activity_logger.db.models import ActivityRecord
from activity_logger.models import Activity


class ActivityRepo:
    def __init__(self, session: AsyncSession, *, table: Table | None = None) -> None:
        self._session = session
        self._table: Table = table if table is not None else ActivityRecord.__table__  # type: ignore[assignment]

    async def insert(self, activity: Activity) -> None:
        await self._session.execute(insert(self._table).values(**activity.to_record()))

    async def update_outcome(self, activity: Activity) -> int:
        # Only phase-2 fields change; request-side columns are never rewritten.
        stmt = (
            update(self._table)
            .where(self._table.c.trace_id == str(activity.trace_id))
            .values(
                response_body=activity.response_body,
                status_code=activity.status_code,
                response_at=activity.response_at,
                cancelled=activity.cancelled,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def get(self, trace_id: str) -> dict[str, Any] | None:
        stmt = select(self._table).where(self._table.c.trace_id == trace_id)
        row = (await self._session.execute(stmt)).mappings().one_or_none()
        return dict(row) if row is not None else None


# --- Module Notes -----------------------------------------------------------
# Create and update are independent statements; a missing row on update is reported
# to the caller (rowcount 0), never reconciled here.
