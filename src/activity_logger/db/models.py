"""
activity_logger.db.models

Persistence schema for activity records.

Responsibilities:
- Define the `activities` table (one row per request, keyed by trace id).
- Derive same-shaped tables for custom create/update targets.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column

from activity_logger.db.base import Base
from activity_logger.models import STATUS_NOT_COMPLETED


class ActivityRecord(Base):
    __tablename__ = "activities"

    # Text form of the trace id, whatever kind the middleware was configured with.
    trace_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    client_ip: Mapped[str] = mapped_column(String(256), nullable=False)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    request_method: Mapped[str] = mapped_column(String(16), nullable=False)

    request_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    response_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    request_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)

    status_code: Mapped[int] = mapped_column(nullable=False, default=STATUS_NOT_COMPLETED)
    cancelled: Mapped[bool] = mapped_column(nullable=False, default=False)


def activity_table(name: str) -> Table:
    table: Table = ActivityRecord.__table__  # type: ignore[assignment]
    if name == table.name:
        return table
    existing = Base.metadata.tables.get(name)
    if existing is not None:
        return existing
    # Same columns under another name; registered on Base.metadata so init_db creates it too.
    return table.to_metadata(Base.metadata, name=name)


# --- Module Notes -----------------------------------------------------------
# No secondary indexes: derived tables share the column layout and would otherwise
# collide on index names in backends with a global index namespace (SQLite).
