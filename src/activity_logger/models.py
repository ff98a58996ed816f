"""
activity_logger.models

Domain types shared by the capture pipeline and the store.

Responsibilities:
- Define the per-request `Activity` record and its invariants.
- Define trace id kinds and the three-state handler outcome.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

TraceId = str | uuid.UUID | int

# Status code sentinel until the response phase finalizes the record.
STATUS_NOT_COMPLETED = -1
# No http.response.start was seen and the client went away (nginx convention).
STATUS_CLIENT_CLOSED_REQUEST = 499
STATUS_NO_RESPONSE = 500

UNKNOWN_CLIENT = "unknown"
REQUEST_BODY_CAPTURE_FAILED = "Failed to capture request body due to an error"
RESPONSE_BODY_UNAVAILABLE = "Failed to capture response body"
RESPONSE_BODY_CAPTURE_FAILED = "Failed to capture response body due to an error"


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class TraceIdKind(enum.StrEnum):
    text = "text"
    uuid = "uuid"
    int32 = "int32"
    int64 = "int64"


class HandlerOutcome(enum.StrEnum):
    completed = "completed"
    cancelled_before_start = "cancelled_before_start"
    cancelled_during_processing = "cancelled_during_processing"


@dataclass(slots=True)
class Activity:
    """
    One record per request, owned by the request that created it.

    `trace_id` is write-once and `cancelled` never goes back to False.
    """

    trace_id: TraceId
    request_at: datetime
    client_ip: str = UNKNOWN_CLIENT
    endpoint: str = ""
    request_method: str = ""
    response_at: datetime | None = None
    request_body: str | None = None
    response_body: str | None = None
    status_code: int = STATUS_NOT_COMPLETED
    cancelled: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "trace_id" and _is_set(self, "trace_id"):
            raise AttributeError("trace_id is assigned once")
        if name == "cancelled" and not value and getattr(self, "cancelled", False):
            raise ValueError("cancelled flag cannot be reset")
        object.__setattr__(self, name, value)

    def mark_cancelled(self) -> None:
        self.cancelled = True

    @property
    def completed(self) -> bool:
        return self.response_at is not None

    def to_record(self) -> dict[str, Any]:
        # Flat column mapping used by the SQL store; trace ids persist in their text form.
        return {
            "trace_id": str(self.trace_id),
            "client_ip": self.client_ip,
            "endpoint": self.endpoint,
            "request_method": self.request_method,
            "request_at": self.request_at,
            "response_at": self.response_at,
            "request_body": self.request_body,
            "response_body": self.response_body,
            "status_code": self.status_code,
            "cancelled": self.cancelled,
        }


def _is_set(obj: object, name: str) -> bool:
    try:
        object.__getattribute__(obj, name)
    except AttributeError:
        return False
    return True


# --- Module Notes -----------------------------------------------------------
# Activities are never shared across requests, so no locking is needed on them.
