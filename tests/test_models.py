from __future__ import annotations

import pytest

from activity_logger.models import STATUS_NOT_COMPLETED, Activity, utcnow


def _activity() -> Activity:
    return Activity(trace_id="t-1", request_at=utcnow())


def test_new_activity_is_not_completed() -> None:
    activity = _activity()

    assert activity.status_code == STATUS_NOT_COMPLETED
    assert activity.cancelled is False
    assert activity.response_at is None
    assert activity.completed is False


def test_cancelled_flag_is_monotonic() -> None:
    activity = _activity()
    activity.mark_cancelled()
    activity.mark_cancelled()

    assert activity.cancelled is True
    with pytest.raises(ValueError):
        activity.cancelled = False


def test_trace_id_is_write_once() -> None:
    activity = _activity()

    with pytest.raises(AttributeError):
        activity.trace_id = "t-2"
    assert activity.trace_id == "t-1"


def test_record_uses_text_trace_id() -> None:
    activity = Activity(trace_id=42, request_at=utcnow(), endpoint="/x?y=1")

    record = activity.to_record()

    assert record["trace_id"] == "42"
    assert record["endpoint"] == "/x?y=1"
    assert record["status_code"] == -1
