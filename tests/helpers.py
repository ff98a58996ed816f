"""
tests.helpers

Shared fakes and raw ASGI helpers.

Responsibilities:
- Provide in-memory activity stores that snapshot what they were given.
- Build HTTP scopes and scripted `receive`/`send` callables for precise race control.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

import anyio

from activity_logger.errors import StorageError
from activity_logger.models import Activity


class RecordingStore:
    # Snapshots each call so later in-place mutation of the activity is not observed.

    def __init__(self) -> None:
        self.created: list[Activity] = []
        self.updated: list[Activity] = []

    async def create(self, activity: Activity) -> None:
        self.created.append(replace(activity))

    async def update(self, activity: Activity) -> None:
        self.updated.append(replace(activity))


class FailingCreateStore(RecordingStore):
    async def create(self, activity: Activity) -> None:
        raise StorageError("database unavailable")


class SlowCreateStore(RecordingStore):
    async def create(self, activity: Activity) -> None:
        await asyncio.sleep(10)
        await super().create(activity)


class SendRecorder:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def status(self) -> int | None:
        for m in self.messages:
            if m["type"] == "http.response.start":
                return m["status"]
        return None

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")


def scripted_receive(*messages: dict[str, Any]):
    """
    Returns the given messages in order, then blocks like a live connection would.
    """

    pending = list(messages)
    calls = {"count": 0}

    async def receive() -> dict[str, Any]:
        calls["count"] += 1
        if pending:
            return pending.pop(0)
        await anyio.sleep_forever()
        raise AssertionError("unreachable")

    receive.calls = calls  # type: ignore[attr-defined]
    return receive


def request_message(body: bytes = b"", *, more_body: bool = False) -> dict[str, Any]:
    return {"type": "http.request", "body": body, "more_body": more_body}


DISCONNECT = {"type": "http.disconnect"}


def http_scope(
    *,
    method: str = "GET",
    path: str = "/",
    query_string: bytes = b"",
    headers: list[tuple[bytes, bytes]] | None = None,
    client: tuple[str, int] | None = ("10.0.0.7", 51000),
) -> dict[str, Any]:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query_string,
        "headers": headers or [],
        "client": client,
        "server": ("testserver", 80),
    }


async def ok_app(scope, receive, send) -> None:
    await send({"type": "http.response.start", "status": 201, "headers": []})
    await send({"type": "http.response.body", "body": b"ok"})


# --- Module Notes -----------------------------------------------------------
# Raw ASGI callables are used instead of a real server wherever the exact order of
# receive()/send() messages matters (client disconnect races).
