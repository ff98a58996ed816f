"""
activity_logger.capture.request

Phase 1: build the initial activity record from an inbound request.

Responsibilities:
- Resolve client address, endpoint and method from the ASGI scope.
- Snapshot the request body (when enabled) without taking it away from the app.
- Never let a capture failure escape; degrade to placeholder values instead.
"""

from __future__ import annotations

import codecs

from starlette.datastructures import Headers
from starlette.types import Scope

from activity_logger.capture.cancellation import DisconnectWatcher
from activity_logger.errors import CaptureError, ConfigurationError
from activity_logger.models import (
    REQUEST_BODY_CAPTURE_FAILED,
    UNKNOWN_CLIENT,
    Activity,
    TraceId,
    utcnow,
)
from activity_logger.observability.logging import get_logger

log = get_logger(__name__)

CHUNK_SIZE = 4096


def client_address(scope: Scope, *, trust_forwarded_headers: bool = True) -> str:
    # Proxy headers win over the socket peer; the first X-Forwarded-For hop is the caller.
    if trust_forwarded_headers:
        headers = Headers(scope=scope)
        forwarded = headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
        real_ip = headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    client = scope.get("client")
    if client:
        return str(client[0])
    return UNKNOWN_CLIENT


def endpoint(scope: Scope) -> str:
    path = scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def ensure_encoding(encoding: str) -> str:
    try:
        codecs.lookup(encoding)
    except LookupError as e:
        raise ConfigurationError(f"unknown body encoding {encoding!r}") from e
    return encoding


def decode_in_chunks(body: bytes | bytearray, encoding: str) -> str:
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    parts = [
        decoder.decode(bytes(body[start : start + CHUNK_SIZE]))
        for start in range(0, len(body), CHUNK_SIZE)
    ]
    parts.append(decoder.decode(b"", final=True))
    return "".join(parts)


class RequestCapture:
    def __init__(
        self,
        *,
        capture_body: bool,
        encoding: str = "utf-8",
        trust_forwarded_headers: bool = True,
    ) -> None:
        self._capture_body = capture_body
        self._encoding = ensure_encoding(encoding)
        self._trust_forwarded_headers = trust_forwarded_headers

    async def capture(
        self, scope: Scope, watcher: DisconnectWatcher, trace_id: TraceId
    ) -> Activity:
        try:
            activity = Activity(
                trace_id=trace_id,
                request_at=utcnow(),
                client_ip=client_address(
                    scope, trust_forwarded_headers=self._trust_forwarded_headers
                ),
                endpoint=endpoint(scope),
                request_method=scope.get("method", ""),
            )
            if self._capture_body:
                activity.request_body = await self._read_body(watcher)
            return activity
        except Exception:
            log.error("request_capture_failed", trace_id=str(trace_id), exc_info=True)
            return self._placeholder(scope, trace_id)

    async def _read_body(self, watcher: DisconnectWatcher) -> str:
        body = bytearray()
        while True:
            # Every message read here is queued again for the app, so the body stays readable.
            message = await watcher.read_ahead()
            kind = message.get("type")
            if kind == "http.disconnect":
                break
            if kind != "http.request":
                raise CaptureError(f"unexpected ASGI message while reading body: {kind!r}")
            body += message.get("body", b"")
            if not message.get("more_body", False):
                break
        return decode_in_chunks(body, self._encoding)

    def _placeholder(self, scope: Scope, trace_id: TraceId) -> Activity:
        return Activity(
            trace_id=trace_id,
            request_at=utcnow(),
            client_ip=UNKNOWN_CLIENT,
            endpoint=endpoint(scope),
            request_method=str(scope.get("method", "")),
            request_body=REQUEST_BODY_CAPTURE_FAILED if self._capture_body else None,
        )


# --- Module Notes -----------------------------------------------------------
# Bodies are held in memory in full; streaming capture of large uploads is out of scope.
