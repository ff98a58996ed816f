"""
activity_logger.capture.response

Phase 2: run the downstream app, reconcile cancellation, finalize the activity.

Responsibilities:
- Substitute the outbound `send` with an in-memory interceptor when response capture is on.
- Decide between three outcomes: completed, cancelled before start, cancelled during processing.
- Deliver the exact captured bytes to the real client and restore the real `send`.
- Record status code and response timestamp on every exit path.
"""

from __future__ import annotations

import asyncio
import io
from collections.abc import Awaitable, Callable

from starlette.requests import ClientDisconnect
from starlette.types import ASGIApp, Message, Scope, Send

from activity_logger.capture.cancellation import DisconnectWatcher
from activity_logger.capture.request import decode_in_chunks
from activity_logger.models import (
    RESPONSE_BODY_CAPTURE_FAILED,
    RESPONSE_BODY_UNAVAILABLE,
    STATUS_CLIENT_CLOSED_REQUEST,
    STATUS_NO_RESPONSE,
    Activity,
    HandlerOutcome,
    utcnow,
)
from activity_logger.observability.logging import get_logger

log = get_logger(__name__)

# Errors that mean "the client or transport ended the exchange", not "the handler broke".
CANCELLATION_ERRORS: tuple[type[BaseException], ...] = (ClientDisconnect, asyncio.CancelledError)


class ResponseInterceptor:
    """
    Stand-in `send` that withholds the response until the app is done.
    """

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self.start: Message | None = None
        self.trailing: list[Message] = []
        self._saw_body = False
        self._complete = False
        self._released = False

    @property
    def status_code(self) -> int | None:
        return None if self.start is None else int(self.start["status"])

    async def __call__(self, message: Message) -> None:
        if self._released:
            raise RuntimeError("response interceptor already released")
        kind = message["type"]
        if kind == "http.response.start":
            self.start = message
        elif kind == "http.response.body":
            self._saw_body = True
            self._buffer.write(message.get("body", b""))
            self._complete = not message.get("more_body", False)
        else:
            # Trailers and send extensions (pathsend, zerocopysend) keep their order.
            self.trailing.append(message)

    def body(self) -> bytes:
        return self._buffer.getvalue()

    async def flush(self, send: Send) -> None:
        if self.start is None:
            return
        await send(self.start)
        if self._saw_body:
            # An unfinished body stays unfinished so the server still sees the truncation.
            await send(
                {
                    "type": "http.response.body",
                    "body": self._buffer.getvalue(),
                    "more_body": not self._complete,
                }
            )
        for message in self.trailing:
            await send(message)

    def release(self) -> None:
        self._released = True
        self._buffer.close()


class _SinkObserver:
    # Pass-through to the real `send`; notes the status and when the response is done.

    def __init__(
        self,
        send: Send,
        watcher: DisconnectWatcher,
        poll: Callable[[], Awaitable[bool]],
    ) -> None:
        self._send = send
        self._watcher = watcher
        self._poll = poll
        self.status_code: int | None = None
        self.finished = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = int(message["status"])
        last = message["type"] == "http.response.body" and not message.get("more_body", False)
        if last:
            # Servers may drop sends to a gone client without raising, so look before the
            # last byte; a disconnect after it is the normal end of the exchange.
            await self._poll()
        await self._send(message)
        if last:
            self.finished = True
            self._watcher.response_finished()


class ResponseCapture:
    def __init__(
        self,
        *,
        capture_body: bool,
        encoding: str = "utf-8",
        interceptor_factory: Callable[[], ResponseInterceptor] = ResponseInterceptor,
    ) -> None:
        self._capture_body = capture_body
        self._encoding = encoding
        self._interceptor_factory = interceptor_factory

    async def run(
        self,
        scope: Scope,
        watcher: DisconnectWatcher,
        send: Send,
        activity: Activity,
        app: ASGIApp,
    ) -> HandlerOutcome:
        trace_id = str(activity.trace_id)
        sink = _SinkObserver(
            send, watcher, poll=lambda: self._cancellation_requested(watcher, trace_id)
        )
        interceptor = self._acquire_interceptor(trace_id) if self._capture_body else None
        outcome = HandlerOutcome.completed
        try:
            if await self._cancellation_requested(watcher, trace_id):
                # Resource conservation: an abandoned request never reaches the app.
                log.warning("request_cancelled_before_processing", trace_id=trace_id)
                activity.mark_cancelled()
                outcome = HandlerOutcome.cancelled_before_start
            else:
                outcome = await self._invoke(app, scope, watcher, interceptor or sink, activity)
        finally:
            try:
                if not activity.cancelled and not sink.finished:
                    await self._cancellation_requested(watcher, trace_id)
                if interceptor is not None:
                    await self._deliver(interceptor, sink, activity, trace_id)
                elif self._capture_body:
                    activity.response_body = RESPONSE_BODY_UNAVAILABLE
                # Covers disconnects seen by the app's own receive() and by the last-byte poll.
                if watcher.disconnected and not activity.cancelled:
                    log.warning("request_cancelled_after_processing", trace_id=trace_id)
                    activity.mark_cancelled()
                    outcome = HandlerOutcome.cancelled_during_processing
            finally:
                if interceptor is not None:
                    interceptor.release()
                activity.status_code = _final_status(interceptor, sink, activity)
                activity.response_at = utcnow()
        return outcome

    async def _invoke(
        self,
        app: ASGIApp,
        scope: Scope,
        watcher: DisconnectWatcher,
        send: Send,
        activity: Activity,
    ) -> HandlerOutcome:
        try:
            await app(scope, watcher, send)
        except CANCELLATION_ERRORS as e:
            # Server-side work has usually happened already; keep recording it.
            log.info(
                "request_cancelled_during_processing",
                trace_id=str(activity.trace_id),
                error=type(e).__name__,
            )
            activity.mark_cancelled()
            if isinstance(e, asyncio.CancelledError):
                raise
            return HandlerOutcome.cancelled_during_processing
        return HandlerOutcome.completed

    def _acquire_interceptor(self, trace_id: str) -> ResponseInterceptor | None:
        try:
            return self._interceptor_factory()
        except Exception:
            log.warning("response_capture_setup_failed", trace_id=trace_id, exc_info=True)
            return None

    async def _cancellation_requested(self, watcher: DisconnectWatcher, trace_id: str) -> bool:
        try:
            return await watcher.poll()
        except Exception:
            log.warning("cancellation_poll_failed", trace_id=trace_id, exc_info=True)
            return watcher.disconnected

    async def _deliver(
        self,
        interceptor: ResponseInterceptor,
        sink: _SinkObserver,
        activity: Activity,
        trace_id: str,
    ) -> None:
        try:
            activity.response_body = decode_in_chunks(interceptor.body(), self._encoding)
        except Exception:
            log.warning("response_body_capture_failed", trace_id=trace_id, exc_info=True)
            activity.response_body = RESPONSE_BODY_CAPTURE_FAILED
        try:
            await interceptor.flush(sink)
        except Exception:
            # Usually the client is already gone; the captured text is still worth keeping.
            log.warning(
                "response_delivery_failed",
                trace_id=trace_id,
                cancelled=activity.cancelled,
                exc_info=True,
            )


def _final_status(
    interceptor: ResponseInterceptor | None, sink: _SinkObserver, activity: Activity
) -> int:
    if sink.status_code is not None:
        return sink.status_code
    if interceptor is not None and interceptor.status_code is not None:
        return interceptor.status_code
    return STATUS_CLIENT_CLOSED_REQUEST if activity.cancelled else STATUS_NO_RESPONSE


# --- Module Notes -----------------------------------------------------------
# With capture off the app writes straight to the real `send`; only the status is observed.
# The last body message is always preceded by a disconnect poll, in both modes.
