"""
tests.test_response_capture

Phase-2 capture: transparency of delivered bytes and cancellation reconciliation.

Responsibilities:
- Completed, cancelled-before-start and cancelled-during-processing outcomes.
- Status/timestamp recorded on every exit path; interception released.
"""

from __future__ import annotations

import asyncio

import anyio
import pytest
from helpers import DISCONNECT, SendRecorder, http_scope, ok_app, request_message, scripted_receive
from starlette.requests import ClientDisconnect

from activity_logger.capture.cancellation import DisconnectWatcher
from activity_logger.capture.response import ResponseCapture, ResponseInterceptor
from activity_logger.models import (
    RESPONSE_BODY_UNAVAILABLE,
    Activity,
    HandlerOutcome,
    utcnow,
)


def _activity() -> Activity:
    return Activity(trace_id="trace-1", request_at=utcnow())


def _watcher(*messages) -> DisconnectWatcher:
    return DisconnectWatcher(scripted_receive(*(messages or (request_message(),))))


@pytest.mark.asyncio
async def test_captured_response_is_delivered_unchanged() -> None:
    activity = _activity()
    send = SendRecorder()

    outcome = await ResponseCapture(capture_body=True).run(
        http_scope(), _watcher(), send, activity, ok_app
    )

    assert outcome is HandlerOutcome.completed
    assert activity.response_body == "ok"
    assert activity.status_code == 201
    assert activity.response_at is not None
    assert activity.cancelled is False
    assert send.status == 201
    assert send.body == b"ok"


@pytest.mark.asyncio
async def test_chunked_response_is_flushed_as_the_same_bytes() -> None:
    async def chunked_app(scope, receive, send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"he", "more_body": True})
        await send({"type": "http.response.body", "body": b"llo", "more_body": False})

    activity = _activity()
    send = SendRecorder()

    await ResponseCapture(capture_body=True).run(http_scope(), _watcher(), send, activity, chunked_app)

    assert activity.response_body == "hello"
    assert send.body == b"hello"
    assert send.messages[-1]["more_body"] is False


@pytest.mark.asyncio
async def test_disabled_capture_writes_straight_through() -> None:
    factory_calls = []

    def factory() -> ResponseInterceptor:
        factory_calls.append(1)
        return ResponseInterceptor()

    seen_sends = []

    async def app(scope, receive, send) -> None:
        seen_sends.append(send)
        await ok_app(scope, receive, send)

    activity = _activity()
    send = SendRecorder()

    await ResponseCapture(capture_body=False, interceptor_factory=factory).run(
        http_scope(), _watcher(), send, activity, app
    )

    assert factory_calls == []
    assert not isinstance(seen_sends[0], ResponseInterceptor)
    assert activity.response_body is None
    assert activity.status_code == 201
    assert send.body == b"ok"


@pytest.mark.asyncio
async def test_cancelled_before_start_skips_the_handler() -> None:
    invoked = []

    async def app(scope, receive, send) -> None:
        invoked.append(True)

    activity = _activity()

    outcome = await ResponseCapture(capture_body=True).run(
        http_scope(), _watcher(DISCONNECT), SendRecorder(), activity, app
    )

    assert outcome is HandlerOutcome.cancelled_before_start
    assert invoked == []
    assert activity.cancelled is True
    assert activity.status_code == 499
    assert activity.response_at is not None


@pytest.mark.asyncio
async def test_client_disconnect_error_is_recorded_not_raised() -> None:
    async def app(scope, receive, send) -> None:
        await send({"type": "http.response.start", "status": 202, "headers": []})
        raise ClientDisconnect()

    activity = _activity()

    outcome = await ResponseCapture(capture_body=True).run(
        http_scope(), _watcher(), SendRecorder(), activity, app
    )

    assert outcome is HandlerOutcome.cancelled_during_processing
    assert activity.cancelled is True
    assert activity.status_code == 202
    assert activity.response_at is not None


@pytest.mark.asyncio
async def test_task_cancellation_is_recorded_then_reraised() -> None:
    async def app(scope, receive, send) -> None:
        raise asyncio.CancelledError()

    activity = _activity()

    with pytest.raises(asyncio.CancelledError):
        await ResponseCapture(capture_body=True).run(
            http_scope(), _watcher(), SendRecorder(), activity, app
        )

    assert activity.cancelled is True
    assert activity.status_code == 499
    assert activity.response_at is not None


@pytest.mark.asyncio
async def test_disconnect_seen_only_by_final_poll() -> None:
    activity = _activity()
    send = SendRecorder()

    outcome = await ResponseCapture(capture_body=True).run(
        http_scope(), _watcher(request_message(), DISCONNECT), send, activity, ok_app
    )

    assert outcome is HandlerOutcome.cancelled_during_processing
    assert activity.cancelled is True
    assert activity.status_code == 201
    assert activity.response_body == "ok"
    # Delivery is still attempted; the server decides what reaches a gone client.
    assert send.body == b"ok"


@pytest.mark.asyncio
async def test_disconnect_while_uncaptured_handler_runs_is_recorded() -> None:
    client_gone = asyncio.Event()
    first = [request_message()]

    async def receive():
        if first:
            return first.pop()
        await client_gone.wait()
        return DISCONNECT

    async def slow_app(scope, receive, send) -> None:
        # The client leaves while the handler is still working; the server keeps
        # accepting sends without raising.
        client_gone.set()
        await ok_app(scope, receive, send)

    activity = _activity()
    send = SendRecorder()

    outcome = await ResponseCapture(capture_body=False).run(
        http_scope(), DisconnectWatcher(receive), send, activity, slow_app
    )

    assert outcome is HandlerOutcome.cancelled_during_processing
    assert activity.cancelled is True
    assert activity.status_code == 201
    assert send.body == b"ok"


@pytest.mark.asyncio
@pytest.mark.parametrize("capture_body", [False, True])
async def test_disconnect_after_the_last_byte_is_not_a_cancellation(capture_body: bool) -> None:
    send = SendRecorder()
    first = [request_message()]

    async def receive():
        if first:
            return first.pop()
        if any(m["type"] == "http.response.body" for m in send.messages):
            # Servers report http.disconnect once the response is complete.
            return DISCONNECT
        await anyio.sleep_forever()

    activity = _activity()
    watcher = DisconnectWatcher(receive)

    outcome = await ResponseCapture(capture_body=capture_body).run(
        http_scope(), watcher, send, activity, ok_app
    )

    assert outcome is HandlerOutcome.completed
    assert activity.cancelled is False
    # The app still gets the queued request message first, then the late disconnect.
    assert await watcher() == request_message()
    assert await watcher() == DISCONNECT
    assert watcher.disconnected is False


@pytest.mark.asyncio
async def test_handler_error_propagates_after_finalizing() -> None:
    async def app(scope, receive, send) -> None:
        raise RuntimeError("boom")

    activity = _activity()
    send = SendRecorder()

    with pytest.raises(RuntimeError, match="boom"):
        await ResponseCapture(capture_body=True).run(http_scope(), _watcher(), send, activity, app)

    assert activity.status_code == 500
    assert activity.response_at is not None
    assert activity.cancelled is False
    assert send.messages == []


@pytest.mark.asyncio
async def test_interceptor_setup_failure_passes_through() -> None:
    def broken_factory() -> ResponseInterceptor:
        raise MemoryError("no buffer")

    activity = _activity()
    send = SendRecorder()

    outcome = await ResponseCapture(capture_body=True, interceptor_factory=broken_factory).run(
        http_scope(), _watcher(), send, activity, ok_app
    )

    assert outcome is HandlerOutcome.completed
    assert activity.response_body == RESPONSE_BODY_UNAVAILABLE
    assert activity.status_code == 201
    assert send.body == b"ok"


@pytest.mark.asyncio
async def test_delivery_failure_keeps_captured_body() -> None:
    async def gone_client(message) -> None:
        raise OSError("broken pipe")

    activity = _activity()

    outcome = await ResponseCapture(capture_body=True).run(
        http_scope(), _watcher(), gone_client, activity, ok_app
    )

    assert outcome is HandlerOutcome.completed
    assert activity.response_body == "ok"
    assert activity.status_code == 201


@pytest.mark.asyncio
async def test_interceptor_is_released_after_the_exchange() -> None:
    interceptors: list[ResponseInterceptor] = []

    def factory() -> ResponseInterceptor:
        interceptors.append(ResponseInterceptor())
        return interceptors[-1]

    stray_send = []

    async def app(scope, receive, send) -> None:
        stray_send.append(send)
        await ok_app(scope, receive, send)

    await ResponseCapture(capture_body=True, interceptor_factory=factory).run(
        http_scope(), _watcher(), SendRecorder(), _activity(), app
    )

    with pytest.raises(RuntimeError):
        await stray_send[0]({"type": "http.response.body", "body": b"late"})
