"""
activity_logger.observability.middleware

ASGI middleware that records one activity per HTTP request.

Responsibilities:
- Generate a trace id and expose it on `request.state.trace_id` and in log context.
- Sequence request capture -> store create -> response capture -> store update.
- Keep store failures and slow stores away from the real response path.
- Re-raise anything unexpected unchanged so the host's error handling still applies.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from activity_logger.capture.cancellation import DisconnectWatcher
from activity_logger.capture.request import RequestCapture, ensure_encoding
from activity_logger.capture.response import ResponseCapture
from activity_logger.db.store import ActivityStore
from activity_logger.errors import ConfigurationError
from activity_logger.models import Activity
from activity_logger.observability.logging import get_logger
from activity_logger.settings import Settings
from activity_logger.trace_ids import TraceIdGenerator, TraceIdProvider

log = get_logger(__name__)


class ActivityMiddleware:
    """
    Pure ASGI middleware (not BaseHTTPMiddleware) so request and response bodies can be
    intercepted message by message without re-wrapping the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        store: ActivityStore,
        settings: Settings,
        trace_ids: TraceIdProvider | None = None,
    ) -> None:
        check_settings(settings)
        self.app = app
        self._store = store
        self._settings = settings
        self._trace_ids = trace_ids or TraceIdProvider.from_kind(settings.trace_id_kind)
        self._requests = RequestCapture(
            capture_body=settings.request_body_capture,
            encoding=settings.body_encoding,
            trust_forwarded_headers=settings.trust_forwarded_headers,
        )
        self._responses = ResponseCapture(
            capture_body=settings.response_body_capture,
            encoding=settings.body_encoding,
        )
        self._excluded = frozenset(settings.excluded_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in self._excluded:
            await self.app(scope, receive, send)
            return

        trace_id = self._trace_ids.generate()
        formatted = self._trace_ids.format(trace_id)
        # Correlation field: Starlette exposes scope["state"] as request.state.
        scope.setdefault("state", {})["trace_id"] = formatted

        watcher = DisconnectWatcher(receive)
        activity: Activity | None = None
        with structlog.contextvars.bound_contextvars(trace_id=formatted):
            try:
                activity = await self._requests.capture(scope, watcher, trace_id)
                log.info("activity_request_captured", trace_id=formatted)

                if await self._persist("create", self._store.create, activity):
                    log.info("activity_created", trace_id=formatted)

                outcome = await self._responses.run(scope, watcher, send, activity, self.app)
                log.info(
                    "activity_response_captured",
                    trace_id=formatted,
                    outcome=outcome.value,
                    status_code=activity.status_code,
                )
            except asyncio.CancelledError:
                log.info("activity_pipeline_cancelled", trace_id=formatted)
                raise
            except Exception:
                log.exception("activity_pipeline_error", trace_id=formatted)
                raise
            finally:
                # Phase 2 always finalizes the record, handler errors included.
                if activity is not None and activity.completed:
                    if await self._persist("update", self._store.update, activity):
                        log.info("activity_updated", trace_id=formatted)

    async def _persist(
        self,
        operation: str,
        call: Callable[[Activity], Awaitable[None]],
        activity: Activity,
    ) -> bool:
        try:
            async with asyncio.timeout(self._settings.store_timeout):
                await call(activity)
        except Exception:
            log.warning(
                "activity_store_failed",
                operation=operation,
                trace_id=str(activity.trace_id),
                exc_info=True,
            )
            return False
        return True


def check_settings(settings: Settings) -> None:
    ensure_encoding(settings.body_encoding)
    if settings.store_timeout <= 0:
        raise ConfigurationError("store_timeout must be positive")


def add_activity_logging(
    app,
    *,
    settings: Settings,
    store: ActivityStore,
    trace_id_generator: TraceIdGenerator | None = None,
) -> None:
    """
    Register `ActivityMiddleware` on a Starlette/FastAPI app.

    Starlette builds middleware lazily on the first request, so the trace id provider
    and the other request-path settings are checked here to fail at setup instead.
    """

    check_settings(settings)
    trace_ids = TraceIdProvider.from_kind(settings.trace_id_kind, trace_id_generator)
    app.add_middleware(ActivityMiddleware, store=store, settings=settings, trace_ids=trace_ids)


# --- Module Notes -----------------------------------------------------------
# Store calls are awaited inline but bounded by `store_timeout`; a hung database costs
# at most that much latency per phase and never fails the request.
