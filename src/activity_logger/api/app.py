"""
activity_logger.api.app

FastAPI app factory for the reference host.

Responsibilities:
- Build the FastAPI application and register routers and the activity middleware.
- Initialize and dispose shared infrastructure (DB engine/session factory).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from activity_logger import __version__
from activity_logger.api.routers.health import router as health_router
from activity_logger.db.init_db import init_db
from activity_logger.db.session import create_engine, create_sessionmaker
from activity_logger.db.store import ActivityStore, SqlActivityStore
from activity_logger.observability.logging import configure_logging, get_logger
from activity_logger.observability.middleware import add_activity_logging
from activity_logger.settings import Settings
from activity_logger.trace_ids import TraceIdGenerator

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    store: ActivityStore | None = None,
    trace_id_generator: TraceIdGenerator | None = None,
) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            await init_db(engine)
        try:
            yield
        finally:
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Activity Logger",
        version=__version__,
        lifespan=lifespan,
    )

    if store is None:
        # The sessionmaker only exists after startup, so resolve it per call.
        store = SqlActivityStore(
            session_factory=lambda: app.state.sessionmaker(),
            config=settings.store_config(),
        )
    app.state.activity_store = store
    add_activity_logging(
        app, settings=settings, store=store, trace_id_generator=trace_id_generator
    )
    app.include_router(health_router, tags=["health"])

    return app


# --- Module Notes -----------------------------------------------------------
# The store is built here (not at startup) so derived target tables are registered on
# the metadata before `init_db` runs.
