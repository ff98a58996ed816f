"""
activity_logger.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`): the activity store can reach its database
  and every configured create/update target table exists.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE

from activity_logger.errors import StorageError
from activity_logger.observability.logging import get_logger

log = get_logger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> dict[str, str]:
    store = request.app.state.activity_store
    check = getattr(store, "missing_targets", None)
    if check is None:
        # Injected stores without a target check are trusted as-is.
        return {"status": "ready"}

    try:
        missing = await check()
    except StorageError as e:
        log.warning("activity_store_not_ready", error=str(e))
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    if missing:
        log.warning("activity_targets_missing", missing=missing)
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail={"missing_targets": missing},
        )
    return {"status": "ready"}


# --- Module Notes -----------------------------------------------------------
# Probe paths are good candidates for `ACTIVITY_EXCLUDED_PATHS` to keep them out of the trail.
