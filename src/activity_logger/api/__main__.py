"""
activity_logger.api.__main__

`python -m activity_logger.api`: serve the reference host under uvicorn.
"""

from __future__ import annotations

import uvicorn

from activity_logger.api.app import create_app
from activity_logger.observability.logging import get_logger
from activity_logger.settings import get_settings

log = get_logger(__name__)


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)
    log.info(
        "activity_logging_enabled",
        trace_id_kind=settings.trace_id_kind.value,
        request_body_capture=settings.request_body_capture,
        response_body_capture=settings.response_body_capture,
        create_target=settings.create_target,
        update_target=settings.update_target,
        excluded_paths=settings.excluded_paths,
    )
    # log_config=None keeps uvicorn on the structlog-configured root logger.
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
