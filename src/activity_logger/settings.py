"""
activity_logger.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the middleware and its store.
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from activity_logger.models import TraceIdKind

if TYPE_CHECKING:
    from activity_logger.db.store import ActivityStoreConfig


class Settings(BaseSettings):
    """
    - Env-driven configuration (prefix ``ACTIVITY_``)
    - Defaults safe for local dev: body capture is opt-in
    """

    model_config = SettingsConfigDict(env_prefix="ACTIVITY_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "activity-logger"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Capture
    request_body_capture: bool = False
    response_body_capture: bool = False
    # Unsupported kinds are rejected when Settings is built.
    trace_id_kind: TraceIdKind = TraceIdKind.text
    body_encoding: str = "utf-8"
    trust_forwarded_headers: bool = True
    excluded_paths: list[str] = Field(default_factory=list)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./activity.db"
    create_target: str = "activities"
    update_target: str = "activities"
    connection_timeout: float = 2.0
    # Upper bound on any store call made from the request path.
    store_timeout: float = 5.0

    def store_config(self) -> ActivityStoreConfig:
        from activity_logger.db.store import ActivityStoreConfig

        return ActivityStoreConfig(
            create_target=self.create_target,
            update_target=self.update_target,
            connection_timeout=self.connection_timeout,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# A custom trace id generator cannot come from the environment; it is passed
# to `observability.middleware.add_activity_logging` in code.
