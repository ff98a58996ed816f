from __future__ import annotations

import pytest
from helpers import RecordingStore

from activity_logger.settings import Settings


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def capture_settings() -> Settings:
    return Settings(env="test", request_body_capture=True, response_body_capture=True)
