"""Shared fixtures for the camera uplink tests.

Every test gets an environment with no uplink configuration variables set,
so defaults are predictable regardless of the machine running the suite.
"""

from dataclasses import replace
from typing import Callable

import pytest

from cam_uplink.config import AppConfig
from cam_uplink.camera.streaming.shared_frame_queue import FrameQueue
from cam_uplink.camera.streaming.shared_state import SharedTelemetry
from cam_uplink.camera.streaming.streaming_stats import UplinkStats


CONFIG_ENV_KEYS = [
    "SERVER_URL", "CAMERA_ID_PREFIX", "CAPTURE_COMMAND",
    "FRAME_QUEUE_CAPACITY", "QUEUE_HIGH_WATER", "READ_CHUNK_SIZE",
    "MAX_BUFFER_BYTES", "BUFFER_KEEP_BYTES",
    "RECONNECT_DELAY", "NORMAL_SEND_DELAY", "CONGESTED_SEND_DELAY",
    "BACKLOG_SEND_DELAY", "BACKLOG_THRESHOLD",
    "FAST_CHECK_INTERVAL", "SLOW_CHECK_INTERVAL", "MIN_QUALITY", "MAX_QUALITY",
    "CONTROLLER_PUBLISHES_CONGESTION", "RESET_COUNTERS_ON_PROFILE_CHANGE",
    "STATUS_API_ENABLED", "HOST", "PORT", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_config(clean_env) -> Callable[..., AppConfig]:
    """Factory for default configs with overrides; pacing delays default to zero."""

    def factory(**overrides) -> AppConfig:
        fast = {
            "reconnect_delay": 0.0,
            "normal_send_delay": 0.0,
            "congested_send_delay": 0.0,
            "backlog_send_delay": 0.0,
        }
        fast.update(overrides)
        return replace(AppConfig.from_env(), **fast)

    return factory


@pytest.fixture
def config(make_config) -> AppConfig:
    return make_config()


@pytest.fixture
def telemetry() -> SharedTelemetry:
    return SharedTelemetry()


@pytest.fixture
def stats() -> UplinkStats:
    return UplinkStats()


@pytest.fixture
def frame_queue(telemetry) -> FrameQueue:
    return FrameQueue(telemetry, capacity=60)
