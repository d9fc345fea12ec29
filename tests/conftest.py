"""Shared pytest fixtures for position relay tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest

from position_relay.backoff import BackoffController
from position_relay.config import Config
from position_relay.engine import RelayContext
from position_relay.types import ReconciliationState
from tests.helpers import FIXED_NOW, make_config
from tests.mocks import MockFeedSource, MockSampleStore

RELAY_ENV_VARS = (
    "RELAY_FEED_BASE_URL",
    "RELAY_FEED_CHANNEL_ID",
    "RELAY_FEED_API_KEY",
    "RELAY_FEED_LATITUDE_FIELD",
    "RELAY_FEED_LONGITUDE_FIELD",
    "RELAY_FEED_IGNITION_FIELD",
    "RELAY_STORE_DATABASE_URL",
    "RELAY_STORE_AUTH_TOKEN",
    "RELAY_STORE_PATH",
    "RELAY_DISPLAY_TIMEZONE",
    "RELAY_DISPLAY_TIME_FORMAT",
    "RELAY_POLL_INTERVAL_MS",
    "RELAY_REQUEST_TIMEOUT_MS",
    "RELAY_ESCALATION_THRESHOLD",
    "RELAY_CEILING_INTERVAL_MS",
    "RELAY_CAP_MULTIPLIER",
    "RELAY_DRIFT_CHECK_MS",
    "RELAY_FEED_MAX_RETRIES",
    "RELAY_STORE_MAX_RETRIES",
    "RELAY_RETRY_BASE_DELAY_MS",
    "RELAY_STALENESS_WINDOW_MS",
    "RELAY_SHUTDOWN_GRACE_MS",
    "RELAY_SERVER_ENABLED",
    "RELAY_SERVER_HOST",
    "RELAY_SERVER_PORT",
    "RELAY_WEBHOOK_ENABLED",
    "RELAY_LOG_LEVEL",
    "RELAY_LOG_JSON",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[pytest.MonkeyPatch]:
    """Remove every RELAY_* variable and run from an empty directory.

    Running from tmp_path keeps load_dotenv() from picking up a developer's .env,
    and swapping in a copy of os.environ discards whatever load_dotenv() sets.
    """
    monkeypatch.setattr(os, "environ", os.environ.copy())
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield monkeypatch


@pytest.fixture
def required_env(clean_env: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Set the three required variables on top of a clean environment."""
    clean_env.setenv("RELAY_FEED_CHANNEL_ID", "1234567")
    clean_env.setenv("RELAY_STORE_DATABASE_URL", "https://relay-test.firebaseio.test/")
    clean_env.setenv("RELAY_STORE_AUTH_TOKEN", "SECRET")
    return clean_env


@pytest.fixture
def config() -> Config:
    """Config with test defaults."""
    return make_config()


@pytest.fixture
def state(config: Config) -> ReconciliationState:
    """Fresh reconciliation state at the configured base interval."""
    return ReconciliationState.initial(config.polling.base_interval_ms)


@pytest.fixture
def make_context(config: Config):
    """Factory fixture building a RelayContext around scripted fakes."""

    def _make(
        feed: MockFeedSource,
        store: MockSampleStore | None = None,
        context_config: Config | None = None,
    ) -> RelayContext:
        effective = context_config or config
        return RelayContext(
            config=effective,
            state=ReconciliationState.initial(effective.polling.base_interval_ms),
            feed=feed,
            store=store or MockSampleStore(),
            backoff=BackoffController(effective.polling, clock=lambda: FIXED_NOW),
        )

    return _make


@pytest.fixture(autouse=True)
def reset_relay_logger() -> Iterator[None]:
    """Restore logger levels and root handlers after tests that call setup_logging()."""
    root_logger = logging.getLogger()
    loggers = [logging.getLogger(name) for name in ("position_relay", "httpx", "httpcore")]
    saved_handlers = root_logger.handlers[:]
    saved_root_level = root_logger.level
    saved_levels = [logger.level for logger in loggers]
    yield
    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_root_level)
    for logger, level in zip(loggers, saved_levels, strict=True):
        logger.setLevel(level)
