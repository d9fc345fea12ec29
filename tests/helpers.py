"""Test helper functions for position relay tests.

These helpers build configuration, samples and feed payloads with sensible
defaults while allowing per-test customization.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_config, make_sample, make_feed_payload

    def test_example():
        config = make_config(base_interval_ms=1000)
        sample = make_sample(entry_id=43)
        payload = make_feed_payload(make_feed_entry(entry_id=43))
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from position_relay.config import (
    Config,
    FeedConfig,
    HealthConfig,
    PollingConfig,
    RetryConfig,
    ServerConfig,
    ShutdownConfig,
    StoreConfig,
)
from position_relay.types import EntryId, Sample

FEED_BASE_URL = "https://feed.test"
STORE_DATABASE_URL = "https://relay-test.firebaseio.test"

# Fixed instant used wherever a test needs a deterministic wall clock
FIXED_NOW = datetime(2026, 10, 17, 9, 30, 0, tzinfo=UTC)


def make_config(
    *,
    channel_id: str = "1234567",
    api_key: str = "READKEY",
    ignition_field: str | None = None,
    store_path: str = "HomeFragment",
    base_interval_ms: int = 15_000,
    escalation_threshold: int = 5,
    ceiling_interval_ms: int = 300_000,
    cap_multiplier: int = 20,
    drift_check_ms: int = 10_000,
    feed_max_retries: int = 0,
    store_max_retries: int = 0,
    retry_base_delay_ms: int = 1,
    staleness_window_ms: int = 300_000,
    webhook_enabled: bool = False,
    grace_period_ms: int = 10_000,
) -> Config:
    """Create a Config with test defaults.

    Retries default to zero so cycle-level tests see one attempt per call.
    """
    return Config(
        feed=FeedConfig(
            channel_id=channel_id,
            api_key=api_key,
            base_url=FEED_BASE_URL,
            ignition_field=ignition_field,
        ),
        store=StoreConfig(
            database_url=STORE_DATABASE_URL,
            auth_token="SECRET",
            path=store_path,
        ),
        polling=PollingConfig(
            base_interval_ms=base_interval_ms,
            escalation_threshold=escalation_threshold,
            ceiling_interval_ms=ceiling_interval_ms,
            cap_multiplier=cap_multiplier,
            drift_check_ms=drift_check_ms,
        ),
        retry=RetryConfig(
            request_timeout_ms=1_000,
            feed_max_retries=feed_max_retries,
            store_max_retries=store_max_retries,
            retry_base_delay_ms=retry_base_delay_ms,
        ),
        health=HealthConfig(staleness_window_ms=staleness_window_ms),
        server=ServerConfig(webhook_enabled=webhook_enabled),
        shutdown=ShutdownConfig(grace_period_ms=grace_period_ms),
    )


def make_sample(
    entry_id: EntryId = 43,
    latitude: float = 12.9716,
    longitude: float = 77.5946,
    captured_at: str = "2026-10-17T09:30:00Z",
    ignition: str | None = None,
) -> Sample:
    """Create a Sample with test defaults."""
    return Sample(
        entry_id=entry_id,
        latitude=latitude,
        longitude=longitude,
        captured_at=captured_at,
        ignition=ignition,
    )


def make_feed_entry(
    entry_id: Any = 43,
    field1: Any = "12.9716",
    field2: Any = "77.5946",
    created_at: str = "2026-10-17T09:30:00Z",
    **extra_fields: Any,
) -> dict[str, Any]:
    """Create one element of a feeds.json ``feeds`` list."""
    entry: dict[str, Any] = {
        "created_at": created_at,
        "entry_id": entry_id,
        "field1": field1,
        "field2": field2,
    }
    entry.update(extra_fields)
    return entry


def make_feed_payload(*entries: dict[str, Any]) -> dict[str, Any]:
    """Wrap entries in a feeds.json response body."""
    return {
        "channel": {"id": 1234567, "name": "tracker", "last_entry_id": 43},
        "feeds": list(entries),
    }
