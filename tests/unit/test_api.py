"""Tests for the relay HTTP surface."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from position_relay.api import create_app, format_bytes, format_duration
from position_relay.config import Config, ServerConfig
from position_relay.exceptions import DownstreamError, DownstreamErrorKind
from position_relay.health import HealthReporter
from position_relay.types import ReconciliationState
from tests.helpers import FIXED_NOW, make_config
from tests.mocks import MockSampleStore


def _process() -> MagicMock:
    process = MagicMock()
    process.memory_info.return_value = MagicMock(rss=10_485_760, vms=104_857_600)
    process.memory_percent.return_value = 0.5
    return process


class RelayApp:
    """Bundle of app, state and store for one test."""

    def __init__(self, config: Config, store: MockSampleStore | None = None) -> None:
        self.config = config
        self.state = ReconciliationState(
            current_interval_ms=config.polling.base_interval_ms,
            last_success_at=FIXED_NOW,
        )
        self.now = FIXED_NOW
        self.store = store or MockSampleStore()
        self.reporter = HealthReporter(
            self.state,
            config.polling,
            config.health,
            clock=lambda: self.now,
            process=_process(),
        )
        self.client = TestClient(create_app(config, self.reporter, self.store))


@pytest.fixture
def relay_app() -> RelayApp:
    return RelayApp(make_config())


@pytest.fixture
def webhook_app() -> RelayApp:
    return RelayApp(make_config(webhook_enabled=True))


class TestFormatDuration:
    """Tests for the format_duration filter."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(None, "0s"), (-3, "0s"), (45, "45s"), (125, "2m 5s"), (3725, "1h 2m 5s")],
    )
    def test_values(self, seconds, expected: str) -> None:
        assert format_duration(seconds) == expected


class TestFormatBytes:
    """Tests for the format_bytes filter."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "0 B"),
            (0, "0 B"),
            (512, "512 B"),
            (49_459, "48.3 KiB"),
            (10_485_760, "10.0 MiB"),
            (3 * 1024**3, "3.0 GiB"),
        ],
    )
    def test_values(self, value, expected: str) -> None:
        assert format_bytes(value) == expected


class TestHealthEndpoints:
    """Tests for /health/live and /health."""

    def test_live_healthy(self, relay_app: RelayApp) -> None:
        response = relay_app.client.get("/health/live")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["memory"]["rss_bytes"] == 10_485_760
        assert body["configured_interval_ms"] == 15_000

    def test_live_degraded_by_failures(self, relay_app: RelayApp) -> None:
        relay_app.state.consecutive_failures = 5
        response = relay_app.client.get("/health/live")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_live_degraded_by_staleness(self, relay_app: RelayApp) -> None:
        relay_app.now = FIXED_NOW + timedelta(minutes=10)
        response = relay_app.client.get("/health/live")
        assert response.status_code == 503

    def test_health_always_200(self, relay_app: RelayApp) -> None:
        relay_app.state.consecutive_failures = 9
        response = relay_app.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"


class TestStatusPage:
    """Tests for /status."""

    def test_renders(self, relay_app: RelayApp) -> None:
        relay_app.state.last_accepted_entry_id = 43
        relay_app.state.last_error = "<script>alert(1)</script>"

        response = relay_app.client.get("/status")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Position Relay" in response.text
        assert "1234567" in response.text
        assert "/HomeFragment" in response.text
        assert "43" in response.text
        assert "10.0 MiB" in response.text
        # Autoescaped
        assert "<script>alert(1)</script>" not in response.text
        assert "&lt;script&gt;" in response.text


class TestWebhook:
    """Tests for POST /webhook."""

    def test_disabled_by_default(self, relay_app: RelayApp) -> None:
        response = relay_app.client.post("/webhook", json={"field1": "12.9", "field2": "77.6"})
        assert response.status_code == 404
        assert relay_app.store.writes == []

    def test_writes_entry(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post(
            "/webhook",
            json={"entry_id": 51, "created_at": "2026-10-17T10:00:00Z", "field1": "12.9", "field2": "77.6"},
        )
        assert response.status_code == 202
        assert response.json() == {
            "entry_id": 51,
            "latitude": 12.9,
            "longitude": 77.6,
            "written": True,
        }
        written = webhook_app.store.writes[0]
        assert (written.entry_id, written.latitude, written.longitude) == (51, 12.9, 77.6)
        assert written.captured_at == "2026-10-17T10:00:00Z"

    def test_missing_entry_id_uses_placeholder(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post("/webhook", json={"field1": "12.9", "field2": "77.6"})
        assert response.status_code == 202
        assert webhook_app.store.writes[0].entry_id == "webhook"

    def test_non_ascii_digit_entry_id_accepted(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post(
            "/webhook", json={"entry_id": "²", "field1": "12.9", "field2": "77.6"}
        )
        assert response.status_code == 202
        assert webhook_app.store.writes[0].entry_id == "²"

    def test_does_not_touch_state(self, webhook_app: RelayApp) -> None:
        webhook_app.state.last_accepted_entry_id = 40
        webhook_app.client.post("/webhook", json={"entry_id": 99, "field1": "1.5", "field2": "2.5"})
        assert webhook_app.state.last_accepted_entry_id == 40
        assert webhook_app.state.write_count == 0

    def test_missing_fields(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post("/webhook", json={"field1": "12.9"})
        assert response.status_code == 400
        assert "field2" in response.json()["detail"]
        assert webhook_app.store.writes == []

    def test_invalid_json(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post(
            "/webhook", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_non_object_body(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post("/webhook", json=["field1", "field2"])
        assert response.status_code == 400

    def test_zero_zero_rejected(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post("/webhook", json={"field1": "0", "field2": "0"})
        assert response.status_code == 400
        assert webhook_app.store.writes == []

    def test_non_numeric_rejected(self, webhook_app: RelayApp) -> None:
        response = webhook_app.client.post("/webhook", json={"field1": "abc", "field2": "77.6"})
        assert response.status_code == 400

    def test_store_failure_is_502(self) -> None:
        store = MockSampleStore(
            failures=[DownstreamError(DownstreamErrorKind.REJECTED, "denied", status_code=401)]
        )
        app = RelayApp(make_config(webhook_enabled=True), store=store)
        response = app.client.post("/webhook", json={"field1": "12.9", "field2": "77.6"})
        assert response.status_code == 502

    def test_respects_field_mapping(self) -> None:
        config = make_config(webhook_enabled=True)
        config = replace(
            config,
            feed=replace(config.feed, latitude_field="field2", longitude_field="field1"),
            server=ServerConfig(webhook_enabled=True),
        )
        app = RelayApp(config)
        response = app.client.post("/webhook", json={"field1": "77.6", "field2": "12.9"})
        assert response.status_code == 202
        assert app.store.writes[0].latitude == 12.9
        assert app.store.writes[0].longitude == 77.6
