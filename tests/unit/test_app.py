"""Tests for the application runner."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from position_relay.app import (
    CONFIG_ERROR_EXIT_CODE,
    main,
    run_continuous_mode,
    run_once_mode,
    start_server,
)
from position_relay.config import ServerConfig
from position_relay.exceptions import UpstreamError, UpstreamErrorKind
from position_relay.types import ReconciliationState
from tests.helpers import make_config, make_sample
from tests.mocks import MockFeedSource, MockSampleStore


class TestMain:
    """Tests for main()."""

    def test_missing_config_exits_with_config_error(self, clean_env: pytest.MonkeyPatch) -> None:
        assert main(["--once"]) == CONFIG_ERROR_EXIT_CODE

    def test_once_mode(self, make_context) -> None:
        feed = MockFeedSource([make_sample(entry_id=42)])
        context = make_context(feed)
        with patch("position_relay.app.bootstrap", return_value=context):
            assert main(["--once"]) == 0
        assert feed.fetch_calls == 1
        assert feed.closed is True

    def test_continuous_mode_dispatch(self, make_context) -> None:
        context = make_context(MockFeedSource([make_sample()]))
        with (
            patch("position_relay.app.bootstrap", return_value=context),
            patch("position_relay.app.run_continuous_mode", return_value=0) as continuous,
        ):
            assert main([]) == 0
        continuous.assert_called_once_with(context)


class TestRunOnceMode:
    """Tests for run_once_mode()."""

    def test_cold_start_only_baselines(self, make_context) -> None:
        store = MockSampleStore()
        context = make_context(MockFeedSource([make_sample(entry_id=42)]), store)
        assert run_once_mode(context) == 0
        assert store.writes == []
        assert context.state.last_accepted_entry_id == 42

    def test_failed_cycle_exits_nonzero(self, make_context) -> None:
        feed = MockFeedSource([UpstreamError(UpstreamErrorKind.TIMEOUT, "timed out")])
        store = MockSampleStore()
        assert run_once_mode(make_context(feed, store)) == 1
        assert feed.closed is True
        assert store.closed is True

    def test_unexpected_error_still_closes(self, make_context) -> None:
        feed = MockFeedSource([RuntimeError("bug")])
        with pytest.raises(RuntimeError):
            run_once_mode(make_context(feed))
        assert feed.closed is True


class TestStartServer:
    """Tests for start_server()."""

    def test_disabled(self) -> None:
        config = replace(make_config(), server=ServerConfig(enabled=False))
        assert start_server(config, MagicMock(), MockSampleStore()) is None

    def test_os_error_is_not_fatal(self) -> None:
        with patch("position_relay.app.HealthServer") as server_class:
            server_class.return_value.start.side_effect = OSError("Address already in use")
            assert start_server(make_config(), MagicMock(), MockSampleStore()) is None

    def test_unexpected_error_is_not_fatal(self) -> None:
        with patch("position_relay.app.HealthServer") as server_class:
            server_class.return_value.start.side_effect = RuntimeError("no event loop")
            assert start_server(make_config(), MagicMock(), MockSampleStore()) is None

    def test_failed_start_returns_none(self) -> None:
        with patch("position_relay.app.HealthServer") as server_class:
            server_class.return_value.start.return_value = False
            assert start_server(make_config(), MagicMock(), MockSampleStore()) is None
        server_class.return_value.shutdown.assert_called_once()

    def test_started(self) -> None:
        with patch("position_relay.app.HealthServer") as server_class:
            server = start_server(make_config(), MagicMock(), MockSampleStore())
        assert server is server_class.return_value
        server_class.assert_called_once_with(host="127.0.0.1", port=3000)
        server.start.assert_called_once()


class TestRunContinuousMode:
    """Tests for run_continuous_mode() wiring."""

    def test_lifecycle_order(self, make_context) -> None:
        context = make_context(MockFeedSource([make_sample()]))
        calls: list[str] = []

        with (
            patch("position_relay.app.start_server", return_value=None),
            patch("position_relay.app.CycleScheduler") as scheduler_class,
            patch("position_relay.app.LifecycleManager") as lifecycle_class,
        ):
            lifecycle = lifecycle_class.return_value
            lifecycle.install_signal_handlers.side_effect = lambda: calls.append("signals")
            scheduler_class.return_value.start.side_effect = lambda: calls.append("start")
            lifecycle.wait_for_shutdown.side_effect = lambda: calls.append("wait")
            lifecycle.teardown.side_effect = lambda: calls.append("teardown")

            assert run_continuous_mode(context) == 0

        assert calls == ["signals", "start", "wait", "teardown"]
        kwargs = lifecycle_class.call_args.kwargs
        assert kwargs["scheduler"] is scheduler_class.return_value
        assert kwargs["clients"] == [context.feed, context.store]
        assert kwargs["grace_period_ms"] == 10_000

    def test_scheduler_reads_live_interval_and_records_errors(self, make_context) -> None:
        context = make_context(MockFeedSource([make_sample()]))

        with (
            patch("position_relay.app.start_server", return_value=None),
            patch("position_relay.app.CycleScheduler") as scheduler_class,
            patch("position_relay.app.LifecycleManager"),
        ):
            run_continuous_mode(context)

        kwargs = scheduler_class.call_args.kwargs
        state: ReconciliationState = context.state
        state.current_interval_ms = 60_000
        assert kwargs["interval_source"]() == 60_000
        assert kwargs["drift_check_ms"] == 10_000

        kwargs["on_error"](ValueError("bad"))
        assert state.unexpected_errors == 1

        kwargs["cycle"]()
        assert state.cycle_count == 1
