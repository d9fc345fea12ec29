"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging

import pytest

from position_relay.logging import (
    ContextAdapter,
    JSONFormatter,
    RelayLogger,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


def _record(name: str = "position_relay.engine", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Wrote entry %s",
        args=(43,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_basic_format(self) -> None:
        output = StructuredFormatter().format(_record())
        assert "[INFO    ]" in output
        assert "[engine        ]" in output
        assert output.endswith("Wrote entry 43")

    def test_context_fields(self) -> None:
        output = StructuredFormatter().format(_record(cycle=7, entry_id=43))
        assert "[cycle=7 entry_id=43]" in output

    def test_top_level_logger_name(self) -> None:
        output = StructuredFormatter().format(_record(name="uvicorn"))
        assert "[uvicorn       ]" in output

    def test_exception_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            import sys

            record.exc_info = sys.exc_info()
        output = StructuredFormatter().format(record)
        assert "ValueError: boom" in output


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_fields(self) -> None:
        data = json.loads(
            JSONFormatter().format(_record(cycle=3, error_kind="timeout", classification="new"))
        )
        assert data["level"] == "INFO"
        assert data["component"] == "engine"
        assert data["message"] == "Wrote entry 43"
        assert data["cycle"] == 3
        assert data["error_kind"] == "timeout"
        assert data["classification"] == "new"
        assert "timestamp" in data

    def test_omits_absent_context(self) -> None:
        data = json.loads(JSONFormatter().format(_record()))
        assert "cycle" not in data
        assert "exception" not in data


class TestContext:
    """Tests for RelayLogger.with_context."""

    def test_get_logger_returns_relay_logger(self) -> None:
        assert isinstance(get_logger("position_relay.test_context"), RelayLogger)

    def test_with_context_adds_extra(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("position_relay.test_context")
        adapter = logger.with_context(cycle=12, entry_id=43)
        assert isinstance(adapter, ContextAdapter)

        with caplog.at_level(logging.INFO, logger="position_relay.test_context"):
            adapter.info("Cycle complete")

        record = caplog.records[-1]
        assert record.cycle == 12
        assert record.entry_id == 43

    def test_call_extra_merged(self, caplog: pytest.LogCaptureFixture) -> None:
        adapter = get_logger("position_relay.test_context").with_context(cycle=1)
        with caplog.at_level(logging.INFO, logger="position_relay.test_context"):
            adapter.info("Feed failed", extra={"error_kind": "timeout"})
        record = caplog.records[-1]
        assert record.cycle == 1
        assert record.error_kind == "timeout"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_structured_handler(self) -> None:
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("position_relay").level == logging.DEBUG

    def test_json_handler(self) -> None:
        setup_logging("INFO", json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_quiets_httpx(self) -> None:
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging("CHATTY")
        assert logging.getLogger().level == logging.INFO

    def test_keep_existing_handlers(self) -> None:
        existing = logging.NullHandler()
        logging.getLogger().addHandler(existing)
        setup_logging("INFO", replace_handlers=False)
        assert existing in logging.getLogger().handlers
