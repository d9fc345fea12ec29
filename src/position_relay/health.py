"""Health reporting for the position relay.

The reporter builds a read-only snapshot of the reconciliation state plus
process metrics. It never mutates state and takes no locks, so a snapshot taken
while a cycle is in flight may mix values from before and after an update; the
snapshot is diagnostic only.

Status rules:
- degraded: consecutive_failures >= escalation_threshold, or the last
  successful cycle is older than the staleness window
- healthy: otherwise

Usage:
    from position_relay.health import HealthReporter

    reporter = HealthReporter(state, config.polling, config.health)
    snapshot = reporter.snapshot()
    if snapshot.status == HealthStatus.DEGRADED:
        ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import psutil

from position_relay.config import HealthConfig, PollingConfig
from position_relay.logging import get_logger
from position_relay.types import EntryId, ReconciliationState

logger = get_logger(__name__)


class HealthStatus(StrEnum):
    """Overall health of the relay."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


@dataclass
class MemoryUsage:
    """Resident and virtual memory of the relay process.

    Attributes:
        rss_bytes: Resident set size in bytes.
        vms_bytes: Virtual memory size in bytes.
        percent: Resident memory as a percentage of total system memory.
    """

    rss_bytes: int = 0
    vms_bytes: int = 0
    percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "rss_bytes": self.rss_bytes,
            "vms_bytes": self.vms_bytes,
            "percent": round(self.percent, 2),
        }


@dataclass
class HealthSnapshot:
    """Point-in-time view of relay health."""

    status: HealthStatus
    uptime_seconds: float
    consecutive_failures: int
    total_failures: int
    last_success_at: datetime
    time_since_last_success_seconds: float
    configured_interval_ms: int
    current_interval_ms: int
    last_accepted_entry_id: EntryId | None = None
    cycle_count: int = 0
    write_count: int = 0
    unexpected_errors: int = 0
    last_error: str | None = None
    shutting_down: bool = False
    memory: MemoryUsage = field(default_factory=MemoryUsage)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_healthy(self) -> bool:
        """Whether the status is HEALTHY."""
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "memory": self.memory.to_dict(),
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "last_success_at": self.last_success_at.isoformat(),
            "time_since_last_success_seconds": round(self.time_since_last_success_seconds, 3),
            "configured_interval_ms": self.configured_interval_ms,
            "current_interval_ms": self.current_interval_ms,
            "last_accepted_entry_id": self.last_accepted_entry_id,
            "cycle_count": self.cycle_count,
            "write_count": self.write_count,
            "unexpected_errors": self.unexpected_errors,
            "last_error": self.last_error,
            "shutting_down": self.shutting_down,
        }


class HealthReporter:
    """Builds health snapshots from the reconciliation state.

    Attributes:
        state: The reconciliation state (read only).
        polling: Polling configuration, for the base interval and threshold.
        health: Health configuration, for the staleness window.
    """

    def __init__(
        self,
        state: ReconciliationState,
        polling: PollingConfig,
        health: HealthConfig,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] | None = None,
        process: psutil.Process | None = None,
    ) -> None:
        """Initialize the health reporter.

        Args:
            state: The reconciliation state to report on.
            polling: Polling configuration.
            health: Health configuration.
            clock: Optional clock returning an aware datetime (tests).
            monotonic: Optional monotonic clock in seconds (tests).
            process: Optional psutil process handle (tests).
        """
        self.state = state
        self.polling = polling
        self.health = health
        self._clock = clock or (lambda: datetime.now(UTC))
        self._monotonic = monotonic or time.monotonic
        self._process = process or psutil.Process()

    def _memory(self) -> MemoryUsage:
        try:
            info = self._process.memory_info()
            return MemoryUsage(
                rss_bytes=info.rss,
                vms_bytes=info.vms,
                percent=self._process.memory_percent(),
            )
        except psutil.Error as e:
            logger.debug("Could not read process memory: %s", e)
            return MemoryUsage()

    def is_degraded(self, consecutive_failures: int, since_success_seconds: float) -> bool:
        """Apply the degradation rules.

        Args:
            consecutive_failures: Current failure streak.
            since_success_seconds: Seconds since the last successful cycle.

        Returns:
            True if the relay should report DEGRADED.
        """
        if consecutive_failures >= self.polling.escalation_threshold:
            return True
        return since_success_seconds * 1000 > self.health.staleness_window_ms

    def snapshot(self) -> HealthSnapshot:
        """Build a health snapshot.

        Returns:
            The current HealthSnapshot.
        """
        state = self.state
        consecutive_failures = state.consecutive_failures
        last_success_at = state.last_success_at
        since_success = max(0.0, (self._clock() - last_success_at).total_seconds())

        status = (
            HealthStatus.DEGRADED
            if self.is_degraded(consecutive_failures, since_success)
            else HealthStatus.HEALTHY
        )

        return HealthSnapshot(
            status=status,
            uptime_seconds=max(0.0, self._monotonic() - state.started_monotonic),
            consecutive_failures=consecutive_failures,
            total_failures=state.total_failures,
            last_success_at=last_success_at,
            time_since_last_success_seconds=since_success,
            configured_interval_ms=self.polling.base_interval_ms,
            current_interval_ms=state.current_interval_ms,
            last_accepted_entry_id=state.last_accepted_entry_id,
            cycle_count=state.cycle_count,
            write_count=state.write_count,
            unexpected_errors=state.unexpected_errors,
            last_error=state.last_error,
            shutting_down=state.shutting_down,
            memory=self._memory(),
        )


__all__ = ["HealthReporter", "HealthSnapshot", "HealthStatus", "MemoryUsage"]
