"""Poll cadence backoff for the reconciliation cycle.

Two modes:

- Nominal: consecutive_failures <= escalation_threshold. The poll interval is
  the configured base interval.
- Escalated: consecutive_failures > escalation_threshold. The interval grows
  exponentially and is capped:

      min(base * min(2 ** (consecutive_failures - 2), cap_multiplier), ceiling)

With the defaults (base 15s, threshold 5, cap 20, ceiling 300s) the sixth
consecutive failure yields 240s and the seventh reaches the 300s ceiling.

The first successful cycle returns to Nominal immediately; there is no gradual
ramp-down. total_failures decays by one per success instead of resetting, so it
acts as a slow error-rate signal alongside the reset-on-success counter.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from position_relay.config import PollingConfig
from position_relay.logging import get_logger
from position_relay.types import ReconciliationState

logger = get_logger(__name__)


class BackoffController:
    """Updates failure counters and the live poll interval on ReconciliationState."""

    def __init__(
        self,
        config: PollingConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Polling configuration (base, threshold, cap, ceiling).
            clock: Optional clock returning an aware datetime (tests).
        """
        self.config = config
        self._clock = clock or (lambda: datetime.now(UTC))

    def is_escalated(self, consecutive_failures: int) -> bool:
        """Whether the given failure streak puts the controller in Escalated mode."""
        return consecutive_failures > self.config.escalation_threshold

    def compute_interval_ms(self, consecutive_failures: int) -> int:
        """Compute the poll interval for a failure streak.

        Args:
            consecutive_failures: Current consecutive failure count.

        Returns:
            Interval in milliseconds.
        """
        base = self.config.base_interval_ms
        if not self.is_escalated(consecutive_failures):
            return base
        multiplier = min(2 ** (consecutive_failures - 2), self.config.cap_multiplier)
        return min(base * multiplier, self.config.ceiling_interval_ms)

    def record_success(self, state: ReconciliationState) -> None:
        """Apply a successful cycle to the state."""
        if state.consecutive_failures > 0:
            logger.info(
                "Cycle succeeded after %s consecutive failure(s); interval reset to %sms",
                state.consecutive_failures,
                self.config.base_interval_ms,
            )
        state.consecutive_failures = 0
        state.total_failures = max(0, state.total_failures - 1)
        state.current_interval_ms = self.config.base_interval_ms
        state.last_success_at = self._clock()

    def record_failure(self, state: ReconciliationState) -> None:
        """Apply a failed cycle to the state."""
        was_escalated = self.is_escalated(state.consecutive_failures)
        state.consecutive_failures += 1
        state.total_failures += 1
        state.current_interval_ms = self.compute_interval_ms(state.consecutive_failures)

        if self.is_escalated(state.consecutive_failures):
            log = logger.info if was_escalated else logger.warning
            log(
                "Backoff escalated: %s consecutive failures, next poll in %sms",
                state.consecutive_failures,
                state.current_interval_ms,
            )


__all__ = ["BackoffController"]
