"""Bounded linear retry for the feed and store clients.

Both HTTP clients retry their own calls a small, fixed number of times before
handing the failure to the reconciliation cycle. The delay grows linearly with
the retry number (base, 2 x base, 3 x base, ...). The BackoffController, not
this module, governs the poll cadence between cycles.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from position_relay.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Linear retry policy for a single outbound call.

    Attributes:
        max_retries: Retries allowed after the first attempt (0 disables retry).
        base_delay_ms: Delay unit in milliseconds.
    """

    max_retries: int = 3
    base_delay_ms: int = 1_000

    def delay_seconds(self, retry_number: int) -> float:
        """Delay before the given retry.

        Args:
            retry_number: 1 for the first retry, 2 for the second, and so on.

        Returns:
            Delay in seconds: base_delay_ms x retry_number.
        """
        return self.base_delay_ms * retry_number / 1000.0


def execute_with_retry[T](
    operation: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[Exception], ...],
    label: str,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Execute an operation, retrying on the given exception types.

    Args:
        operation: Callable performing one attempt.
        policy: Retry count and delay policy.
        retry_on: Exception types that trigger a retry. Anything else propagates
            immediately.
        label: Short description used in log messages (e.g. "feed fetch").
        sleep: Sleep function, injectable for tests. Defaults to time.sleep.

    Returns:
        Result from the first successful attempt.

    Raises:
        The last exception raised by ``operation`` once retries are exhausted.
    """
    total_attempts = policy.max_retries + 1

    for attempt in range(1, total_attempts + 1):
        try:
            return operation()
        except retry_on as e:
            if attempt >= total_attempts:
                logger.warning(
                    "%s failed after %s attempt(s): %s",
                    label,
                    total_attempts,
                    e,
                    extra={"attempt": attempt},
                )
                raise

            delay = policy.delay_seconds(attempt)
            logger.info(
                "%s failed (attempt %s/%s): %s. Retrying in %.2fs",
                label,
                attempt,
                total_attempts,
                e,
                delay,
                extra={"attempt": attempt},
            )
            (sleep or time.sleep)(delay)

    # Unreachable: the loop either returns or re-raises on the final attempt
    raise RuntimeError(f"{label}: retry loop exited without a result")


__all__ = ["RetryPolicy", "execute_with_retry"]
