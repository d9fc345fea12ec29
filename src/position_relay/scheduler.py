"""Cycle scheduler for the reconciliation engine.

The scheduler owns a single active ``threading.Timer`` handle. Arming always
cancels and replaces the previous handle, so timers never stack. The next cycle
is armed only after the previous one has fully completed, using the live
interval at that moment, which keeps cycles strictly serialized.

A drift watcher thread wakes every ``drift_check_ms`` and compares the interval
the pending timer was armed with against the live interval. When they differ it
re-arms with the live value instead of waiting out a stale timer.

Each armed timer carries a generation number. A timer that fires after it was
superseded sees a newer generation and returns without running a cycle.

Usage:
    scheduler = CycleScheduler(
        cycle=lambda: run_cycle(context),
        interval_source=lambda: context.state.current_interval_ms,
        drift_check_ms=10_000,
        on_error=lambda e: record_unexpected_error(context.state, e),
    )
    scheduler.start()   # runs one cycle immediately, then arms the timer
    ...
    scheduler.stop(timeout=10.0)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from position_relay.logging import get_logger

logger = get_logger(__name__)

type TimerFactory = Callable[..., threading.Timer]


class CycleScheduler:
    """Runs a cycle callable repeatedly with a live, possibly changing interval.

    Attributes:
        drift_check_ms: Cadence of the drift watcher in milliseconds.
    """

    def __init__(
        self,
        cycle: Callable[[], Any],
        interval_source: Callable[[], int],
        drift_check_ms: int = 10_000,
        on_error: Callable[[Exception], None] | None = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        """Initialize the scheduler.

        Args:
            cycle: Callable running one reconciliation cycle.
            interval_source: Returns the live poll interval in milliseconds.
            drift_check_ms: How often the drift watcher compares intervals.
            on_error: Called with any exception that escapes a cycle.
            timer_factory: Factory with the threading.Timer signature (tests).
        """
        self._cycle = cycle
        self._interval_source = interval_source
        self.drift_check_ms = drift_check_ms
        self._on_error = on_error
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._armed_interval_ms: int | None = None
        self._running = False
        self._watcher: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Whether start() has been called and stop() has not."""
        return self._running

    @property
    def armed_interval_ms(self) -> int | None:
        """Interval of the pending timer, or None when no timer is armed."""
        with self._lock:
            return self._armed_interval_ms if self._timer is not None else None

    def start(self) -> None:
        """Run one cycle immediately, then enter the periodic schedule.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        with self._lock:
            if self._running:
                raise RuntimeError("Scheduler is already running")
            self._running = True
            self._stop_event.clear()

        logger.info("Running initial cycle")
        self._run_guarded()
        self._arm(self._interval_source())

        self._watcher = threading.Thread(
            target=self._watch_drift,
            name="relay-drift-watcher",
            daemon=True,
        )
        self._watcher.start()

    def stop(self, timeout: float | None = None) -> bool:
        """Cancel the pending timer, stop the watcher and drain the active cycle.

        Args:
            timeout: Seconds to wait for an in-flight cycle. None waits forever.

        Returns:
            True if no cycle was running when this returned.
        """
        with self._lock:
            self._running = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._armed_interval_ms = None
        self._stop_event.set()

        if (
            self._watcher is not None
            and self._watcher.is_alive()
            and self._watcher is not threading.current_thread()
        ):
            self._watcher.join(timeout=timeout)

        drained = self._cycle_lock.acquire(timeout=-1 if timeout is None else timeout)
        if drained:
            self._cycle_lock.release()
        else:
            logger.warning("In-flight cycle did not finish within %ss", timeout)
        logger.debug("Scheduler stopped")
        return drained

    def check_drift(self) -> bool:
        """Re-arm the timer if the live interval differs from the armed one.

        Returns:
            True if the timer was re-armed.
        """
        live_interval = self._interval_source()
        with self._lock:
            # No pending timer means a cycle is running and will re-arm itself
            if not self._running or self._timer is None:
                return False
            if live_interval == self._armed_interval_ms:
                return False
            logger.info(
                "Poll interval changed from %sms to %sms, re-arming timer",
                self._armed_interval_ms,
                live_interval,
            )
            self._arm_locked(live_interval)
            return True

    def _watch_drift(self) -> None:
        wait_seconds = self.drift_check_ms / 1000.0
        while not self._stop_event.wait(wait_seconds):
            self.check_drift()

    def _arm(self, interval_ms: int) -> None:
        with self._lock:
            self._arm_locked(interval_ms)

    def _arm_locked(self, interval_ms: int) -> None:
        """Replace the pending timer. Caller must hold ``self._lock``."""
        if not self._running:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        timer = self._timer_factory(
            interval_ms / 1000.0, self._on_timer, args=(self._generation,)
        )
        timer.daemon = True
        self._timer = timer
        self._armed_interval_ms = interval_ms
        timer.start()
        logger.debug("Next cycle in %sms", interval_ms)

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._generation:
                return
            self._timer = None

        self._run_guarded()
        self._arm(self._interval_source())

    def _run_guarded(self) -> bool:
        """Run one cycle, containing any exception that escapes it.

        Returns:
            False if another cycle was still running and this one was skipped.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous cycle still running, skipping this tick")
            return False
        try:
            self._cycle()
        except Exception as e:
            logger.exception("Unexpected error escaped reconciliation cycle: %s", e)
            if self._on_error is not None:
                self._on_error(e)
        finally:
            self._cycle_lock.release()
        return True


__all__ = ["CycleScheduler", "TimerFactory"]
