"""Graceful shutdown handling for the position relay.

This module provides signal handling and shutdown coordination:
- SIGINT (Ctrl+C) and SIGTERM both request shutdown; repeats are no-ops
- New cycles become no-ops as soon as shutdown is requested
- Teardown stops the scheduler, the HTTP server and the HTTP clients
- A force-exit timer terminates the process if teardown overruns the
  grace period, so a hung network call can never block exit
"""

from __future__ import annotations

import os
import signal
import threading
from collections.abc import Callable
from types import FrameType
from typing import Protocol

from position_relay.logging import get_logger
from position_relay.types import ReconciliationState

logger = get_logger(__name__)

# Exit status used when the grace period expires before teardown completes
FORCED_EXIT_CODE = 1


class Stoppable(Protocol):
    """Anything the lifecycle manager can stop with a timeout."""

    def stop(self, timeout: float | None = None) -> bool: ...


class ServerLike(Protocol):
    """An HTTP server that can release its listener."""

    def shutdown(self, timeout: float = 5.0) -> None: ...


class Closeable(Protocol):
    """A client holding network resources."""

    def close(self) -> None: ...


class LifecycleManager:
    """Coordinates shutdown of the relay.

    Attributes:
        state: Reconciliation state; ``shutting_down`` is set on request.
        grace_period_ms: Upper bound on teardown before the process is forced out.
    """

    def __init__(
        self,
        state: ReconciliationState,
        scheduler: Stoppable | None = None,
        server: ServerLike | None = None,
        clients: list[Closeable] | None = None,
        grace_period_ms: int = 10_000,
        exit_func: Callable[[int], None] = os._exit,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        """Initialize the lifecycle manager.

        Args:
            state: Reconciliation state to flag on shutdown.
            scheduler: The cycle scheduler to stop.
            server: Optional HTTP server to shut down.
            clients: HTTP clients to close last.
            grace_period_ms: Grace period before forced exit.
            exit_func: Called with FORCED_EXIT_CODE when the grace period expires.
            timer_factory: Factory with the threading.Timer signature (tests).
        """
        self.state = state
        self.scheduler = scheduler
        self.server = server
        self.clients = clients or []
        self.grace_period_ms = grace_period_ms
        self._exit_func = exit_func
        self._timer_factory = timer_factory

        # Reentrant: signal handlers run on the main thread and may interrupt
        # it while it holds the lock
        self._lock = threading.RLock()
        self._shutdown_event = threading.Event()
        self._force_timer: threading.Timer | None = None
        self._reason: str | None = None

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_event.is_set()

    @property
    def reason(self) -> str | None:
        """What triggered the shutdown, if anything has."""
        return self._reason

    def request_shutdown(self, reason: str = "requested") -> bool:
        """Request graceful shutdown.

        Args:
            reason: Short description for logs (e.g. the signal name).

        Returns:
            True if this call initiated shutdown, False if it was already underway.
        """
        with self._lock:
            if self._shutdown_event.is_set():
                logger.debug("Shutdown already in progress, ignoring %s", reason)
                return False

            # Claim the request before arming the timer so a nested signal
            # arriving below sees it and returns
            self._shutdown_event.set()
            self._reason = reason
            self.state.shutting_down = True

            grace_seconds = self.grace_period_ms / 1000.0
            if self._force_timer is None:
                self._force_timer = self._timer_factory(grace_seconds, self._force_exit)
                self._force_timer.daemon = True
                self._force_timer.start()

        logger.info(
            "Shutdown requested (%s); forcing exit in %.1fs if teardown stalls",
            reason,
            grace_seconds,
        )
        return True

    def _force_exit(self) -> None:
        logger.error(
            "Teardown exceeded %sms grace period, forcing exit", self.grace_period_ms
        )
        self._exit_func(FORCED_EXIT_CODE)

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM).

        Args:
            signum: The signal number received.
            frame: The current stack frame (unused).
        """
        signal_name = signal.Signals(signum).name
        logger.info("Received %s", signal_name)
        self.request_shutdown(signal_name)

    def install_signal_handlers(self) -> None:
        """Install signal handlers for SIGINT and SIGTERM."""
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)
        logger.debug("Signal handlers installed for SIGINT and SIGTERM")

    def wait_for_shutdown(self, poll_seconds: float = 1.0) -> None:
        """Block until shutdown is requested.

        Waits in short slices so the main thread stays responsive to signals.
        """
        while not self._shutdown_event.wait(poll_seconds):
            pass

    def teardown(self) -> bool:
        """Stop the scheduler, server and clients within the grace period.

        Returns:
            True if the in-flight cycle (if any) drained in time.
        """
        grace_seconds = self.grace_period_ms / 1000.0
        drained = True

        if self.scheduler is not None:
            drained = self.scheduler.stop(timeout=grace_seconds)

        if self.server is not None:
            self.server.shutdown()

        for client in self.clients:
            client.close()

        with self._lock:
            if self._force_timer is not None:
                self._force_timer.cancel()
                self._force_timer = None

        logger.info("Shutdown complete")
        return drained


__all__ = ["FORCED_EXIT_CODE", "LifecycleManager"]
