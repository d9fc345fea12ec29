"""Background HTTP server for the relay's health and push endpoints.

uvicorn runs in a daemon thread so the HTTP surface shares the process with the
scheduler's timer threads. The listener is optional: when it cannot bind, the
relay keeps polling without it.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import uvicorn
    from starlette.types import ASGIApp

from position_relay.logging import get_logger

logger = get_logger(__name__)

# Interval between checks of uvicorn's ``started`` flag during startup
STARTUP_POLL_SECONDS = 0.05


class HealthServer:
    """uvicorn server thread for the relay HTTP surface.

    Example:
        server = HealthServer(host="127.0.0.1", port=3000)
        if server.start(create_app(config, reporter, store)):
            ...
        server.shutdown()
    """

    def __init__(self, host: str, port: int, startup_timeout: float = 5.0) -> None:
        """Initialize the server.

        Args:
            host: Interface to bind.
            port: TCP port to listen on.
            startup_timeout: Seconds start() waits for uvicorn to report startup.
        """
        self._host = host
        self._port = port
        self._startup_timeout = startup_timeout
        self._uvicorn: uvicorn.Server | None = None
        self._worker: threading.Thread | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def url(self) -> str:
        """Base URL of the listener."""
        return f"http://{self._host}:{self._port}"

    @property
    def is_running(self) -> bool:
        """Whether uvicorn has started and not yet been shut down."""
        return self._uvicorn is not None and self._uvicorn.started

    def start(self, app: ASGIApp) -> bool:
        """Serve ``app`` from a daemon thread.

        Blocks until uvicorn reports startup, the thread exits, or the startup
        timeout elapses.

        Args:
            app: The ASGI application to serve.

        Returns:
            True if the listener is up. False if uvicorn exited during startup
            (typically a port already in use) or did not start in time; in the
            timeout case the thread is left running and may still come up.
        """
        import uvicorn

        self._uvicorn = uvicorn.Server(
            uvicorn.Config(
                app=app,
                host=self._host,
                port=self._port,
                log_level="warning",
                access_log=False,
            )
        )
        self._worker = threading.Thread(
            target=self._uvicorn.run,
            name="relay-http-server",
            daemon=True,
        )
        self._worker.start()
        return self._wait_for_startup(self._uvicorn, self._worker)

    def _wait_for_startup(self, server: uvicorn.Server, worker: threading.Thread) -> bool:
        deadline = time.monotonic() + self._startup_timeout
        while not server.started:
            if not worker.is_alive():
                logger.error("HTTP server exited during startup (is port %s in use?)", self._port)
                return False
            if time.monotonic() > deadline:
                logger.warning(
                    "HTTP server not up after %.1fs, continuing without waiting",
                    self._startup_timeout,
                )
                return False
            time.sleep(STARTUP_POLL_SECONDS)

        logger.info("Health endpoint listening on %s/health/live", self.url)
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait for its thread.

        Args:
            timeout: Seconds to wait for the server thread to finish.
        """
        if self._uvicorn is None:
            return

        self._uvicorn.should_exit = True
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning("HTTP server thread still running after %.1fs", timeout)

        self._uvicorn = None
        self._worker = None
        logger.info("HTTP server stopped")


__all__ = ["HealthServer"]
