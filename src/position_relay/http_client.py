"""Shared httpx connection handling for the feed and store clients."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Self

import httpx


def timeout_from_ms(timeout_ms: int) -> httpx.Timeout:
    """Build an httpx timeout applying ``timeout_ms`` to every request phase.

    httpx enforces each limit per phase (connect, each socket read, write and
    pool acquisition), not across the request. ``BaseHttpClient.send`` adds the
    overall deadline on top.

    Args:
        timeout_ms: Per-request timeout in milliseconds.

    Returns:
        httpx.Timeout applying the same limit to connect, read, write and pool.
    """
    return httpx.Timeout(timeout_ms / 1000.0)


def overall_seconds(timeout: httpx.Timeout) -> float | None:
    """The longest configured phase limit, used as the whole-request deadline."""
    phases = (timeout.connect, timeout.read, timeout.write, timeout.pool)
    limits = [t for t in phases if t is not None]
    return max(limits) if limits else None


class BaseHttpClient:
    """Base class providing a lazily created, reusable httpx.Client.

    Subclasses set ``self.timeout`` in ``__init__`` and issue requests through
    ``send()``, so a single process keeps one connection pool per endpoint for
    its whole lifetime and no request outlives its timeout.

    Example subclass implementation::

        class PingClient(BaseHttpClient):
            def __init__(self, url: str) -> None:
                super().__init__()
                self.url = url
                self.timeout = timeout_from_ms(5000)

            def ping(self) -> int:
                return self.send("GET", self.url).status_code
    """

    timeout: httpx.Timeout

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the base HTTP client.

        Args:
            transport: Optional transport override, used by tests to mount
                an httpx.MockTransport.
            monotonic: Clock measuring the request deadline (tests).
        """
        self._client: httpx.Client | None = None
        self._transport = transport
        self._monotonic = monotonic

    def _get_client(self) -> httpx.Client:
        """Get or create the reusable HTTP client.

        Raises:
            RuntimeError: If the subclass has not set ``timeout``.
        """
        if self._client is None:
            if getattr(self, "timeout", None) is None:
                raise RuntimeError(
                    f"{self.__class__.__name__} must set self.timeout before "
                    "calling _get_client()"
                )
            self._client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._client

    def send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and read its body within the overall deadline.

        The body is streamed and the deadline checked after every chunk, so a
        server trickling bytes is cut off rather than holding the cycle open.

        Args:
            method: HTTP method.
            url: Request URL.
            **kwargs: Passed to ``httpx.Client.stream`` (params, json, ...).

        Returns:
            A fully read response. Status is not checked.

        Raises:
            httpx.ReadTimeout: If the request outlives the overall deadline.
            httpx.RequestError: On any other transport failure.
        """
        client = self._get_client()
        limit = overall_seconds(self.timeout)
        deadline = None if limit is None else self._monotonic() + limit

        with client.stream(method, url, **kwargs) as response:
            chunks: list[bytes] = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if deadline is not None and self._monotonic() > deadline:
                    raise httpx.ReadTimeout(
                        f"{method} {url} exceeded {limit:.1f}s", request=response.request
                    )

        # Body already decoded by iter_bytes
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() != "content-encoding"
        ]
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=b"".join(chunks),
            request=response.request,
        )

    def close(self) -> None:
        """Close the HTTP client and release pooled connections."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit - closes the HTTP client."""
        self.close()


__all__ = ["BaseHttpClient", "overall_seconds", "timeout_from_ms"]
