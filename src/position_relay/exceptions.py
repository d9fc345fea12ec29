"""Exception hierarchy for the position relay.

The relay separates failures by the side of the pipeline they come from:

- UpstreamError: the telemetry feed could not produce a usable sample
- DownstreamError: the realtime store did not accept a write
- ValidationError: a sample carried coordinates that must never be written
- ConfigurationError: startup configuration is missing or inconsistent

Upstream and downstream errors carry a ``kind`` so callers can log and count
them without parsing messages. Only ConfigurationError is fatal to the process.
"""

from __future__ import annotations

from enum import StrEnum


class UpstreamErrorKind(StrEnum):
    """Failure categories for a feed fetch."""

    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    MALFORMED = "malformed"
    EMPTY = "empty"
    NETWORK = "network"


class DownstreamErrorKind(StrEnum):
    """Failure categories for a store write."""

    TIMEOUT = "timeout"
    REJECTED = "rejected"
    NETWORK = "network"


class RelayError(Exception):
    """Base class for all position relay errors."""

    pass


class UpstreamError(RelayError):
    """Raised when the feed fetch fails.

    Attributes:
        kind: The failure category.
        status_code: HTTP status code for HTTP_STATUS failures, otherwise None.
    """

    def __init__(
        self,
        kind: UpstreamErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class DownstreamError(RelayError):
    """Raised when the store write fails.

    Attributes:
        kind: The failure category.
        status_code: HTTP status code when the store answered, otherwise None.
    """

    def __init__(
        self,
        kind: DownstreamErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class ValidationError(RelayError):
    """Raised when a sample's coordinates are not writable."""

    pass


class ConfigurationError(RelayError):
    """Raised when required configuration is missing or invalid."""

    pass


__all__ = [
    "ConfigurationError",
    "DownstreamError",
    "DownstreamErrorKind",
    "RelayError",
    "UpstreamError",
    "UpstreamErrorKind",
    "ValidationError",
]
