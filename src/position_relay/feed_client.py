"""Feed client for the upstream telemetry channel.

Fetches the most recent entry of a ThingSpeak-style channel:

    GET {base_url}/channels/{channel_id}/feeds.json?results=1&api_key=...

    {
        "channel": {...},
        "feeds": [
            {"created_at": "2026-10-17T09:30:00Z", "entry_id": 43,
             "field1": "12.9716", "field2": "77.5946", "field3": "1"}
        ]
    }

The client coerces coordinate fields to float (non-numeric values become nan)
but does not judge whether a position is plausible; that decision belongs to
the change detector. Which numbered field carries latitude and which carries
longitude comes from FeedConfig and is never guessed.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from position_relay.config import FeedConfig
from position_relay.exceptions import UpstreamError, UpstreamErrorKind
from position_relay.http_client import BaseHttpClient, timeout_from_ms
from position_relay.logging import get_logger
from position_relay.retry import RetryPolicy, execute_with_retry
from position_relay.types import EntryId, Sample

logger = get_logger(__name__)


def _coerce_float(value: Any) -> float:
    """Coerce a feed field to float, mapping anything unparseable to nan."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _coerce_entry_id(value: Any) -> EntryId | None:
    """Normalize an entry identifier, or return None if absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    # isdigit() also admits superscripts and other digits int() rejects
    return int(text) if text.isdecimal() else text


def parse_entry(entry: Mapping[str, Any], mapping: FeedConfig) -> Sample:
    """Normalize a single feed entry into a Sample.

    Args:
        entry: One element of the feed's ``feeds`` list (or a webhook body of
            the same shape).
        mapping: Feed configuration carrying the field-to-semantic mapping.

    Returns:
        The normalized Sample.

    Raises:
        UpstreamError: EMPTY if the entry has no identifier.
    """
    entry_id = _coerce_entry_id(entry.get("entry_id"))
    if entry_id is None:
        raise UpstreamError(UpstreamErrorKind.EMPTY, "Feed entry has no entry_id")

    ignition: str | None = None
    if mapping.ignition_field is not None:
        raw_ignition = entry.get(mapping.ignition_field)
        ignition = None if raw_ignition is None else str(raw_ignition)

    return Sample(
        entry_id=entry_id,
        latitude=_coerce_float(entry.get(mapping.latitude_field)),
        longitude=_coerce_float(entry.get(mapping.longitude_field)),
        captured_at=str(entry.get("created_at") or ""),
        ignition=ignition,
    )


def extract_latest_entry(payload: Any) -> Mapping[str, Any]:
    """Pull the newest entry out of a decoded feeds.json payload.

    Raises:
        UpstreamError: EMPTY if the payload lacks a non-empty ``feeds`` list
            whose last element is an object.
    """
    if not isinstance(payload, dict):
        raise UpstreamError(UpstreamErrorKind.EMPTY, "Feed response is not a JSON object")

    feeds = payload.get("feeds")
    if not isinstance(feeds, list) or not feeds:
        raise UpstreamError(UpstreamErrorKind.EMPTY, "Feed response contains no entries")

    latest = feeds[-1]
    if not isinstance(latest, dict):
        raise UpstreamError(UpstreamErrorKind.EMPTY, "Latest feed entry is not an object")
    return latest


class FeedSource(ABC):
    """Abstract interface for anything that yields the latest feed sample."""

    @abstractmethod
    def fetch_latest(self) -> Sample:
        """Fetch the most recent sample.

        Raises:
            UpstreamError: If no usable sample could be fetched.
        """
        pass

    def close(self) -> None:
        """Release any held resources."""
        return None


class FeedClient(BaseHttpClient, FeedSource):
    """HTTP client for the upstream telemetry feed.

    Each call to fetch_latest() performs up to ``max_retries + 1`` GET
    requests, each bounded by the configured timeout.
    """

    def __init__(
        self,
        config: FeedConfig,
        timeout_ms: int,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the feed client.

        Args:
            config: Feed configuration (channel, key, field mapping).
            timeout_ms: Per-request timeout in milliseconds.
            retry_policy: Retry policy for a single fetch. Defaults to RetryPolicy().
            transport: Optional httpx transport override (tests).
            sleep: Optional sleep function override (tests).
        """
        super().__init__(transport=transport)
        self.config = config
        self.timeout = timeout_from_ms(timeout_ms)
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def url(self) -> str:
        """The feed endpoint for the configured channel."""
        return f"{self.config.base_url}/channels/{self.config.channel_id}/feeds.json"

    def _params(self) -> dict[str, str | int]:
        params: dict[str, str | int] = {"results": 1}
        if self.config.api_key:
            params["api_key"] = self.config.api_key
        return params

    def _fetch_once(self) -> Sample:
        """Perform a single fetch attempt.

        Raises:
            UpstreamError: On timeout, transport failure, non-2xx status,
                undecodable body, or missing entry structure.
        """
        try:
            response = self.send("GET", self.url, params=self._params())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamError(
                UpstreamErrorKind.TIMEOUT, f"Feed request timed out: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UpstreamError(
                UpstreamErrorKind.HTTP_STATUS,
                f"Feed request failed with status {status}",
                status_code=status,
            ) from e
        except httpx.RequestError as e:
            raise UpstreamError(
                UpstreamErrorKind.NETWORK, f"Feed request failed: {e}"
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                UpstreamErrorKind.MALFORMED, f"Feed response is not valid JSON: {e}"
            ) from e

        return parse_entry(extract_latest_entry(payload), self.config)

    def fetch_latest(self) -> Sample:
        """Fetch the most recent sample, retrying on any UpstreamError.

        Returns:
            The normalized latest Sample.

        Raises:
            UpstreamError: The last error once retries are exhausted.
        """
        sample = execute_with_retry(
            self._fetch_once,
            self.retry_policy,
            (UpstreamError,),
            "Feed fetch",
            sleep=self._sleep,
        )
        logger.debug(
            "Fetched entry %s (%s, %s) captured at %s",
            sample.entry_id,
            sample.latitude,
            sample.longitude,
            sample.captured_at,
        )
        return sample


__all__ = ["FeedClient", "FeedSource", "extract_latest_entry", "parse_entry"]
