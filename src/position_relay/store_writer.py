"""Store writer for the downstream realtime database.

Writes go through the Realtime Database REST API as a PATCH (a merge of the
listed children), so fields written by other producers at the same path are
left alone:

    PATCH {database_url}/{path}.json?auth={token}
    {
        "Latitude": 12.9716,
        "Longitude": 77.5946,
        "updatedAt": "17 Oct 2026, 03:00:00 PM",
        "upstreamEntryId": 43,
        "upstreamTimestamp": "2026-10-17T09:30:00Z"
    }

Writes are idempotent (last write wins), so a retried or repeated write of the
same sample is harmless and no read-before-write is needed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from position_relay.config import StoreConfig
from position_relay.exceptions import DownstreamError, DownstreamErrorKind
from position_relay.http_client import BaseHttpClient, timeout_from_ms
from position_relay.logging import get_logger
from position_relay.retry import RetryPolicy, execute_with_retry
from position_relay.types import Sample

logger = get_logger(__name__)


def build_payload(
    sample: Sample,
    updated_at: datetime,
    time_format: str,
) -> dict[str, Any]:
    """Build the merge payload for a sample.

    Args:
        sample: The accepted sample.
        updated_at: Timezone-aware time of the write, already in display zone.
        time_format: strftime format for the human-readable timestamp.

    Returns:
        JSON-serializable payload for the store.
    """
    payload: dict[str, Any] = {
        "Latitude": sample.latitude,
        "Longitude": sample.longitude,
        "updatedAt": updated_at.strftime(time_format),
        "upstreamEntryId": sample.entry_id,
        "upstreamTimestamp": sample.captured_at,
    }
    if sample.ignition is not None:
        payload["IgnitionStatus"] = sample.ignition
    return payload


class SampleStore(ABC):
    """Abstract interface for the downstream destination of accepted samples."""

    @abstractmethod
    def write(self, sample: Sample) -> None:
        """Merge a sample into the destination record.

        Raises:
            DownstreamError: If the write could not be confirmed.
        """
        pass

    def close(self) -> None:
        """Release any held resources."""
        return None


class StoreWriter(BaseHttpClient, SampleStore):
    """HTTP client that merges samples into the realtime store."""

    def __init__(
        self,
        config: StoreConfig,
        timeout_ms: int,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the store writer.

        Args:
            config: Store configuration (address, token, path, display format).
            timeout_ms: Per-request timeout in milliseconds.
            retry_policy: Retry policy for a single write. Defaults to RetryPolicy().
            transport: Optional httpx transport override (tests).
            clock: Optional clock returning an aware datetime (tests).
            sleep: Optional sleep function override (tests).
        """
        super().__init__(transport=transport)
        self.config = config
        self.timeout = timeout_from_ms(timeout_ms)
        self.retry_policy = retry_policy or RetryPolicy()
        self._zone = ZoneInfo(config.display_timezone)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep

    @property
    def url(self) -> str:
        """REST endpoint for the destination record."""
        return f"{self.config.database_url}/{self.config.path}.json"

    def _write_once(self, payload: dict[str, Any]) -> None:
        """Perform a single PATCH attempt.

        Raises:
            DownstreamError: On timeout, transport failure, or non-2xx status.
        """
        try:
            response = self.send(
                "PATCH",
                self.url,
                params={"auth": self.config.auth_token},
                json=payload,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise DownstreamError(
                DownstreamErrorKind.TIMEOUT, f"Store write timed out: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            error_msg = f"Store rejected write with status {status}"
            try:
                error_data = e.response.json()
                if isinstance(error_data, dict) and "error" in error_data:
                    error_msg += f": {error_data['error']}"
            except ValueError:
                # Body is not JSON - keep the base message
                pass
            raise DownstreamError(
                DownstreamErrorKind.REJECTED, error_msg, status_code=status
            ) from e
        except httpx.RequestError as e:
            raise DownstreamError(
                DownstreamErrorKind.NETWORK, f"Store write failed: {e}"
            ) from e

    def write(self, sample: Sample) -> None:
        """Merge a sample into the destination record.

        Args:
            sample: The accepted sample.

        Raises:
            DownstreamError: The last error once retries are exhausted.
        """
        updated_at = self._clock().astimezone(self._zone)
        payload = build_payload(sample, updated_at, self.config.display_time_format)
        execute_with_retry(
            lambda: self._write_once(payload),
            self.retry_policy,
            (DownstreamError,),
            "Store write",
            sleep=self._sleep,
        )
        logger.info(
            "Store updated at /%s: %s, %s",
            self.config.path,
            sample.latitude,
            sample.longitude,
            extra={"entry_id": sample.entry_id},
        )


__all__ = ["SampleStore", "StoreWriter", "build_payload"]
