"""Configuration loading from environment variables.

Configuration is grouped into small frozen dataclasses, one per concern, and
assembled into a single immutable Config by load_config(). Optional numeric
settings fall back to their defaults with a logged warning when invalid.
Required settings (feed channel, store address and credentials) and the
feed field mapping raise ConfigurationError so the process fails at startup
rather than at its first cycle.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from position_relay.exceptions import ConfigurationError

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# ThingSpeak channels expose eight numbered data fields
FEED_FIELD_PATTERN = re.compile(r"^field[1-8]$")

# Port validation bounds
MIN_PORT = 1
MAX_PORT = 65535

DEFAULT_FEED_BASE_URL = "https://api.thingspeak.com"
DEFAULT_STORE_PATH = "HomeFragment"
DEFAULT_DISPLAY_TIME_FORMAT = "%d %b %Y, %I:%M:%S %p"


@dataclass(frozen=True)
class FeedConfig:
    """Upstream feed settings.

    The latitude/longitude field names are the documented mapping between the
    channel's numbered fields and position semantics. Swapping them corrupts
    every written position, so both are validated at startup.
    """

    channel_id: str = ""
    api_key: str = ""  # Read key; empty for public channels
    base_url: str = DEFAULT_FEED_BASE_URL
    latitude_field: str = "field1"
    longitude_field: str = "field2"
    ignition_field: str | None = None  # e.g. "field3"; None disables


@dataclass(frozen=True)
class StoreConfig:
    """Downstream realtime store settings."""

    database_url: str = ""
    auth_token: str = ""
    path: str = DEFAULT_STORE_PATH
    display_timezone: str = "UTC"
    display_time_format: str = DEFAULT_DISPLAY_TIME_FORMAT


@dataclass(frozen=True)
class PollingConfig:
    """Poll cadence and escalation settings, all durations in milliseconds."""

    base_interval_ms: int = 15_000
    escalation_threshold: int = 5
    ceiling_interval_ms: int = 300_000
    cap_multiplier: int = 20
    drift_check_ms: int = 10_000


@dataclass(frozen=True)
class RetryConfig:
    """Per-call retry and timeout settings shared by the feed and store clients."""

    request_timeout_ms: int = 10_000
    feed_max_retries: int = 3
    store_max_retries: int = 3
    retry_base_delay_ms: int = 1_000


@dataclass(frozen=True)
class HealthConfig:
    """Health reporting settings."""

    staleness_window_ms: int = 300_000


@dataclass(frozen=True)
class ServerConfig:
    """HTTP surface settings (liveness, status page, webhook)."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 3000
    webhook_enabled: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    json: bool = False


@dataclass(frozen=True)
class ShutdownConfig:
    """Lifecycle settings."""

    grace_period_ms: int = 10_000


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation. Use dataclasses.replace() to derive overridden copies.
    """

    feed: FeedConfig = field(default_factory=FeedConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)


def _parse_int_in_range(
    value: str,
    name: str,
    default: int,
    minimum: int,
    maximum: int | None = None,
    requirement: str = "in range",
) -> int:
    """Parse an integer setting, falling back to the default when out of range.

    Args:
        value: Raw environment value.
        name: Variable name, used in the warning.
        default: Value used when ``value`` is not an integer in range.
        minimum: Smallest accepted value.
        maximum: Largest accepted value, or None for no upper bound.
        requirement: How the accepted range reads in the warning.

    Returns:
        The parsed integer, or the default if invalid.
    """
    try:
        parsed = int(value)
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default

    if parsed < minimum or (maximum is not None and parsed > maximum):
        logging.warning(
            "Invalid %s: %d is not %s, using default %d",
            name,
            parsed,
            requirement,
            default,
        )
        return default
    return parsed


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse an interval, threshold or multiplier, which must be at least 1."""
    return _parse_int_in_range(value, name, default, 1, requirement="positive")


def _parse_non_negative_int(value: str, name: str, default: int) -> int:
    # Retry counts and delays may legitimately be zero
    return _parse_int_in_range(value, name, default, 0, requirement="non-negative")


def _parse_port(value: str, name: str, default: int) -> int:
    return _parse_int_in_range(
        value,
        name,
        default,
        MIN_PORT,
        MAX_PORT,
        requirement=f"a valid port ({MIN_PORT}-{MAX_PORT})",
    )


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid RELAY_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _validate_timezone(value: str, default: str = "UTC") -> str:
    """Validate an IANA timezone name, falling back to the default."""
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        logging.warning(
            "Invalid RELAY_DISPLAY_TIMEZONE: '%s' is not a known timezone, using default '%s'",
            value,
            default,
        )
        return default
    return value


def _require(name: str) -> str:
    """Read a required environment variable.

    Raises:
        ConfigurationError: If the variable is unset or blank.
    """
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} is required but not set")
    return value


def validate_field_mapping(
    latitude_field: str,
    longitude_field: str,
    ignition_field: str | None = None,
) -> None:
    """Validate the feed field-to-semantic mapping.

    Args:
        latitude_field: Feed field carrying latitude.
        longitude_field: Feed field carrying longitude.
        ignition_field: Optional feed field carrying ignition status.

    Raises:
        ConfigurationError: If a field name is not field1..field8, or if two
            semantics are mapped to the same field.
    """
    named = {
        "RELAY_FEED_LATITUDE_FIELD": latitude_field,
        "RELAY_FEED_LONGITUDE_FIELD": longitude_field,
    }
    if ignition_field is not None:
        named["RELAY_FEED_IGNITION_FIELD"] = ignition_field

    for name, value in named.items():
        if not FEED_FIELD_PATTERN.match(value):
            raise ConfigurationError(
                f"{name} must be one of field1..field8, got '{value}'"
            )

    values = list(named.values())
    if len(set(values)) != len(values):
        raise ConfigurationError(
            f"Feed field mapping must use distinct fields, got {named}"
        )


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Raises:
        ConfigurationError: If required settings are missing or the feed field
            mapping is invalid.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    latitude_field = os.getenv("RELAY_FEED_LATITUDE_FIELD", "field1").strip().lower()
    longitude_field = os.getenv("RELAY_FEED_LONGITUDE_FIELD", "field2").strip().lower()
    ignition_field = os.getenv("RELAY_FEED_IGNITION_FIELD", "").strip().lower() or None
    validate_field_mapping(latitude_field, longitude_field, ignition_field)

    feed = FeedConfig(
        channel_id=_require("RELAY_FEED_CHANNEL_ID"),
        api_key=os.getenv("RELAY_FEED_API_KEY", ""),
        base_url=os.getenv("RELAY_FEED_BASE_URL", DEFAULT_FEED_BASE_URL).rstrip("/"),
        latitude_field=latitude_field,
        longitude_field=longitude_field,
        ignition_field=ignition_field,
    )

    store = StoreConfig(
        database_url=_require("RELAY_STORE_DATABASE_URL").rstrip("/"),
        auth_token=_require("RELAY_STORE_AUTH_TOKEN"),
        path=os.getenv("RELAY_STORE_PATH", DEFAULT_STORE_PATH).strip("/") or DEFAULT_STORE_PATH,
        display_timezone=_validate_timezone(os.getenv("RELAY_DISPLAY_TIMEZONE", "UTC")),
        display_time_format=os.getenv("RELAY_DISPLAY_TIME_FORMAT", DEFAULT_DISPLAY_TIME_FORMAT),
    )

    base_interval_ms = _parse_positive_int(
        os.getenv("RELAY_POLL_INTERVAL_MS", "15000"),
        "RELAY_POLL_INTERVAL_MS",
        15_000,
    )
    ceiling_interval_ms = _parse_positive_int(
        os.getenv("RELAY_CEILING_INTERVAL_MS", "300000"),
        "RELAY_CEILING_INTERVAL_MS",
        300_000,
    )
    if ceiling_interval_ms < base_interval_ms:
        logging.warning(
            "RELAY_CEILING_INTERVAL_MS (%d) is below RELAY_POLL_INTERVAL_MS (%d), "
            "using the base interval as ceiling",
            ceiling_interval_ms,
            base_interval_ms,
        )
        ceiling_interval_ms = base_interval_ms

    polling = PollingConfig(
        base_interval_ms=base_interval_ms,
        escalation_threshold=_parse_positive_int(
            os.getenv("RELAY_ESCALATION_THRESHOLD", "5"),
            "RELAY_ESCALATION_THRESHOLD",
            5,
        ),
        ceiling_interval_ms=ceiling_interval_ms,
        cap_multiplier=_parse_positive_int(
            os.getenv("RELAY_CAP_MULTIPLIER", "20"),
            "RELAY_CAP_MULTIPLIER",
            20,
        ),
        drift_check_ms=_parse_positive_int(
            os.getenv("RELAY_DRIFT_CHECK_MS", "10000"),
            "RELAY_DRIFT_CHECK_MS",
            10_000,
        ),
    )

    retry = RetryConfig(
        request_timeout_ms=_parse_positive_int(
            os.getenv("RELAY_REQUEST_TIMEOUT_MS", "10000"),
            "RELAY_REQUEST_TIMEOUT_MS",
            10_000,
        ),
        feed_max_retries=_parse_non_negative_int(
            os.getenv("RELAY_FEED_MAX_RETRIES", "3"),
            "RELAY_FEED_MAX_RETRIES",
            3,
        ),
        store_max_retries=_parse_non_negative_int(
            os.getenv("RELAY_STORE_MAX_RETRIES", "3"),
            "RELAY_STORE_MAX_RETRIES",
            3,
        ),
        retry_base_delay_ms=_parse_non_negative_int(
            os.getenv("RELAY_RETRY_BASE_DELAY_MS", "1000"),
            "RELAY_RETRY_BASE_DELAY_MS",
            1_000,
        ),
    )

    health = HealthConfig(
        staleness_window_ms=_parse_positive_int(
            os.getenv("RELAY_STALENESS_WINDOW_MS", "300000"),
            "RELAY_STALENESS_WINDOW_MS",
            300_000,
        ),
    )

    server = ServerConfig(
        enabled=_parse_bool(os.getenv("RELAY_SERVER_ENABLED", "true")),
        host=os.getenv("RELAY_SERVER_HOST", "127.0.0.1"),
        port=_parse_port(
            os.getenv("RELAY_SERVER_PORT", "3000"),
            "RELAY_SERVER_PORT",
            3000,
        ),
        webhook_enabled=_parse_bool(os.getenv("RELAY_WEBHOOK_ENABLED", "")),
    )

    logging_config = LoggingConfig(
        level=_validate_log_level(os.getenv("RELAY_LOG_LEVEL", "INFO")),
        json=_parse_bool(os.getenv("RELAY_LOG_JSON", "")),
    )

    shutdown = ShutdownConfig(
        grace_period_ms=_parse_positive_int(
            os.getenv("RELAY_SHUTDOWN_GRACE_MS", "10000"),
            "RELAY_SHUTDOWN_GRACE_MS",
            10_000,
        ),
    )

    return Config(
        feed=feed,
        store=store,
        polling=polling,
        retry=retry,
        health=health,
        server=server,
        logging=logging_config,
        shutdown=shutdown,
    )


__all__ = [
    "Config",
    "FeedConfig",
    "HealthConfig",
    "LoggingConfig",
    "PollingConfig",
    "RetryConfig",
    "ServerConfig",
    "ShutdownConfig",
    "StoreConfig",
    "load_config",
    "validate_field_mapping",
]
