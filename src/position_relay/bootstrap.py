"""Bootstrap and dependency wiring for the position relay.

This module is the composition root. It:
- Loads configuration and applies CLI overrides
- Sets up logging
- Creates the feed client, store writer and backoff controller
- Assembles the RelayContext the scheduler drives
"""

from __future__ import annotations

import argparse
from dataclasses import replace

from position_relay.backoff import BackoffController
from position_relay.config import Config, load_config
from position_relay.engine import RelayContext
from position_relay.feed_client import FeedClient, FeedSource
from position_relay.logging import get_logger, setup_logging
from position_relay.retry import RetryPolicy
from position_relay.store_writer import SampleStore, StoreWriter
from position_relay.types import ReconciliationState

logger = get_logger(__name__)


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Invalid numeric overrides are logged and ignored, leaving the
    environment value in place.

    Args:
        config: Base configuration loaded from environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    if parsed.interval is not None:
        if parsed.interval > 0:
            polling = replace(config.polling, base_interval_ms=parsed.interval)
            if polling.ceiling_interval_ms < polling.base_interval_ms:
                polling = replace(polling, ceiling_interval_ms=polling.base_interval_ms)
            config = replace(config, polling=polling)
        else:
            logger.warning("Ignoring --interval %s: must be positive", parsed.interval)

    if parsed.log_level:
        config = replace(config, logging=replace(config.logging, level=parsed.log_level))

    if parsed.json_logs:
        config = replace(config, logging=replace(config.logging, json=True))

    if parsed.port is not None:
        if 1 <= parsed.port <= 65535:
            config = replace(config, server=replace(config.server, port=parsed.port))
        else:
            logger.warning("Ignoring --port %s: must be between 1 and 65535", parsed.port)

    if parsed.no_server:
        config = replace(config, server=replace(config.server, enabled=False))

    return config


def create_clients(config: Config) -> tuple[FeedClient, StoreWriter]:
    """Create the feed client and store writer.

    Args:
        config: Application configuration.

    Returns:
        Tuple of (feed_client, store_writer).
    """
    retry = config.retry
    feed_client = FeedClient(
        config.feed,
        timeout_ms=retry.request_timeout_ms,
        retry_policy=RetryPolicy(retry.feed_max_retries, retry.retry_base_delay_ms),
    )
    store_writer = StoreWriter(
        config.store,
        timeout_ms=retry.request_timeout_ms,
        retry_policy=RetryPolicy(retry.store_max_retries, retry.retry_base_delay_ms),
    )
    return feed_client, store_writer


def create_relay_context(
    config: Config,
    feed: FeedSource | None = None,
    store: SampleStore | None = None,
) -> RelayContext:
    """Assemble a RelayContext with fresh state.

    Args:
        config: Application configuration.
        feed: Optional feed source override (tests).
        store: Optional store override (tests).

    Returns:
        RelayContext ready for the scheduler.
    """
    if feed is None or store is None:
        default_feed, default_store = create_clients(config)
        feed = feed or default_feed
        store = store or default_store

    return RelayContext(
        config=config,
        state=ReconciliationState.initial(config.polling.base_interval_ms),
        feed=feed,
        store=store,
        backoff=BackoffController(config.polling),
    )


def bootstrap(parsed: argparse.Namespace) -> RelayContext:
    """Bootstrap the relay from parsed CLI arguments.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        RelayContext with all dependencies wired.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    config = load_config(parsed.env_file)
    config = apply_cli_overrides(config, parsed)

    setup_logging(config.logging.level, json_format=config.logging.json)

    feed = config.feed
    logger.info(
        "Relaying channel %s (lat=%s, lng=%s%s) to /%s every %sms",
        feed.channel_id,
        feed.latitude_field,
        feed.longitude_field,
        f", ignition={feed.ignition_field}" if feed.ignition_field else "",
        config.store.path,
        config.polling.base_interval_ms,
    )
    return create_relay_context(config)


__all__ = [
    "apply_cli_overrides",
    "bootstrap",
    "create_clients",
    "create_relay_context",
]
