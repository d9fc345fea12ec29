"""Core application runner for the position relay.

This module coordinates:
- HTTP server lifecycle
- The scheduled reconciliation loop
- Single-cycle mode execution

Server-less Operation Mode:
    The HTTP server is optional. If it fails to start (port in use, missing
    optional dependency, or anything else) the relay logs a warning and keeps
    relaying. Only configuration errors and shutdown end the process.
"""

from __future__ import annotations

from position_relay.api import create_app
from position_relay.bootstrap import bootstrap
from position_relay.cli import parse_args
from position_relay.config import Config
from position_relay.engine import RelayContext, record_unexpected_error, run_cycle
from position_relay.exceptions import ConfigurationError
from position_relay.health import HealthReporter
from position_relay.logging import get_logger
from position_relay.scheduler import CycleScheduler
from position_relay.server import HealthServer
from position_relay.shutdown import LifecycleManager
from position_relay.store_writer import SampleStore

logger = get_logger(__name__)

# Exit status for missing or invalid configuration
CONFIG_ERROR_EXIT_CODE = 2


def start_server(
    config: Config,
    reporter: HealthReporter,
    store: SampleStore,
) -> HealthServer | None:
    """Start the HTTP server if enabled.

    Args:
        config: Application configuration.
        reporter: Health reporter backing the endpoints.
        store: Store writer for the webhook.

    Returns:
        HealthServer if started, None if disabled or startup failed.
    """
    if not config.server.enabled:
        logger.info("HTTP server is disabled via configuration")
        return None

    try:
        server = HealthServer(host=config.server.host, port=config.server.port)
        if not server.start(create_app(config, reporter, store)):
            logger.warning("Relay will continue without health endpoints")
            server.shutdown()
            return None
        return server
    except OSError as e:
        logger.warning(
            "HTTP server startup failed: network/OS error. "
            "Relay will continue without health endpoints. Error: %s",
            e,
        )
        return None
    except Exception as e:
        # The server is optional and must never stop the relay
        logger.warning(
            "HTTP server startup failed: unexpected error (%s). "
            "Relay will continue without health endpoints. Error: %s",
            type(e).__name__,
            e,
        )
        return None


def run_once_mode(context: RelayContext) -> int:
    """Run a single reconciliation cycle.

    Args:
        context: Relay context.

    Returns:
        Exit code: 0 if the cycle succeeded, 1 otherwise.
    """
    logger.info("Running single reconciliation cycle (--once mode)")
    try:
        outcome = run_cycle(context)
    finally:
        context.close()

    logger.info(
        "Cycle %s (classification=%s, wrote=%s)",
        "succeeded" if outcome.succeeded else "failed",
        outcome.classification,
        outcome.wrote,
    )
    return 0 if outcome.succeeded else 1


def run_continuous_mode(context: RelayContext) -> int:
    """Run the scheduled loop until a shutdown signal arrives.

    Args:
        context: Relay context.

    Returns:
        Exit code: 0 after an orderly shutdown.
    """
    config = context.config
    state = context.state

    reporter = HealthReporter(state, config.polling, config.health)
    server = start_server(config, reporter, context.store)

    scheduler = CycleScheduler(
        cycle=lambda: run_cycle(context),
        interval_source=lambda: state.current_interval_ms,
        drift_check_ms=config.polling.drift_check_ms,
        on_error=lambda e: record_unexpected_error(state, e),
    )
    lifecycle = LifecycleManager(
        state,
        scheduler=scheduler,
        server=server,
        clients=[context.feed, context.store],
        grace_period_ms=config.shutdown.grace_period_ms,
    )
    lifecycle.install_signal_handlers()

    scheduler.start()
    lifecycle.wait_for_shutdown()
    lifecycle.teardown()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    try:
        context = bootstrap(parsed)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return CONFIG_ERROR_EXIT_CODE

    if parsed.once:
        return run_once_mode(context)
    return run_continuous_mode(context)


__all__ = [
    "CONFIG_ERROR_EXIT_CODE",
    "main",
    "run_continuous_mode",
    "run_once_mode",
    "start_server",
]
