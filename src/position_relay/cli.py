"""Command-line interface argument parsing for the position relay.

Every flag overrides an environment variable of the same concern; anything not
given on the command line comes from the environment (or the .env file).
"""

from __future__ import annotations

import argparse
from pathlib import Path

EPILOG = """\
required environment:
  RELAY_FEED_CHANNEL_ID      upstream channel to poll
  RELAY_STORE_DATABASE_URL   realtime database root URL
  RELAY_STORE_AUTH_TOKEN     database auth token

examples:
  position-relay --once --log-level DEBUG
  position-relay --env-file /etc/position-relay.env --port 8080
"""


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Namespace with ``env_file``, ``once``, ``interval`` (ms),
        ``log_level``, ``json_logs``, ``port`` and ``no_server``. Unset
        overrides are None (or False for flags).
    """
    parser = argparse.ArgumentParser(
        prog="position-relay",
        description="Relay the latest telemetry feed position into a realtime database.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit (baseline only on a cold start)",
    )

    polling = parser.add_argument_group("polling")
    polling.add_argument(
        "--interval",
        type=int,
        default=None,
        metavar="MS",
        help="Base poll interval in milliseconds (overrides RELAY_POLL_INTERVAL_MS)",
    )

    output = parser.add_argument_group("logging")
    output.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides RELAY_LOG_LEVEL)",
    )
    output.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines (overrides RELAY_LOG_JSON)",
    )

    http = parser.add_argument_group("http server")
    http.add_argument(
        "--port",
        type=int,
        default=None,
        help="HTTP server port (overrides RELAY_SERVER_PORT)",
    )
    http.add_argument(
        "--no-server",
        action="store_true",
        help="Do not start the health and webhook server",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
