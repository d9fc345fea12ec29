"""HTTP surface for the position relay.

Serves the liveness probe, a status page and the optional push webhook from a
FastAPI application. The surface reads relay state through the HealthReporter
and never mutates it.
"""

from position_relay.api.app import create_app, format_bytes, format_duration
from position_relay.api.models import WebhookEntry, WebhookResponse
from position_relay.api.routes import create_routes

__all__ = [
    "WebhookEntry",
    "WebhookResponse",
    "create_app",
    "create_routes",
    "format_bytes",
    "format_duration",
]
