"""FastAPI application factory for the relay HTTP surface.

The status page is rendered from Jinja2 templates in ``templates/`` with two
relay-specific filters:

    format_duration: seconds as "1h 2m 5s", "2m 5s" or "45s"
    format_bytes: byte counts as "512 B", "48.3 KiB" or "52.1 MiB"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape

from position_relay.api.routes import create_routes
from position_relay.config import Config
from position_relay.health import HealthReporter
from position_relay.store_writer import SampleStore

TEMPLATES_DIR = Path(__file__).parent / "templates"


def format_duration(seconds: float | int | None) -> str:
    """Format a duration in seconds as a human-readable string.

    Examples:
        >>> format_duration(3725)
        '1h 2m 5s'
        >>> format_duration(125)
        '2m 5s'
        >>> format_duration(None)
        '0s'
    """
    if seconds is None or seconds < 0:
        return "0s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_bytes(value: int | float | None) -> str:
    """Format a byte count with binary units.

    Examples:
        >>> format_bytes(512)
        '512 B'
        >>> format_bytes(10_485_760)
        '10.0 MiB'
    """
    if not value or value < 0:
        return "0 B"
    amount = float(value)
    for unit in ("B", "KiB", "MiB"):
        if amount < 1024:
            return f"{int(amount)} B" if unit == "B" else f"{amount:.1f} {unit}"
        amount /= 1024
    return f"{amount:.1f} GiB"


class TemplateEnvironmentWrapper:
    """Async template renderer stored on ``app.state.templates``.

    Route handlers call ``await templates.TemplateResponse(request=..., name=...,
    context=...)``, mirroring Starlette's Jinja2Templates call shape while
    rendering through an ``enable_async`` Environment.
    """

    def __init__(self, env: Environment) -> None:
        self._env = env

    @property
    def env(self) -> Environment:
        """The underlying Jinja2 environment."""
        return self._env

    async def template_response(
        self,
        *,
        request: Request,
        name: str,
        context: dict[str, Any] | None = None,
        status_code: int = 200,
    ) -> HTMLResponse:
        """Render a template into an HTML response.

        Args:
            request: The incoming HTTP request, exposed to the template.
            name: The template name to render.
            context: Template context variables.
            status_code: HTTP status of the response.

        Returns:
            An HTMLResponse with the rendered template.
        """
        template = self._env.get_template(name)
        content = await template.render_async({**(context or {}), "request": request})
        return HTMLResponse(content=content, status_code=status_code)

    TemplateResponse = template_response


def create_template_environment(templates_dir: Path = TEMPLATES_DIR) -> Environment:
    """Build the async, autoescaping Jinja2 environment with relay filters."""
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "xml"]),
        enable_async=True,
    )
    env.filters["format_duration"] = format_duration
    env.filters["format_bytes"] = format_bytes
    return env


def create_app(
    config: Config,
    reporter: HealthReporter,
    store: SampleStore,
    *,
    templates_dir: Path | None = None,
) -> FastAPI:
    """Create and configure the relay FastAPI application.

    Args:
        config: Application configuration.
        reporter: Health reporter backing the probe and status endpoints.
        store: Store writer used by the webhook.
        templates_dir: Optional custom templates directory.

    Returns:
        A configured FastAPI application.
    """
    from position_relay import __version__

    app = FastAPI(
        title="Position Relay",
        description="Liveness, status and push endpoints for the position relay",
        version=__version__,
    )
    app.state.templates = TemplateEnvironmentWrapper(
        create_template_environment(templates_dir or TEMPLATES_DIR)
    )
    app.state.store_path = config.store.path

    app.include_router(
        create_routes(
            reporter,
            store,
            config.feed,
            webhook_enabled=config.server.webhook_enabled,
        )
    )
    return app


__all__ = [
    "TEMPLATES_DIR",
    "TemplateEnvironmentWrapper",
    "create_app",
    "create_template_environment",
    "format_bytes",
    "format_duration",
]
