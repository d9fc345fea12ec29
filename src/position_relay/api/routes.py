"""Route handlers for the relay HTTP surface.

Endpoints:
- /health/live: Liveness probe. Snapshot JSON, 200 when healthy, 503 when degraded
- /health: Snapshot JSON, always 200 (for dashboards that chart degraded periods)
- /status: Human-readable status page
- /webhook: Push entry point for feed entries (disabled unless configured)

The webhook writes through the store writer only. It never touches the
reconciliation state, so the polling cycle remains the single writer of the
last accepted identifier and the failure counters.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError as ModelValidationError
from starlette.concurrency import run_in_threadpool

from position_relay.api.models import WebhookEntry, WebhookResponse
from position_relay.change_detector import validate_coordinates
from position_relay.config import FeedConfig
from position_relay.exceptions import DownstreamError, ValidationError
from position_relay.feed_client import parse_entry
from position_relay.health import HealthReporter
from position_relay.logging import get_logger
from position_relay.store_writer import SampleStore

logger = get_logger(__name__)

# Identifier written for pushed entries that carry none
WEBHOOK_ENTRY_ID = "webhook"


def create_routes(
    reporter: HealthReporter,
    store: SampleStore,
    feed_config: FeedConfig,
    webhook_enabled: bool = False,
) -> APIRouter:
    """Create the relay routes.

    Args:
        reporter: Health reporter for the probe and status endpoints.
        store: Store writer used by the webhook.
        feed_config: Feed configuration carrying the field mapping.
        webhook_enabled: Whether POST /webhook accepts entries.

    Returns:
        An APIRouter with all relay routes configured.
    """
    router = APIRouter()

    @router.get("/health/live")
    async def health_live() -> JSONResponse:
        """Liveness probe.

        Returns:
            Snapshot JSON with 200 when healthy and 503 when degraded.
        """
        snapshot = reporter.snapshot()
        return JSONResponse(
            content=snapshot.to_dict(),
            status_code=200 if snapshot.is_healthy else 503,
        )

    @router.get("/health")
    async def health() -> dict[str, Any]:
        """Snapshot JSON with status in the body; always 200."""
        return reporter.snapshot().to_dict()

    @router.get("/status", response_class=HTMLResponse)
    async def status(request: Request) -> HTMLResponse:
        """Render the status page."""
        templates = request.app.state.templates
        return await templates.TemplateResponse(
            request=request,
            name="status.html",
            context={
                "snapshot": reporter.snapshot(),
                "feed": feed_config,
                "store_path": request.app.state.store_path,
                "webhook_enabled": webhook_enabled,
            },
        )

    @router.post("/webhook", status_code=202, response_model=WebhookResponse)
    async def webhook(request: Request) -> WebhookResponse:
        """Write a pushed feed entry to the store.

        Returns:
            The written position with 202.

        Raises:
            HTTPException: 404 when disabled, 400 for an unusable body, 502 when
                the store write fails.
        """
        if not webhook_enabled:
            raise HTTPException(status_code=404, detail="Webhook is disabled")

        try:
            body = await request.json()
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Body is not valid JSON") from e

        try:
            entry = WebhookEntry.model_validate(body)
        except ModelValidationError as e:
            raise HTTPException(status_code=400, detail="Body is not a feed entry") from e

        data = entry.model_dump()
        if data.get("entry_id") is None:
            data["entry_id"] = WEBHOOK_ENTRY_ID

        missing = [
            name
            for name in (feed_config.latitude_field, feed_config.longitude_field)
            if data.get(name) in (None, "")
        ]
        if missing:
            raise HTTPException(
                status_code=400, detail=f"Missing fields: {', '.join(missing)}"
            )

        sample = parse_entry(data, feed_config)
        try:
            validate_coordinates(sample.latitude, sample.longitude)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        try:
            await run_in_threadpool(store.write, sample)
        except DownstreamError as e:
            logger.error("Webhook write failed (%s): %s", e.kind, e)
            raise HTTPException(status_code=502, detail=f"Store write failed: {e}") from e

        logger.info(
            "Webhook entry written: %s, %s",
            sample.latitude,
            sample.longitude,
            extra={"entry_id": sample.entry_id},
        )
        return WebhookResponse(
            entry_id=sample.entry_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            written=True,
        )

    return router


__all__ = ["WEBHOOK_ENTRY_ID", "create_routes"]
