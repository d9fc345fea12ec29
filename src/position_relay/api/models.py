"""Pydantic request/response models for the relay HTTP surface."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

__all__: list[str] = [
    "WebhookEntry",
    "WebhookResponse",
]


class WebhookEntry(BaseModel):
    """Body of a pushed feed entry.

    Shaped like one element of the feed's ``feeds`` list. The numbered
    ``fieldN`` values are accepted as extra attributes and resolved through
    the configured field mapping.
    """

    model_config = ConfigDict(extra="allow")

    entry_id: int | str | None = None
    created_at: str | None = None


class WebhookResponse(BaseModel):
    """Response for an accepted webhook write."""

    entry_id: int | str
    latitude: float
    longitude: float
    written: bool
