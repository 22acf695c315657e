"""Webhook subscription model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import generate_id, generate_secret, mask_secret, utc_now
from .events import unknown_event_types


class Webhook(BaseModel):
    """A registered receiver endpoint.

    Attributes:
        id: Unique identifier for this webhook.
        owner_id: Account that owns this webhook.
        name: Human-readable label shown in the dashboard.
        url: HTTPS endpoint that receives deliveries.
        secret: Shared secret for HMAC-SHA256 signatures. Write-once; only
            an explicit rotation replaces it.
        events: Event types this webhook subscribes to (non-empty).
        active: Whether new events are dispatched to this webhook.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(min_length=1, description="Account that owns this webhook")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    url: HttpUrl = Field(description="HTTPS endpoint to receive events")
    secret: str = Field(
        default_factory=generate_secret,
        repr=False,
        description="Shared secret for HMAC-SHA256 signatures",
    )
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    active: bool = Field(default=True, description="Whether webhook is active")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("url")
    @classmethod
    def _require_https(cls, value: HttpUrl) -> HttpUrl:
        if value.scheme != "https":
            raise ValueError("webhook URL must use https")
        return value

    @field_validator("events")
    @classmethod
    def _events_in_catalog(cls, value: list[str]) -> list[str]:
        unknown = unknown_event_types(value)
        if unknown:
            raise ValueError(f"Unknown event types: {', '.join(unknown)}")
        # Preserve first-seen order, drop duplicates
        return list(dict.fromkeys(value))

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is active and subscribed to the event type."""
        return self.active and event_type in self.events

    def masked_secret(self) -> str:
        """Secret rendered for listing surfaces."""
        return mask_secret(self.secret)

    def public_dict(self) -> dict[str, Any]:
        """JSON-safe dict with the secret masked."""
        data = self.model_dump(mode="json", exclude={"secret"})
        data["secret"] = self.masked_secret()
        return data


__all__ = ["Webhook"]
