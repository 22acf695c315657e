"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookpost.models import DeliveryRecord, DeliverySummary, EventTypeCounts, Webhook


class CreateWebhookRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        owner_id: Account that will own the webhook.
        name: Display name.
        url: HTTPS endpoint.
        events: Event types to subscribe to.
    """

    model_config = ConfigDict(extra="forbid")

    owner_id: str = Field(min_length=1, description="Owning account")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    url: str = Field(min_length=1, description="HTTPS endpoint to receive events")
    events: list[str] = Field(description="Subscribed event types")


class UpdateWebhookRequest(BaseModel):
    """Partial update. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str = Field(min_length=1)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = None
    events: list[str] | None = None
    active: bool | None = None


class OwnerRequest(BaseModel):
    """Body for actions that only need the caller's owner ID."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str = Field(min_length=1)


class WebhookResponse(BaseModel):
    """A webhook as shown on listing surfaces.

    ``secret`` is masked everywhere except the create and rotate responses.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    owner_id: str
    name: str
    url: str
    secret: str
    events: list[str]
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_webhook(cls, webhook: Webhook, reveal_secret: bool = False) -> WebhookResponse:
        return cls(
            id=webhook.id,
            owner_id=webhook.owner_id,
            name=webhook.name,
            url=str(webhook.url),
            secret=webhook.secret if reveal_secret else webhook.masked_secret(),
            events=list(webhook.events),
            active=webhook.active,
            created_at=webhook.created_at,
            updated_at=webhook.updated_at,
        )


class WebhookListResponse(BaseModel):
    """Response for listing an owner's webhooks."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str
    webhooks: list[WebhookResponse]
    count: int


class DeleteWebhookResponse(BaseModel):
    """Response for deleting a webhook.

    Attributes:
        webhook_id: The deleted webhook.
        deliveries_deleted: Delivery records removed with it.
    """

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    deleted: bool = True
    deliveries_deleted: int


class DeliveryListResponse(BaseModel):
    """Recent deliveries of one webhook, newest first."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    deliveries: list[DeliverySummary]
    count: int


class DeliveryResponse(BaseModel):
    """A freshly created delivery (test or redelivery)."""

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    webhook_id: str
    event_type: str
    status: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: DeliveryRecord) -> DeliveryResponse:
        return cls(
            delivery_id=record.delivery_id,
            webhook_id=record.webhook_id,
            event_type=record.event_type,
            status=record.status,
            created_at=record.created_at,
        )


class PublishRequest(BaseModel):
    """Request body for publishing a platform event."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str = Field(min_length=1)
    event: str = Field(min_length=1, description="Catalog event type")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")


class PublishResponse(BaseModel):
    """Delivery IDs created by a publish. Delivery itself is asynchronous."""

    model_config = ConfigDict(extra="forbid")

    event: str
    delivery_ids: list[str]
    count: int


class DeliveryStatsResponse(BaseModel):
    """Delivery stats for an owner over the last ``days`` days."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str
    days: int
    total_sent: int
    successful: int
    failed: int
    success_rate: int
    by_event_type: dict[str, EventTypeCounts]


class VerifySignatureRequest(BaseModel):
    """Signature check for receivers debugging their integration.

    Attributes:
        secret: The webhook secret the receiver holds.
        signature: ``X-Webhook-Signature`` header value as received.
        payload: Raw request body, exactly as received.
        tolerance_seconds: Replay window override.
    """

    model_config = ConfigDict(extra="forbid")

    secret: str = Field(min_length=1)
    signature: str
    payload: str
    tolerance_seconds: int | None = Field(default=None, ge=1)


class VerifySignatureResponse(BaseModel):
    """Result of a successful verification."""

    model_config = ConfigDict(extra="forbid")

    valid: bool
    timestamp: int


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: Package version.
        storage_connected: Whether storage is connected.
        in_flight_deliveries: Deliveries still running in background tasks.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    in_flight_deliveries: int = 0
