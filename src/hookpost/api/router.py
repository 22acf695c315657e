"""FastAPI router for Hookpost API endpoints.

Domain errors are not caught here; the exception handlers registered in
``app.py`` turn them into JSON error responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hookpost import __version__
from hookpost.logging import get_logger
from hookpost.models import DeliveryAggregate
from hookpost.service import HookpostService
from hookpost.webhooks import verify_signature

from .schemas import (
    CreateWebhookRequest,
    DeleteWebhookResponse,
    DeliveryListResponse,
    DeliveryResponse,
    DeliveryStatsResponse,
    HealthResponse,
    OwnerRequest,
    PublishRequest,
    PublishResponse,
    UpdateWebhookRequest,
    VerifySignatureRequest,
    VerifySignatureResponse,
    WebhookListResponse,
    WebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: HookpostService | None = None


def set_service(service: HookpostService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> HookpostService:
    """Dependency to get the HookpostService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[HookpostService, Depends(get_service)]
OwnerQuery = Annotated[str, Query(min_length=1, description="Calling account")]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        in_flight_deliveries=_service.dispatcher.in_flight,
    )


@router.post(
    "/webhooks",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(request: CreateWebhookRequest, service: ServiceDep) -> WebhookResponse:
    """Register a webhook.

    This is the only response, apart from rotation, that carries the full
    secret. Receivers must store it now.
    """
    webhook = await service.registry.create(
        owner_id=request.owner_id,
        name=request.name,
        url=request.url,
        events=request.events,
    )
    logger.info("Webhook registered", webhook_id=webhook.id, owner_id=webhook.owner_id)
    return WebhookResponse.from_webhook(webhook, reveal_secret=True)


@router.get("/webhooks", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(owner_id: OwnerQuery, service: ServiceDep) -> WebhookListResponse:
    """List the owner's webhooks, newest first, with secrets masked."""
    webhooks = await service.registry.list_webhooks(owner_id)
    return WebhookListResponse(
        owner_id=owner_id,
        webhooks=[WebhookResponse.from_webhook(w) for w in webhooks],
        count=len(webhooks),
    )


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, owner_id: OwnerQuery, service: ServiceDep) -> WebhookResponse:
    webhook = await service.registry.get(webhook_id, owner_id)
    return WebhookResponse.from_webhook(webhook)


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    request: UpdateWebhookRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Partially update a webhook. The secret cannot be changed here."""
    webhook = await service.registry.update(
        webhook_id,
        request.owner_id,
        name=request.name,
        url=request.url,
        events=request.events,
        active=request.active,
    )
    return WebhookResponse.from_webhook(webhook)


@router.post(
    "/webhooks/{webhook_id}/rotate-secret",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def rotate_secret(
    webhook_id: str,
    request: OwnerRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Replace the signing secret and return the new one once."""
    webhook = await service.registry.rotate_secret(webhook_id, request.owner_id)
    logger.info("Webhook secret rotated", webhook_id=webhook_id)
    return WebhookResponse.from_webhook(webhook, reveal_secret=True)


@router.delete(
    "/webhooks/{webhook_id}",
    response_model=DeleteWebhookResponse,
    tags=["webhooks"],
)
async def delete_webhook(
    webhook_id: str,
    owner_id: OwnerQuery,
    service: ServiceDep,
) -> DeleteWebhookResponse:
    """Delete a webhook together with its delivery log."""
    removed = await service.registry.delete(webhook_id, owner_id)
    return DeleteWebhookResponse(webhook_id=webhook_id, deliveries_deleted=removed)


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["deliveries"],
)
async def list_deliveries(
    webhook_id: str,
    owner_id: OwnerQuery,
    service: ServiceDep,
    since: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> DeliveryListResponse:
    """Recent deliveries of a webhook, newest first."""
    deliveries = await service.list_deliveries(webhook_id, owner_id, since=since, limit=limit)
    return DeliveryListResponse(
        webhook_id=webhook_id,
        deliveries=deliveries,
        count=len(deliveries),
    )


@router.get(
    "/webhooks/{webhook_id}/aggregates",
    response_model=list[DeliveryAggregate],
    tags=["deliveries"],
)
async def aggregate_deliveries(
    webhook_id: str,
    owner_id: OwnerQuery,
    service: ServiceDep,
    since: datetime | None = None,
) -> list[DeliveryAggregate]:
    """Outcome counts grouped by event type, status code and day."""
    return await service.aggregate_deliveries(owner_id, webhook_id=webhook_id, since=since)


@router.post(
    "/webhooks/{webhook_id}/test",
    response_model=DeliveryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["deliveries"],
)
async def test_webhook(
    webhook_id: str,
    request: OwnerRequest,
    service: ServiceDep,
) -> DeliveryResponse:
    """Send a ``test`` event, even to an inactive webhook.

    The delivery runs in the background; poll the delivery log for its
    outcome.
    """
    record = await service.test_webhook(webhook_id, request.owner_id)
    return DeliveryResponse.from_record(record)


@router.post(
    "/deliveries/{delivery_id}/redeliver",
    response_model=DeliveryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["deliveries"],
)
async def redeliver(
    delivery_id: str,
    request: OwnerRequest,
    service: ServiceDep,
) -> DeliveryResponse:
    """Replay a finished delivery under a new delivery ID."""
    record = await service.redeliver(delivery_id, request.owner_id)
    return DeliveryResponse.from_record(record)


@router.get("/deliveries/stats", response_model=DeliveryStatsResponse, tags=["deliveries"])
async def delivery_stats(
    owner_id: OwnerQuery,
    service: ServiceDep,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> DeliveryStatsResponse:
    """Delivery counts and success rate over the last ``days`` days."""
    stats = await service.delivery_stats(owner_id, days=days)
    return DeliveryStatsResponse(
        owner_id=owner_id,
        days=days,
        total_sent=stats.total_sent,
        successful=stats.successful,
        failed=stats.failed,
        success_rate=stats.success_rate,
        by_event_type=stats.by_event_type,
    )


@router.post(
    "/events",
    response_model=PublishResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def publish_event(request: PublishRequest, service: ServiceDep) -> PublishResponse:
    """Publish a platform event to the owner's subscribed webhooks."""
    delivery_ids = await service.publish(request.owner_id, request.event, request.data)
    return PublishResponse(event=request.event, delivery_ids=delivery_ids, count=len(delivery_ids))


@router.post("/webhooks/verify", response_model=VerifySignatureResponse, tags=["webhooks"])
async def verify_webhook_signature(
    request: VerifySignatureRequest,
    service: ServiceDep,
) -> VerifySignatureResponse:
    """Check a received signature the way a receiver should.

    Failures come back as 400 with the specific reason (malformed, stale,
    or mismatched).
    """
    tolerance = request.tolerance_seconds or service.settings.replay_tolerance_seconds
    timestamp = verify_signature(
        request.secret,
        request.signature,
        request.payload,
        tolerance_seconds=tolerance,
    )
    return VerifySignatureResponse(valid=True, timestamp=timestamp)
