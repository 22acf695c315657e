"""Hookpost service layer.

This module provides HookpostService, which wires storage, the
subscription registry and the dispatcher together behind one object.
Platform code publishes events through it and the REST API is a thin
layer over it.

Example:
    ```python
    from hookpost.service import HookpostService

    async with HookpostService.create() as hookpost:
        webhook = await hookpost.registry.create(
            "acct_123", "Billing", "https://example.com/hooks", ["credits.low"]
        )
        await hookpost.publish("acct_123", "credits.low", {"balance": 42})
    # Leaving the block waits for in-flight deliveries
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from hookpost.config import Settings
from hookpost.exceptions import NotFoundError, UnauthorizedError
from hookpost.models import (
    DeliveryAggregate,
    DeliveryRecord,
    DeliveryStats,
    DeliverySummary,
    utc_now,
)
from hookpost.registry import SubscriptionRegistry
from hookpost.storage import HookpostStorage
from hookpost.webhooks import DeliveryExecutor, FailureNotifier, WebhookDispatcher


@dataclass
class HookpostService:
    """High-level facade over registry, dispatcher and delivery log.

    Uses dependency injection for every collaborator, so tests can pass an
    in-memory store and an executor with a mock HTTP transport.

    Attributes:
        storage: Qdrant-backed store for webhooks and delivery records.
        registry: Owner-scoped webhook CRUD.
        dispatcher: Event fan-out and background delivery.
        settings: Configuration settings.
    """

    storage: HookpostStorage
    registry: SubscriptionRegistry
    dispatcher: WebhookDispatcher
    settings: Settings

    @classmethod
    def create(cls, settings: Settings | None = None) -> HookpostService:
        """Create a HookpostService with default dependencies.

        Args:
            settings: Optional settings. Uses environment if None.
        """
        if settings is None:
            settings = Settings()

        storage = HookpostStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )

        notifier = None
        if settings.failure_alert_url:
            notifier = FailureNotifier(
                settings.failure_alert_url,
                timeout_seconds=settings.failure_alert_timeout_seconds,
            )

        executor = DeliveryExecutor(storage, policy=settings.delivery, notifier=notifier)
        return cls(
            storage=storage,
            registry=SubscriptionRegistry(storage),
            dispatcher=WebhookDispatcher(
                storage,
                executor=executor,
                api_version=settings.api_version,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Create collections if needed."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Wait for in-flight deliveries, then release the store."""
        await self.dispatcher.close()
        await self.storage.close()

    async def __aenter__(self) -> HookpostService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def publish(
        self,
        owner_id: str,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> list[str]:
        """Publish an event to the owner's subscribed webhooks.

        Returns the delivery IDs immediately; delivery runs in the background.
        """
        return await self.dispatcher.publish(owner_id, event_type, payload)

    async def test_webhook(self, webhook_id: str, owner_id: str) -> DeliveryRecord:
        """Send a ``test`` event to one webhook, ignoring its filter."""
        webhook = await self.registry.get(webhook_id, owner_id)
        return await self.dispatcher.test_webhook(webhook)

    async def redeliver(self, delivery_id: str, owner_id: str) -> DeliveryRecord:
        """Replay a finished delivery as a new logical delivery.

        Raises:
            NotFoundError: No such delivery, or its webhook is gone.
            UnauthorizedError: The delivery belongs to another owner.
            DeliveryStateError: The original is still in progress.
        """
        original = await self.storage.get_delivery(delivery_id)
        if original is None:
            raise NotFoundError("delivery", delivery_id)
        if original.owner_id != owner_id:
            raise UnauthorizedError("delivery", delivery_id, owner_id)

        webhook = await self.registry.get(original.webhook_id, owner_id)
        return await self.dispatcher.redeliver(webhook, original)

    async def get_delivery(self, delivery_id: str, owner_id: str) -> DeliveryRecord:
        """Owner-checked lookup of one full delivery record."""
        record = await self.storage.get_delivery(delivery_id)
        if record is None:
            raise NotFoundError("delivery", delivery_id)
        if record.owner_id != owner_id:
            raise UnauthorizedError("delivery", delivery_id, owner_id)
        return record

    async def list_deliveries(
        self,
        webhook_id: str,
        owner_id: str,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[DeliverySummary]:
        """Recent deliveries of one of the owner's webhooks, newest first."""
        await self.registry.get(webhook_id, owner_id)
        records = await self.storage.list_deliveries(webhook_id, since=since, limit=limit)
        return [DeliverySummary.from_record(record) for record in records]

    async def delivery_stats(self, owner_id: str, days: int | None = 30) -> DeliveryStats:
        """Delivery counts for the owner over the last ``days`` days.

        ``days=None`` covers the whole log.
        """
        since = utc_now() - timedelta(days=days) if days else None
        return await self.storage.delivery_stats(owner_id, since=since)

    async def aggregate_deliveries(
        self,
        owner_id: str,
        webhook_id: str | None = None,
        since: datetime | None = None,
    ) -> list[DeliveryAggregate]:
        """Failure analytics rows for the owner, optionally one webhook."""
        if webhook_id is not None:
            await self.registry.get(webhook_id, owner_id)
        return await self.storage.aggregate_deliveries(
            webhook_id=webhook_id,
            owner_id=owner_id,
            since=since,
        )


__all__ = ["HookpostService"]
