"""Qdrant storage client for Hookpost.

Combines webhook and delivery log operations through mixins.

Example:
    ```python
    from hookpost.storage import HookpostStorage

    async with HookpostStorage() as storage:
        await storage.store_webhook(webhook)
        records = await storage.list_deliveries(webhook.id, limit=20)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import StorageBase
from .deliveries import DeliveryLogMixin
from .webhooks import WebhookMixin


class HookpostStorage(WebhookMixin, DeliveryLogMixin, StorageBase):
    """Async Qdrant storage for webhooks and their delivery log.

    - WebhookMixin: store_webhook, get_webhook, list_webhooks,
      get_webhooks_for_event, delete_webhook (cascading)
    - DeliveryLogMixin: upsert_delivery, get_delivery, list_deliveries,
      delete_deliveries_for_webhook, get_pending_deliveries,
      aggregate_deliveries, delivery_stats

    Example:
        ```python
        from qdrant_client import AsyncQdrantClient

        # In-process storage for tests and local development
        storage = HookpostStorage(client=AsyncQdrantClient(location=":memory:"))
        await storage.initialize()
        ```
    """

    async def __aenter__(self) -> HookpostStorage:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
