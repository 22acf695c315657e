"""Webhook subscription storage.

Provides methods to store, retrieve, and delete webhook records.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models
from qdrant_client.http.exceptions import UnexpectedResponse

from hookpost.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookpost.models import Webhook


class WebhookMixin:
    """Mixin providing webhook operations for HookpostStorage.

    This mixin expects the following from the base class:
    - _upsert(record_type, key, record)
    - _retrieve(record_type, key, model_class)
    - _scroll_all(record_type, filter, model_class)
    - _match(key, value), _collection_name(record_type), _key_to_point_id(key)
    - delete_deliveries_for_webhook(webhook_id) from DeliveryLogMixin
    - client: AsyncQdrantClient
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _match: Any
    _collection_name: Any
    _key_to_point_id: Any
    delete_deliveries_for_webhook: Any
    client: Any

    @qdrant_retry
    async def store_webhook(self, webhook: Webhook) -> str:
        """Insert or replace a webhook record.

        Writes the whole record. Changes to an existing webhook go through
        ``update_webhook_fields`` so concurrent edits do not undo each other.

        Returns:
            The webhook ID.
        """
        await self._upsert("webhooks", webhook.id, webhook)
        return webhook.id

    async def update_webhook_fields(
        self, webhook_id: str, fields: dict[str, Any]
    ) -> Webhook | None:
        """Overwrite only the given payload keys of a stored webhook.

        Keys not listed keep whatever value is stored now, so a rename and a
        secret rotation racing each other both land. Values must already be
        JSON-ready (``model_dump(mode="json")``).

        Returns:
            The webhook as stored afterwards, or None if it no longer exists.
        """
        try:
            await self._set_webhook_payload(webhook_id, fields)
        except KeyError:
            # in-process client: point missing
            return None
        except UnexpectedResponse as e:
            if e.status_code != 404:
                raise
            return None
        return await self.get_webhook(webhook_id)

    @qdrant_retry
    async def _set_webhook_payload(self, webhook_id: str, fields: dict[str, Any]) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name("webhooks"),
            payload=fields,
            points=[self._key_to_point_id(webhook_id)],
        )

    @qdrant_retry
    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        """Get a webhook by ID regardless of owner.

        Ownership checks live in the registry, which needs to tell
        "missing" from "someone else's".
        """
        from hookpost.models import Webhook

        webhook: Webhook | None = await self._retrieve("webhooks", webhook_id, Webhook)
        return webhook

    @qdrant_retry
    async def list_webhooks(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[Webhook]:
        """List an owner's webhooks, newest first."""
        from hookpost.models import Webhook

        conditions = [self._match("owner_id", owner_id)]
        if active_only:
            conditions.append(self._match("active", True))

        webhooks: list[Webhook] = await self._scroll_all(
            "webhooks", models.Filter(must=conditions), Webhook
        )
        webhooks.sort(key=lambda w: w.created_at, reverse=True)
        return webhooks

    async def get_webhooks_for_event(self, event_type: str, owner_id: str) -> list[Webhook]:
        """Get an owner's active webhooks subscribed to an event type."""
        webhooks = await self.list_webhooks(owner_id=owner_id, active_only=True)
        return [wh for wh in webhooks if wh.subscribes_to(event_type)]

    @qdrant_retry
    async def _delete_webhook_point(self, webhook_id: str) -> None:
        await self.client.delete(
            collection_name=self._collection_name("webhooks"),
            points_selector=models.PointIdsList(points=[self._key_to_point_id(webhook_id)]),
        )

    async def delete_webhook(self, webhook_id: str) -> int:
        """Delete a webhook and cascade to its delivery records.

        The webhook point goes first so no new fan-out can resolve it while
        its records are being removed.

        Returns:
            Number of delivery records deleted.
        """
        await self._delete_webhook_point(webhook_id)
        deleted: int = await self.delete_deliveries_for_webhook(webhook_id)
        return deleted
