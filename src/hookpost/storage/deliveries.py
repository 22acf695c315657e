"""Delivery log storage.

Each DeliveryRecord is one Qdrant point whose ID is derived from its
``delivery_id``. An upsert replaces exactly that point, so concurrent
writers for different deliveries never touch each other's rows. Attempts
of a single delivery are serialized by the executor, not by the store.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookpost.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookpost.models import DeliveryAggregate, DeliveryRecord, DeliveryStats


class DeliveryLogMixin:
    """Mixin providing delivery log operations for HookpostStorage.

    This mixin expects the following from the base class:
    - _upsert(record_type, key, record)
    - _retrieve(record_type, key, model_class)
    - _scroll_all(record_type, filter, model_class)
    - _match(key, value), _collection_name(record_type)
    - client: AsyncQdrantClient
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _match: Any
    _collection_name: Any
    client: Any

    @qdrant_retry
    async def upsert_delivery(self, record: DeliveryRecord) -> str:
        """Insert or replace a delivery record keyed by ``delivery_id``.

        Returns:
            The delivery ID.
        """
        await self._upsert("deliveries", record.delivery_id, record)
        return record.delivery_id

    @qdrant_retry
    async def get_delivery(self, delivery_id: str) -> DeliveryRecord | None:
        """Get a delivery record by ID."""
        from hookpost.models import DeliveryRecord

        record: DeliveryRecord | None = await self._retrieve(
            "deliveries", delivery_id, DeliveryRecord
        )
        return record

    @staticmethod
    def _since_condition(since: datetime) -> models.FieldCondition:
        return models.FieldCondition(
            key="created_at_ts",
            range=models.Range(gte=since.timestamp()),
        )

    @qdrant_retry
    async def _find_deliveries(self, conditions: list[Any]) -> list[DeliveryRecord]:
        from hookpost.models import DeliveryRecord

        scroll_filter = models.Filter(must=conditions) if conditions else None
        records: list[DeliveryRecord] = await self._scroll_all(
            "deliveries", scroll_filter, DeliveryRecord
        )
        return records

    async def list_deliveries(
        self,
        webhook_id: str,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[DeliveryRecord]:
        """Get delivery records for a webhook, newest first.

        Args:
            webhook_id: ID of the webhook.
            since: Only records created at or after this time.
            limit: Maximum records to return.
        """
        conditions: list[Any] = [self._match("webhook_id", webhook_id)]
        if since is not None:
            conditions.append(self._since_condition(since))

        records = await self._find_deliveries(conditions)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    @qdrant_retry
    async def delete_deliveries_for_webhook(self, webhook_id: str) -> int:
        """Delete every delivery record owned by a webhook.

        Returns:
            Number of records deleted.
        """
        collection = self._collection_name("deliveries")
        webhook_filter = models.Filter(must=[self._match("webhook_id", webhook_id)])

        counted = await self.client.count(
            collection_name=collection,
            count_filter=webhook_filter,
            exact=True,
        )
        if counted.count:
            await self.client.delete(
                collection_name=collection,
                points_selector=models.FilterSelector(filter=webhook_filter),
            )
        return int(counted.count)

    async def get_pending_deliveries(self, limit: int = 100) -> list[DeliveryRecord]:
        """Get non-terminal records, oldest first.

        Used to resume deliveries that were in flight when the process
        stopped.
        """
        status_filter = models.Filter(
            should=[
                self._match("status", "pending"),
                self._match("status", "retrying"),
            ]
        )
        records = await self._find_deliveries([status_filter])
        records.sort(key=lambda r: r.next_attempt_at or r.created_at)
        return records[:limit]

    async def aggregate_deliveries(
        self,
        webhook_id: str | None = None,
        owner_id: str | None = None,
        since: datetime | None = None,
    ) -> list[DeliveryAggregate]:
        """Group delivery outcomes by (webhook_id, event_type, status_code, day).

        Rows are ordered by day (newest first), then webhook and event type.
        """
        from hookpost.models import DeliveryAggregate

        conditions: list[Any] = []
        if webhook_id is not None:
            conditions.append(self._match("webhook_id", webhook_id))
        if owner_id is not None:
            conditions.append(self._match("owner_id", owner_id))
        if since is not None:
            conditions.append(self._since_condition(since))

        groups: dict[tuple[str, str, int | None, date], DeliveryAggregate] = {}
        for record in await self._find_deliveries(conditions):
            key = (
                record.webhook_id,
                record.event_type,
                record.status_code,
                record.created_at.date(),
            )
            row = groups.get(key)
            if row is None:
                row = groups[key] = DeliveryAggregate(
                    webhook_id=key[0], event_type=key[1], status_code=key[2], day=key[3]
                )
            row.total += 1
            if record.success:
                row.successful += 1
            elif record.is_terminal:
                row.failed += 1

        return sorted(
            groups.values(),
            key=lambda r: (-r.day.toordinal(), r.webhook_id, r.event_type, r.status_code or 0),
        )

    async def delivery_stats(
        self,
        owner_id: str,
        since: datetime | None = None,
    ) -> DeliveryStats:
        """Summarize an owner's terminal deliveries over a window.

        In-flight deliveries count toward ``total_sent`` only.
        """
        from hookpost.models import DeliveryStats, EventTypeCounts

        conditions: list[Any] = [self._match("owner_id", owner_id)]
        if since is not None:
            conditions.append(self._since_condition(since))

        records = await self._find_deliveries(conditions)
        by_event: dict[str, EventTypeCounts] = defaultdict(EventTypeCounts)
        successful = failed = 0

        for record in records:
            counts = by_event[record.event_type]
            counts.total += 1
            if record.success:
                successful += 1
                counts.success += 1
            elif record.is_terminal:
                failed += 1
                counts.failed += 1

        total = len(records)
        return DeliveryStats(
            owner_id=owner_id,
            since=since,
            total_sent=total,
            successful=successful,
            failed=failed,
            success_rate=round(successful / total * 100) if total else 100,
            by_event_type=dict(by_event),
        )
