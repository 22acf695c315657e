"""Event fan-out to subscribed webhooks.

``publish`` resolves an owner's active webhooks subscribed to the event,
writes one DeliveryRecord per match and hands each to the executor as its
own asyncio task. It returns the new delivery IDs without waiting for any
HTTP traffic; outcomes are observable through the delivery log.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from hookpost.config import DeliveryPolicy, settings
from hookpost.exceptions import DeliveryStateError, UnknownEventTypeError
from hookpost.logging import delivery_context, get_logger
from hookpost.models import (
    TEST_EVENT_TYPE,
    DeliveryRecord,
    DeliveryResult,
    WebhookEnvelope,
    WebhookEvent,
    generate_delivery_id,
    is_known_event_type,
)

from .executor import DeliveryExecutor

if TYPE_CHECKING:
    from hookpost.models import Webhook
    from hookpost.storage import HookpostStorage

logger = get_logger(__name__)


class WebhookDispatcher:
    """Dispatches events to registered endpoints.

    Handles:
    - Finding active webhooks subscribed to an event type
    - Creating one record per logical delivery (fresh ``delivery_id``)
    - Running deliveries concurrently in background tasks
    - Test deliveries that bypass the subscription filter

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage)

        delivery_ids = await dispatcher.publish(
            "acct_123", "credits.low", {"balance": 42, "threshold": 100}
        )

        # On shutdown (or in tests) wait for in-flight deliveries
        results = await dispatcher.drain()
        ```
    """

    def __init__(
        self,
        storage: HookpostStorage,
        executor: DeliveryExecutor | None = None,
        policy: DeliveryPolicy | None = None,
        api_version: str | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: Storage for webhook lookup and the delivery log.
            executor: Delivery executor. Built from ``policy`` when omitted.
            policy: Delivery policy. Defaults to settings.delivery.
            api_version: Envelope api_version. Defaults to settings.api_version.
        """
        self._storage = storage
        self._policy = policy or (executor.policy if executor else settings.delivery)
        self._executor = executor or DeliveryExecutor(storage, policy=self._policy)
        self._api_version = api_version or settings.api_version
        self._tasks: set[asyncio.Task[DeliveryResult]] = set()
        self._in_flight: set[str] = set()
        self._tails: dict[str, asyncio.Task[DeliveryResult]] = {}

    @property
    def in_flight(self) -> int:
        """Number of deliveries not yet finished."""
        return len(self._tasks)

    async def publish(
        self,
        owner_id: str,
        event_type: str,
        payload: dict[str, Any] | None = None,
    ) -> list[str]:
        """Publish an event to the owner's matching webhooks.

        Args:
            owner_id: Account whose webhooks receive the event.
            event_type: Catalog event type.
            payload: Event data placed under ``data`` in the envelope.

        Returns:
            Delivery IDs created, one per matching webhook.

        Raises:
            UnknownEventTypeError: If the event type is not in the catalog.
        """
        if event_type == TEST_EVENT_TYPE or not is_known_event_type(event_type):
            raise UnknownEventTypeError([event_type])

        event = WebhookEvent(event=event_type, owner_id=owner_id, data=payload or {})
        return await self.dispatch_event(event)

    async def dispatch_event(self, event: WebhookEvent) -> list[str]:
        """Fan an already-built event out to its subscribers."""
        webhooks = await self._storage.get_webhooks_for_event(
            event_type=event.event,
            owner_id=event.owner_id,
        )

        if not webhooks:
            logger.debug("No webhooks subscribed", event_type=event.event, owner_id=event.owner_id)
            return []

        records = [self._new_record(webhook, event) for webhook in webhooks]
        written = await asyncio.gather(
            *(self._storage.upsert_delivery(record) for record in records),
            return_exceptions=True,
        )

        delivery_ids: list[str] = []
        for webhook, record, outcome in zip(webhooks, records, written, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Could not record delivery, skipping webhook",
                    webhook_id=webhook.id,
                    event_type=event.event,
                    error=str(outcome),
                )
                continue
            self._spawn(webhook, record)
            delivery_ids.append(record.delivery_id)

        logger.info(
            "Event published",
            event_type=event.event,
            owner_id=event.owner_id,
            deliveries=len(delivery_ids),
        )
        return delivery_ids

    async def test_webhook(self, webhook: Webhook) -> DeliveryRecord:
        """Send a synthetic ``test`` event to one webhook.

        Goes through the same record/sign/execute path as a real event but
        ignores ``active`` and the subscription list, so a paused webhook
        can still be checked end to end.

        Returns:
            Snapshot of the new record as created (attempts == 0).
        """
        event = WebhookEvent.for_test(webhook.owner_id)
        return await self._start_single(webhook, self._new_record(webhook, event))

    async def redeliver(self, webhook: Webhook, original: DeliveryRecord) -> DeliveryRecord:
        """Replay a finished delivery's payload as a new logical delivery.

        The envelope keeps its event, timestamp and data but gets the new
        ``delivery_id``, so receivers do not discard it as a duplicate.

        Raises:
            DeliveryStateError: If the original delivery is still running.
        """
        if not original.is_terminal:
            raise DeliveryStateError(f"Delivery {original.delivery_id} is still in progress")

        previous = WebhookEnvelope.model_validate_json(original.payload)
        delivery_id = generate_delivery_id()
        envelope = previous.model_copy(update={"id": delivery_id})
        record = DeliveryRecord(
            delivery_id=delivery_id,
            webhook_id=webhook.id,
            owner_id=webhook.owner_id,
            event_type=original.event_type,
            payload=envelope.to_body(),
            max_attempts=self._policy.max_attempts,
        )
        return await self._start_single(webhook, record)

    async def resume_pending(self, limit: int = 100) -> int:
        """Restart deliveries left unfinished by a previous process.

        Returns:
            Number of deliveries resumed.
        """
        resumed = 0
        for record in await self._storage.get_pending_deliveries(limit=limit):
            if record.delivery_id in self._in_flight:
                continue
            webhook = await self._storage.get_webhook(record.webhook_id)
            if webhook is None:
                continue
            self._spawn(webhook, record)
            resumed += 1

        if resumed:
            logger.info("Resumed pending deliveries", count=resumed)
        return resumed

    async def drain(self) -> list[DeliveryResult]:
        """Wait for every in-flight delivery and return their results."""
        results: list[DeliveryResult] = []
        while self._tasks:
            batch = list(self._tasks)
            done = await asyncio.gather(*batch, return_exceptions=True)
            self._tasks.difference_update(batch)
            results.extend(r for r in done if isinstance(r, DeliveryResult))
        return results

    async def close(self) -> None:
        """Drain in-flight deliveries."""
        await self.drain()

    def _new_record(self, webhook: Webhook, event: WebhookEvent) -> DeliveryRecord:
        delivery_id = generate_delivery_id()
        envelope = WebhookEnvelope.for_delivery(delivery_id, event, self._api_version)
        return DeliveryRecord(
            delivery_id=delivery_id,
            webhook_id=webhook.id,
            owner_id=webhook.owner_id,
            event_type=event.event,
            payload=envelope.to_body(),
            max_attempts=self._policy.max_attempts,
        )

    async def _start_single(self, webhook: Webhook, record: DeliveryRecord) -> DeliveryRecord:
        snapshot = record.model_copy()
        await self._storage.upsert_delivery(record)
        self._spawn(webhook, record)
        return snapshot

    def _spawn(self, webhook: Webhook, record: DeliveryRecord) -> None:
        """Start a background task for one delivery."""
        previous = self._tails.get(webhook.id) if self._policy.ordered_per_webhook else None
        task = asyncio.create_task(
            self._run(webhook, record, previous),
            name=f"webhook-delivery-{record.delivery_id}",
        )
        self._tasks.add(task)
        self._in_flight.add(record.delivery_id)

        if self._policy.ordered_per_webhook:
            self._tails[webhook.id] = task

        def _finished(done: asyncio.Task[DeliveryResult]) -> None:
            self._tasks.discard(done)
            self._in_flight.discard(record.delivery_id)
            if self._tails.get(webhook.id) is done:
                del self._tails[webhook.id]

        task.add_done_callback(_finished)

    async def _run(
        self,
        webhook: Webhook,
        record: DeliveryRecord,
        previous: asyncio.Task[DeliveryResult] | None,
    ) -> DeliveryResult:
        with delivery_context(record.delivery_id, webhook.id, record.event_type):
            if previous is not None:
                await asyncio.wait([previous])
            return await self._executor.deliver(webhook, record)
