#!/usr/bin/env python3
"""Quickstart demo - register, publish, retry and verify without any servers.

Demonstrates:
- registry.create(): Register a webhook and receive its secret once
- publish(): Fan an event out to subscribed webhooks
- Retries: The fake receiver fails the first attempt
- verify_signature(): What a receiver does with every request

Qdrant runs in-process (``:memory:``) and the receiver is an
httpx.MockTransport, so this needs nothing but the package installed.

Usage:
    python examples/local/quickstart.py
"""

import asyncio

import httpx
from qdrant_client import AsyncQdrantClient

from hookpost.config import DeliveryPolicy, Settings
from hookpost.registry import SubscriptionRegistry
from hookpost.service import HookpostService
from hookpost.storage import HookpostStorage
from hookpost.webhooks import (
    DELIVERY_ID_HEADER,
    SIGNATURE_HEADER,
    DeliveryExecutor,
    WebhookDispatcher,
    verify_signature,
)

OWNER = "acct_demo"


async def main() -> None:
    """Run the quickstart demo."""
    print("=" * 60)
    print("Hookpost Quickstart")
    print("=" * 60)

    secrets_by_url: dict[str, str] = {}
    seen_attempts: dict[str, int] = {}

    def receiver(request: httpx.Request) -> httpx.Response:
        delivery_id = request.headers[DELIVERY_ID_HEADER]
        seen_attempts[delivery_id] = seen_attempts.get(delivery_id, 0) + 1

        verify_signature(
            secrets_by_url[str(request.url)],
            request.headers[SIGNATURE_HEADER],
            request.content,
        )
        # Fail the first attempt of every delivery to show a retry
        if seen_attempts[delivery_id] == 1:
            return httpx.Response(503, text="warming up")
        return httpx.Response(200, text="thanks")

    storage = HookpostStorage(prefix="demo", client=AsyncQdrantClient(location=":memory:"))
    policy = DeliveryPolicy(backoff_seconds=[0.1, 0.2])
    executor = DeliveryExecutor(
        storage,
        policy=policy,
        client=httpx.AsyncClient(transport=httpx.MockTransport(receiver)),
    )
    service = HookpostService(
        storage=storage,
        registry=SubscriptionRegistry(storage),
        dispatcher=WebhookDispatcher(storage, executor=executor),
        settings=Settings(delivery=policy),
    )

    async with service:
        # =====================================================================
        # Register
        # =====================================================================
        print("\n🔗 Registering webhook...")
        webhook = await service.registry.create(
            OWNER, "Billing alerts", "https://receiver.example.com/hooks", ["credits.low"]
        )
        secrets_by_url[str(webhook.url)] = webhook.secret
        print(f"  ID:     {webhook.id}")
        print(f"  Secret: {webhook.masked_secret()} (full value shown once at creation)")

        # =====================================================================
        # Publish
        # =====================================================================
        print("\n📣 Publishing credits.low...")
        delivery_ids = await service.publish(OWNER, "credits.low", {"balance": 42, "threshold": 100})
        print(f"  Deliveries created: {delivery_ids}")

        results = await service.dispatcher.drain()
        for result in results:
            outcome = "delivered" if result.success else f"failed ({result.reason})"
            print(f"  {result.delivery_id}: {outcome} after {result.attempts} attempt(s)")

        # =====================================================================
        # Delivery log
        # =====================================================================
        print("\n📜 Delivery log:")
        for summary in await service.list_deliveries(webhook.id, OWNER):
            print(
                f"  {summary.created_at:%H:%M:%S} {summary.event_type:<14} "
                f"status={summary.status_code} attempts={summary.attempts}"
            )

        stats = await service.delivery_stats(OWNER, days=1)
        print(f"\n📊 Success rate: {stats.success_rate}% of {stats.total_sent} deliveries")

    print("\n✅ Done")


if __name__ == "__main__":
    asyncio.run(main())
