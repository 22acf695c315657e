#!/usr/bin/env python3
"""REST API client demonstration.

This example shows how to use the Hookpost REST API with httpx.
First, start Qdrant and the server in another terminal:

    docker run -p 6333:6333 qdrant/qdrant
    uvicorn hookpost.api:app --reload

Then run this script:

    python examples/external/api_client.py https://your-receiver.example.com/hooks

The API provides (under /api/v1):
    POST   /webhooks                   - Register a webhook (returns the secret once)
    GET    /webhooks?owner_id=         - List webhooks, secrets masked
    POST   /webhooks/{id}/test         - Send a test event
    GET    /webhooks/{id}/deliveries   - Delivery log
    POST   /events                     - Publish an event
    GET    /deliveries/stats           - Success rate
    GET    /health                     - Health check
"""

import asyncio
import sys

import httpx

BASE_URL = "http://localhost:8000/api/v1"
OWNER = "api_demo_owner"


async def main(receiver_url: str) -> None:
    """Run the API client demo."""
    print("=" * 60)
    print("Hookpost REST API Demo")
    print("=" * 60)
    print(f"\nConnecting to {BASE_URL}...")

    async with httpx.AsyncClient(timeout=30.0) as client:
        # =====================================================================
        # Health Check
        # =====================================================================
        try:
            resp = await client.get(f"{BASE_URL}/health")
            resp.raise_for_status()
        except httpx.ConnectError:
            print("\n❌ Could not connect to API server!")
            print("   Start the server with: uvicorn hookpost.api:app --reload")
            return
        print(f"  Status: {resp.json()['status']}")

        # =====================================================================
        # Register
        # =====================================================================
        resp = await client.post(
            f"{BASE_URL}/webhooks",
            json={
                "owner_id": OWNER,
                "name": "API demo",
                "url": receiver_url,
                "events": ["credits.low", "usage.threshold"],
            },
        )
        if resp.status_code == 400:
            print(f"\n❌ Rejected: {resp.json()['error']['message']}")
            return
        resp.raise_for_status()
        webhook = resp.json()
        print(f"\n🔗 Registered {webhook['id']}")
        print(f"   Secret (store it now, it is masked from here on): {webhook['secret']}")

        # =====================================================================
        # Test + publish
        # =====================================================================
        resp = await client.post(
            f"{BASE_URL}/webhooks/{webhook['id']}/test", json={"owner_id": OWNER}
        )
        print(f"\n🧪 Test delivery: {resp.json()['delivery_id']}")

        resp = await client.post(
            f"{BASE_URL}/events",
            json={"owner_id": OWNER, "event": "credits.low", "data": {"balance": 10}},
        )
        print(f"📣 Published credits.low: {resp.json()['delivery_ids']}")

        # Deliveries run in the background; give them a moment
        await asyncio.sleep(3)

        # =====================================================================
        # Delivery log
        # =====================================================================
        resp = await client.get(
            f"{BASE_URL}/webhooks/{webhook['id']}/deliveries", params={"owner_id": OWNER}
        )
        print("\n📜 Delivery log:")
        for row in resp.json()["deliveries"]:
            print(
                f"  {row['delivery_id']} {row['event_type']:<12} "
                f"status={row['status_code']} attempts={row['attempts']} success={row['success']}"
            )

        resp = await client.get(f"{BASE_URL}/deliveries/stats", params={"owner_id": OWNER})
        print(f"\n📊 Success rate: {resp.json()['success_rate']}%")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: api_client.py <https receiver url>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
