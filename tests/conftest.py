"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from hookpost.config import DeliveryPolicy
from hookpost.models import DeliveryRecord, Webhook, WebhookEnvelope, WebhookEvent
from hookpost.storage import HookpostStorage
from hookpost.webhooks import DeliveryExecutor

FIXED_NOW = 1_700_000_000


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns immediately.

    Records every requested delay. An optional hook runs during the sleep,
    which is where tests mutate state "between attempts".
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.hook: Callable[[], object] | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.hook is not None:
            result = self.hook()
            if hasattr(result, "__await__"):
                await result


class RecordingHandler:
    """httpx.MockTransport handler that replays scripted status codes.

    Once the script runs out the last status repeats. Every request is kept
    for assertions.
    """

    def __init__(self, statuses: list[int] | None = None, text: str = "ok") -> None:
        self.statuses = statuses or [200]
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        index = min(len(self.requests), len(self.statuses) - 1)
        self.requests.append(request)
        return httpx.Response(self.statuses[index], text=self.text)


@pytest.fixture
async def storage() -> AsyncIterator[HookpostStorage]:
    """In-process Qdrant storage, fresh per test."""
    store = HookpostStorage(prefix="test", client=AsyncQdrantClient(location=":memory:"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def policy() -> DeliveryPolicy:
    return DeliveryPolicy(max_attempts=4, backoff_seconds=[1.0, 5.0, 25.0], timeout_seconds=2.0)


@pytest.fixture
def make_executor(
    storage: HookpostStorage, sleeper: SleepRecorder, policy: DeliveryPolicy
) -> Callable[..., DeliveryExecutor]:
    """Build an executor whose HTTP goes to a RecordingHandler."""

    def _make(handler: Callable[[httpx.Request], object], **kwargs: object) -> DeliveryExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        options: dict[str, object] = {
            "policy": policy,
            "client": client,
            "clock": lambda: float(FIXED_NOW),
            "sleep": sleeper,
        }
        options.update(kwargs)
        return DeliveryExecutor(storage, **options)  # type: ignore[arg-type]

    return _make


def make_webhook(
    owner_id: str = "acct_1",
    events: list[str] | None = None,
    active: bool = True,
    url: str = "https://receiver.example.com/hooks",
    created_at: datetime | None = None,
    **kwargs: object,
) -> Webhook:
    """Build a Webhook without going through the registry."""
    data: dict[str, object] = {
        "owner_id": owner_id,
        "name": "Test hook",
        "url": url,
        "events": events or ["credits.low"],
        "active": active,
        **kwargs,
    }
    if created_at is not None:
        data["created_at"] = created_at
    return Webhook.model_validate(data)


def make_record(
    webhook: Webhook,
    event_type: str = "credits.low",
    max_attempts: int = 4,
    **kwargs: object,
) -> DeliveryRecord:
    """Build a pending DeliveryRecord with a real envelope body."""
    record = DeliveryRecord(
        webhook_id=webhook.id,
        owner_id=webhook.owner_id,
        event_type=event_type,
        payload="{}",
        max_attempts=max_attempts,
        **kwargs,  # type: ignore[arg-type]
    )
    event = WebhookEvent(event=event_type, owner_id=webhook.owner_id, data={"balance": 42})
    record.payload = WebhookEnvelope.for_delivery(record.delivery_id, event, "2024-01-01").to_body()
    return record
