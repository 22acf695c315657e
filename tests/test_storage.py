"""Tests for the Qdrant-backed webhook store and delivery log.

Run against qdrant-client's in-process ``:memory:`` mode.
"""

from datetime import UTC, date, datetime, timedelta

import httpx
import pytest
from conftest import make_record, make_webhook
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import wait_none

from hookpost.exceptions import DeliveryError
from hookpost.storage import COLLECTION_NAMES, HookpostStorage
from hookpost.storage.retry import is_transient, qdrant_retry


class TestLifecycle:
    async def test_collections_created(self, storage: HookpostStorage):
        collections = await storage.client.get_collections()
        names = {c.name for c in collections.collections}
        assert {f"test_{suffix}" for suffix in COLLECTION_NAMES.values()} <= names

    async def test_initialize_is_idempotent(self, storage: HookpostStorage):
        await storage.initialize()
        await storage.initialize()

    def test_client_requires_initialize(self):
        with pytest.raises(RuntimeError):
            HookpostStorage(prefix="unused").client

    def test_point_ids_are_deterministic(self):
        first = HookpostStorage._key_to_point_id("whd_abc")
        assert first == HookpostStorage._key_to_point_id("whd_abc")
        assert first != HookpostStorage._key_to_point_id("whd_abd")


class TestWebhookStorage:
    async def test_store_and_get(self, storage: HookpostStorage):
        webhook = make_webhook()
        await storage.store_webhook(webhook)

        loaded = await storage.get_webhook(webhook.id)
        assert loaded == webhook
        assert loaded.secret == webhook.secret

    async def test_get_missing(self, storage: HookpostStorage):
        assert await storage.get_webhook("whk_missing") is None

    async def test_store_replaces(self, storage: HookpostStorage):
        webhook = make_webhook()
        await storage.store_webhook(webhook)
        await storage.store_webhook(webhook.model_copy(update={"name": "Renamed"}))

        assert (await storage.get_webhook(webhook.id)).name == "Renamed"
        assert len(await storage.list_webhooks(webhook.owner_id)) == 1

    async def test_update_fields_touches_only_given_keys(self, storage: HookpostStorage):
        webhook = make_webhook()
        await storage.store_webhook(webhook)

        updated = await storage.update_webhook_fields(webhook.id, {"name": "Renamed"})

        assert updated.name == "Renamed"
        assert updated.secret == webhook.secret
        assert updated.events == webhook.events

    async def test_update_fields_missing_webhook(self, storage: HookpostStorage):
        assert await storage.update_webhook_fields("whk_missing", {"name": "x"}) is None
        assert await storage.get_webhook("whk_missing") is None

    async def test_list_newest_first_and_owner_scoped(self, storage: HookpostStorage):
        base = datetime(2025, 1, 1, tzinfo=UTC)
        older = make_webhook(created_at=base)
        newer = make_webhook(created_at=base + timedelta(hours=1))
        foreign = make_webhook(owner_id="acct_2")
        for webhook in (older, newer, foreign):
            await storage.store_webhook(webhook)

        listed = await storage.list_webhooks("acct_1")
        assert [w.id for w in listed] == [newer.id, older.id]

    async def test_webhooks_for_event(self, storage: HookpostStorage):
        match = make_webhook(events=["credits.low", "credits.depleted"])
        inactive = make_webhook(events=["credits.low"], active=False)
        other_event = make_webhook(events=["usage.threshold"])
        other_owner = make_webhook(owner_id="acct_2", events=["credits.low"])
        for webhook in (match, inactive, other_event, other_owner):
            await storage.store_webhook(webhook)

        found = await storage.get_webhooks_for_event("credits.low", owner_id="acct_1")
        assert [w.id for w in found] == [match.id]

    async def test_delete_cascades(self, storage: HookpostStorage):
        doomed = make_webhook()
        kept = make_webhook()
        await storage.store_webhook(doomed)
        await storage.store_webhook(kept)
        for _ in range(3):
            await storage.upsert_delivery(make_record(doomed))
        kept_record = make_record(kept)
        await storage.upsert_delivery(kept_record)

        removed = await storage.delete_webhook(doomed.id)

        assert removed == 3
        assert await storage.get_webhook(doomed.id) is None
        assert await storage.list_deliveries(doomed.id) == []
        assert await storage.get_delivery(kept_record.delivery_id) is not None

    async def test_delete_without_deliveries(self, storage: HookpostStorage):
        webhook = make_webhook()
        await storage.store_webhook(webhook)
        assert await storage.delete_webhook(webhook.id) == 0


class TestDeliveryLog:
    async def test_upsert_is_point_level(self, storage: HookpostStorage):
        webhook = make_webhook()
        record = make_record(webhook)
        await storage.upsert_delivery(record)

        record.record_failure(DeliveryError("HTTP 500", 500, "nope"))
        await storage.upsert_delivery(record)

        loaded = await storage.get_delivery(record.delivery_id)
        assert loaded.attempts == 1
        assert loaded.status == "retrying"
        assert loaded.payload == record.payload
        assert len(await storage.list_deliveries(webhook.id)) == 1

    async def test_list_order_limit_since(self, storage: HookpostStorage):
        webhook = make_webhook()
        base = datetime(2025, 3, 1, tzinfo=UTC)
        records = [make_record(webhook, created_at=base + timedelta(minutes=i)) for i in range(5)]
        for record in records:
            await storage.upsert_delivery(record)

        listed = await storage.list_deliveries(webhook.id)
        assert [r.delivery_id for r in listed] == [r.delivery_id for r in reversed(records)]

        limited = await storage.list_deliveries(webhook.id, limit=2)
        assert [r.delivery_id for r in limited] == [records[4].delivery_id, records[3].delivery_id]

        recent = await storage.list_deliveries(webhook.id, since=base + timedelta(minutes=3))
        assert {r.delivery_id for r in recent} == {records[3].delivery_id, records[4].delivery_id}

    async def test_pending_deliveries(self, storage: HookpostStorage):
        webhook = make_webhook()
        pending = make_record(webhook)
        retrying = make_record(webhook).record_failure(DeliveryError("HTTP 502", 502))
        done = make_record(webhook).record_success(200)
        for record in (pending, retrying, done):
            await storage.upsert_delivery(record)

        found = await storage.get_pending_deliveries()
        assert {r.delivery_id for r in found} == {pending.delivery_id, retrying.delivery_id}

    async def test_aggregate_deliveries(self, storage: HookpostStorage):
        webhook = make_webhook()
        day_one = datetime(2025, 3, 1, 12, tzinfo=UTC)
        day_two = day_one + timedelta(days=1)

        ok = make_record(webhook, created_at=day_one).record_success(200)
        failed = make_record(webhook, max_attempts=1, created_at=day_one).record_failure(
            DeliveryError("HTTP 500", 500)
        )
        failed_again = make_record(webhook, max_attempts=1, created_at=day_one).record_failure(
            DeliveryError("HTTP 500", 500)
        )
        later = make_record(webhook, created_at=day_two).record_success(200)
        for record in (ok, failed, failed_again, later):
            await storage.upsert_delivery(record)

        rows = await storage.aggregate_deliveries(webhook_id=webhook.id)
        keyed = {(r.day, r.status_code): r for r in rows}

        assert rows[0].day == date(2025, 3, 2)
        assert keyed[(date(2025, 3, 1), 500)].failed == 2
        assert keyed[(date(2025, 3, 1), 500)].total == 2
        assert keyed[(date(2025, 3, 1), 200)].successful == 1
        assert keyed[(date(2025, 3, 2), 200)].total == 1

    async def test_delivery_stats(self, storage: HookpostStorage):
        webhook = make_webhook()
        records = [
            make_record(webhook).record_success(200),
            make_record(webhook).record_success(200),
            make_record(webhook, event_type="usage.threshold").record_success(200),
            make_record(webhook, max_attempts=1).record_failure(DeliveryError("HTTP 500", 500)),
            make_record(webhook),  # still in flight
        ]
        for record in records:
            await storage.upsert_delivery(record)
        await storage.upsert_delivery(make_record(make_webhook(owner_id="acct_2")))

        stats = await storage.delivery_stats("acct_1")

        assert stats.total_sent == 5
        assert stats.successful == 3
        assert stats.failed == 1
        assert stats.success_rate == 60
        assert stats.by_event_type["credits.low"].total == 4
        assert stats.by_event_type["usage.threshold"].success == 1

    async def test_delivery_stats_empty(self, storage: HookpostStorage):
        stats = await storage.delivery_stats("acct_nobody")
        assert stats.total_sent == 0
        assert stats.success_rate == 100

    async def test_delivery_stats_since(self, storage: HookpostStorage):
        webhook = make_webhook()
        old = make_record(webhook, created_at=datetime(2020, 1, 1, tzinfo=UTC))
        await storage.upsert_delivery(old.record_success(200))
        await storage.upsert_delivery(make_record(webhook).record_success(200))

        stats = await storage.delivery_stats("acct_1", since=datetime(2024, 1, 1, tzinfo=UTC))
        assert stats.total_sent == 1


class TestQdrantRetry:
    async def test_transient_errors_retried(self):
        calls = []

        @qdrant_retry
        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("refused")
            return "ok"

        assert await flaky.retry_with(wait=wait_none())() == "ok"
        assert len(calls) == 3

    async def test_gives_up_after_three_attempts(self):
        calls = []

        @qdrant_retry
        async def down() -> None:
            calls.append(1)
            raise httpx.ReadTimeout("slow")

        with pytest.raises(httpx.ReadTimeout):
            await down.retry_with(wait=wait_none())()
        assert len(calls) == 3

    async def test_other_errors_not_retried(self):
        calls = []

        @qdrant_retry
        async def broken() -> None:
            calls.append(1)
            raise ValueError("bad filter")

        with pytest.raises(ValueError):
            await broken()
        assert len(calls) == 1

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [(429, True), (500, True), (503, True), (400, False), (404, False)],
    )
    def test_unexpected_response_classification(self, status_code, expected):
        exc = UnexpectedResponse(status_code, "reason", b"", httpx.Headers())
        assert is_transient(exc) is expected
