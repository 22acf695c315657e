"""Tests for Hookpost REST API."""

import time
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_record, make_webhook
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hookpost.api.app import create_app, error_status
from hookpost.api.router import router, set_service
from hookpost.config import Settings
from hookpost.exceptions import (
    DeliveryError,
    DeliveryStateError,
    HookpostError,
    MalformedSignatureError,
    InvalidURLError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    UnknownEventTypeError,
)
from hookpost.models import DeliveryStats, DeliverySummary, EventTypeCounts
from hookpost.service import HookpostService
from hookpost.webhooks import build_signature_header


@pytest.fixture
def mock_service():
    """Create a mock HookpostService."""
    service = MagicMock(spec=HookpostService)
    service.registry = MagicMock()
    service.registry.create = AsyncMock()
    service.registry.get = AsyncMock()
    service.registry.update = AsyncMock()
    service.registry.rotate_secret = AsyncMock()
    service.registry.delete = AsyncMock()
    service.registry.list_webhooks = AsyncMock(return_value=[])
    service.dispatcher = MagicMock()
    service.dispatcher.in_flight = 0
    service.publish = AsyncMock(return_value=[])
    service.test_webhook = AsyncMock()
    service.redeliver = AsyncMock()
    service.list_deliveries = AsyncMock(return_value=[])
    service.aggregate_deliveries = AsyncMock(return_value=[])
    service.delivery_stats = AsyncMock()
    service.settings = Settings()
    return service


@pytest.fixture
def client(mock_service):
    """Test client on the full app (exception handlers included), lifespan not run."""
    app = create_app(Settings(cors_enabled=False))
    set_service(mock_service)
    yield TestClient(app)
    set_service(None)


class TestHealthEndpoint:
    def test_health_when_service_initialized(self, client, mock_service):
        mock_service.dispatcher.in_flight = 3
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_connected"] is True
        assert data["in_flight_deliveries"] == 3

    def test_health_when_service_not_initialized(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)
        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_service_unavailable(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)
        response = TestClient(app).get("/api/v1/webhooks", params={"owner_id": "acct_1"})
        assert response.status_code == 503


class TestWebhookEndpoints:
    def test_create_reveals_secret(self, client, mock_service):
        webhook = make_webhook()
        mock_service.registry.create.return_value = webhook

        response = client.post(
            "/api/v1/webhooks",
            json={
                "owner_id": "acct_1",
                "name": "Billing",
                "url": "https://receiver.example.com/hooks",
                "events": ["credits.low"],
            },
        )

        assert response.status_code == 201
        assert response.json()["secret"] == webhook.secret
        mock_service.registry.create.assert_awaited_once_with(
            owner_id="acct_1",
            name="Billing",
            url="https://receiver.example.com/hooks",
            events=["credits.low"],
        )

    def test_create_invalid_url(self, client, mock_service):
        mock_service.registry.create.side_effect = InvalidURLError("http://x.example.com")

        response = client.post(
            "/api/v1/webhooks",
            json={"owner_id": "acct_1", "name": "B", "url": "http://x.example.com", "events": ["credits.low"]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_url"

    def test_create_unknown_event(self, client, mock_service):
        mock_service.registry.create.side_effect = UnknownEventTypeError(["nope.nope"])

        response = client.post(
            "/api/v1/webhooks",
            json={"owner_id": "acct_1", "name": "B", "url": "https://x.example.com", "events": ["nope.nope"]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["event_types"] == ["nope.nope"]

    def test_create_rejects_extra_fields(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={
                "owner_id": "acct_1",
                "name": "B",
                "url": "https://x.example.com",
                "events": ["credits.low"],
                "secret": "whsec_mine",
            },
        )
        assert response.status_code == 422

    def test_list_masks_secrets(self, client, mock_service):
        webhooks = [make_webhook(), make_webhook()]
        mock_service.registry.list_webhooks.return_value = webhooks

        response = client.get("/api/v1/webhooks", params={"owner_id": "acct_1"})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        for item, webhook in zip(data["webhooks"], webhooks, strict=True):
            assert item["secret"] == webhook.masked_secret()
            assert webhook.secret not in response.text

    def test_get_not_found(self, client, mock_service):
        mock_service.registry.get.side_effect = NotFoundError("webhook", "whk_x")
        response = client.get("/api/v1/webhooks/whk_x", params={"owner_id": "acct_1"})
        assert response.status_code == 404

    def test_get_foreign(self, client, mock_service):
        mock_service.registry.get.side_effect = UnauthorizedError("webhook", "whk_x", "acct_2")
        response = client.get("/api/v1/webhooks/whk_x", params={"owner_id": "acct_2"})
        assert response.status_code == 403

    def test_update_masks_secret(self, client, mock_service):
        webhook = make_webhook(active=False)
        mock_service.registry.update.return_value = webhook

        response = client.patch(
            f"/api/v1/webhooks/{webhook.id}", json={"owner_id": "acct_1", "active": False}
        )

        assert response.status_code == 200
        assert response.json()["active"] is False
        assert webhook.secret not in response.text
        mock_service.registry.update.assert_awaited_once_with(
            webhook.id, "acct_1", name=None, url=None, events=None, active=False
        )

    def test_rotate_reveals_new_secret(self, client, mock_service):
        webhook = make_webhook()
        mock_service.registry.rotate_secret.return_value = webhook

        response = client.post(
            f"/api/v1/webhooks/{webhook.id}/rotate-secret", json={"owner_id": "acct_1"}
        )

        assert response.status_code == 200
        assert response.json()["secret"] == webhook.secret

    def test_delete(self, client, mock_service):
        mock_service.registry.delete.return_value = 7

        response = client.delete("/api/v1/webhooks/whk_1", params={"owner_id": "acct_1"})

        assert response.status_code == 200
        assert response.json() == {"webhook_id": "whk_1", "deleted": True, "deliveries_deleted": 7}

    def test_storage_error_is_500(self, client, mock_service):
        mock_service.registry.delete.side_effect = StorageError("qdrant down")
        response = client.delete("/api/v1/webhooks/whk_1", params={"owner_id": "acct_1"})
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "storage_error"


class TestDeliveryEndpoints:
    def test_list_deliveries(self, client, mock_service):
        webhook = make_webhook()
        record = make_record(webhook).record_success(200)
        mock_service.list_deliveries.return_value = [DeliverySummary.from_record(record)]

        response = client.get(
            f"/api/v1/webhooks/{webhook.id}/deliveries",
            params={"owner_id": "acct_1", "limit": 10},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["deliveries"][0]["delivery_id"] == record.delivery_id
        assert "payload" not in data["deliveries"][0]
        mock_service.list_deliveries.assert_awaited_once_with(
            webhook.id, "acct_1", since=None, limit=10
        )

    def test_list_deliveries_limit_bounds(self, client):
        response = client.get(
            "/api/v1/webhooks/whk_1/deliveries", params={"owner_id": "acct_1", "limit": 0}
        )
        assert response.status_code == 422

    def test_test_webhook(self, client, mock_service):
        webhook = make_webhook()
        mock_service.test_webhook.return_value = make_record(webhook, event_type="test")

        response = client.post(f"/api/v1/webhooks/{webhook.id}/test", json={"owner_id": "acct_1"})

        assert response.status_code == 202
        assert response.json()["event_type"] == "test"
        assert response.json()["status"] == "pending"

    def test_redeliver_in_progress_conflict(self, client, mock_service):
        mock_service.redeliver.side_effect = DeliveryStateError("still running")
        response = client.post("/api/v1/deliveries/whd_1/redeliver", json={"owner_id": "acct_1"})
        assert response.status_code == 409

    def test_stats(self, client, mock_service):
        mock_service.delivery_stats.return_value = DeliveryStats(
            owner_id="acct_1",
            since=datetime(2025, 1, 1, tzinfo=UTC),
            total_sent=4,
            successful=3,
            failed=1,
            success_rate=75,
            by_event_type={"credits.low": EventTypeCounts(total=4, success=3, failed=1)},
        )

        response = client.get("/api/v1/deliveries/stats", params={"owner_id": "acct_1", "days": 7})

        assert response.status_code == 200
        data = response.json()
        assert data["success_rate"] == 75
        assert data["days"] == 7
        assert data["by_event_type"]["credits.low"]["failed"] == 1
        mock_service.delivery_stats.assert_awaited_once_with("acct_1", days=7)


class TestEventsEndpoint:
    def test_publish(self, client, mock_service):
        mock_service.publish.return_value = ["whd_a", "whd_b"]

        response = client.post(
            "/api/v1/events",
            json={"owner_id": "acct_1", "event": "credits.low", "data": {"balance": 3}},
        )

        assert response.status_code == 202
        assert response.json()["delivery_ids"] == ["whd_a", "whd_b"]
        mock_service.publish.assert_awaited_once_with("acct_1", "credits.low", {"balance": 3})

    def test_publish_unknown_event(self, client, mock_service):
        mock_service.publish.side_effect = UnknownEventTypeError(["made.up"])
        response = client.post("/api/v1/events", json={"owner_id": "acct_1", "event": "made.up"})
        assert response.status_code == 400


class TestVerifyEndpoint:
    def test_valid(self, client):
        now = int(time.time())
        body = '{"event":"credits.low"}'
        header = build_signature_header("whsec_abc", now, body)

        response = client.post(
            "/api/v1/webhooks/verify",
            json={"secret": "whsec_abc", "signature": header, "payload": body},
        )

        assert response.status_code == 200
        assert response.json() == {"valid": True, "timestamp": now}

    def test_wrong_secret(self, client):
        now = int(time.time())
        body = '{"event":"credits.low"}'
        header = build_signature_header("whsec_abc", now, body)

        response = client.post(
            "/api/v1/webhooks/verify",
            json={"secret": "whsec_other", "signature": header, "payload": body},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_signature"

    def test_stale(self, client):
        body = "{}"
        header = build_signature_header("whsec_abc", int(time.time()) - 3600, body)

        response = client.post(
            "/api/v1/webhooks/verify",
            json={"secret": "whsec_abc", "signature": header, "payload": body},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "stale_signature"

    def test_malformed(self, client):
        response = client.post(
            "/api/v1/webhooks/verify",
            json={"secret": "whsec_abc", "signature": "nonsense", "payload": "{}"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "malformed_signature"


class TestErrorStatus:
    @pytest.mark.parametrize(
        ("exc", "status_code"),
        [
            (NotFoundError("Webhook", "whk_1"), 404),
            (UnauthorizedError("Webhook", "whk_1", "acct_2"), 403),
            (InvalidURLError("http://x"), 400),
            (UnknownEventTypeError(["nope"]), 400),
            (MalformedSignatureError("no v1"), 400),
            (DeliveryStateError("still running"), 409),
            (StorageError("down"), 500),
            (DeliveryError("HTTP 500", 500), 500),
            (HookpostError("boom"), 500),
        ],
    )
    def test_status_mapping(self, exc, status_code):
        assert error_status(exc)[0] == status_code
