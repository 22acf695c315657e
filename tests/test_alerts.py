"""Tests for owner failure alerts."""

import json

import httpx
from conftest import RecordingHandler, make_record, make_webhook

from hookpost.exceptions import DeliveryError
from hookpost.webhooks import FailureNotifier
from hookpost.webhooks.alerts import ALERT_TYPE

ALERT_URL = "https://alerts.example.com/webhook-failures"


def _failed_record(webhook):
    record = make_record(webhook, max_attempts=1)
    return record.record_failure(DeliveryError("HTTP 500", 500, "down"))


def _notifier(handler) -> FailureNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FailureNotifier(ALERT_URL, timeout_seconds=1.0, client=client)


class TestBuildAlert:
    def test_contents(self):
        webhook = make_webhook()
        record = _failed_record(webhook)

        alert = FailureNotifier.build_alert(webhook, record)

        assert alert["type"] == ALERT_TYPE
        assert alert["webhook_id"] == webhook.id
        assert alert["delivery_id"] == record.delivery_id
        assert alert["attempts"] == 1
        assert alert["status_code"] == 500
        assert alert["error"] == "HTTP 500"

    def test_excludes_secret_and_payload(self):
        webhook = make_webhook()
        record = _failed_record(webhook)

        serialized = json.dumps(FailureNotifier.build_alert(webhook, record))

        assert webhook.secret not in serialized
        assert record.payload not in serialized


class TestNotify:
    async def test_posts_once(self):
        handler = RecordingHandler([200])
        webhook = make_webhook()

        assert await _notifier(handler).notify(webhook, _failed_record(webhook))

        (request,) = handler.requests
        assert str(request.url) == ALERT_URL
        assert json.loads(request.content)["webhook_id"] == webhook.id

    async def test_rejected_alert_is_not_retried(self):
        handler = RecordingHandler([503])
        webhook = make_webhook()

        assert not await _notifier(handler).notify(webhook, _failed_record(webhook))
        assert len(handler.requests) == 1

    async def test_connection_error_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        webhook = make_webhook()
        assert not await _notifier(handler).notify(webhook, _failed_record(webhook))
