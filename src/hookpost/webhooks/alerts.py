"""Owner alerts for exhausted deliveries.

A failing endpoint must not trigger a retry storm of its own, so the
alert is a single best-effort POST with a short timeout. Errors are
logged and dropped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from hookpost.logging import get_logger

if TYPE_CHECKING:
    from hookpost.models import DeliveryRecord, Webhook

logger = get_logger(__name__)

ALERT_TYPE = "webhook.delivery_failed"


class FailureNotifier:
    """Posts one alert per exhausted delivery to an owner-facing endpoint."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._client = client

    @staticmethod
    def build_alert(webhook: Webhook, record: DeliveryRecord) -> dict[str, Any]:
        """Alert body. Never includes the webhook secret or the payload."""
        return {
            "type": ALERT_TYPE,
            "owner_id": webhook.owner_id,
            "webhook_id": webhook.id,
            "webhook_name": webhook.name,
            "url": str(webhook.url),
            "delivery_id": record.delivery_id,
            "event_type": record.event_type,
            "attempts": record.attempts,
            "status_code": record.status_code,
            "error": record.error,
            "failed_at": record.last_attempt_at.isoformat() if record.last_attempt_at else None,
        }

    async def notify(self, webhook: Webhook, record: DeliveryRecord) -> bool:
        """Send the alert once.

        Returns:
            True if the alert endpoint answered 2xx.
        """
        alert = self.build_alert(webhook, record)
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=alert, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=alert)
        except httpx.HTTPError as e:
            logger.warning(
                "Failure alert not sent",
                delivery_id=record.delivery_id,
                error=str(e),
            )
            return False

        if not response.is_success:
            logger.warning(
                "Failure alert rejected",
                delivery_id=record.delivery_id,
                status_code=response.status_code,
            )
            return False
        return True
