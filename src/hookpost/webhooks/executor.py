"""Delivery executor: signed HTTP attempts with bounded retry.

One call to ``deliver`` owns one DeliveryRecord until it is terminal:

    attempt -> record -> (backoff -> attempt -> record)* -> result

Every attempt is signed fresh with its own timestamp over the record's
stored payload bytes, and every outcome is written to the delivery log.
``deliver`` never raises; failures are returned as a DeliveryResult.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx

from hookpost import __version__
from hookpost.config import DeliveryPolicy
from hookpost.exceptions import DeliveryError
from hookpost.logging import get_logger
from hookpost.models import DeliveryRecord, DeliveryResult, utc_now

from .signing import build_delivery_headers

if TYPE_CHECKING:
    from hookpost.models import Webhook
    from hookpost.storage import HookpostStorage

    from .alerts import FailureNotifier

logger = get_logger(__name__)

USER_AGENT = f"hookpost-webhooks/{__version__}"


class DeliveryExecutor:
    """Performs the attempt sequence of individual deliveries.

    Attempts of one delivery run strictly one after another. Different
    deliveries share nothing but the semaphore that caps how many HTTP
    requests are in flight; it is not held while sleeping between attempts.

    Example:
        ```python
        executor = DeliveryExecutor(storage, policy=DeliveryPolicy(max_attempts=3))
        result = await executor.deliver(webhook, record)
        if not result.success:
            print(result.reason)
        ```
    """

    def __init__(
        self,
        storage: HookpostStorage,
        policy: DeliveryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        notifier: FailureNotifier | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            storage: Delivery log and webhook lookup.
            policy: Retry/timeout policy. Defaults to DeliveryPolicy().
            client: Shared HTTP client. A short-lived client is opened per
                attempt when omitted.
            notifier: Owner alert hook for exhausted deliveries.
            clock: Source of unix time for signature timestamps.
            sleep: Coroutine used for backoff delays.
        """
        self._storage = storage
        self._policy = policy or DeliveryPolicy()
        self._client = client
        self._notifier = notifier
        self._clock = clock
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(self._policy.max_concurrent)

    @property
    def policy(self) -> DeliveryPolicy:
        return self._policy

    async def deliver(self, webhook: Webhook, record: DeliveryRecord) -> DeliveryResult:
        """Run a delivery to completion.

        Before each retry the webhook is re-read so a rotated secret takes
        effect immediately. If the webhook is deleted at any point, before
        a retry or while an attempt is on the wire, the delivery stops and
        leaves nothing in the log: its records went with the webhook.
        """
        log = logger.bind(delivery_id=record.delivery_id, webhook_id=webhook.id)

        try:
            while not record.is_terminal:
                if record.attempts:
                    await self._sleep(self._policy.backoff_for(record.attempts))
                    current = await self._refresh(webhook)
                    if current is None:
                        return self._drop(record, log)
                    webhook = current

                await self._attempt(webhook, record)
                if not await self._save(webhook, record):
                    return self._drop(record, log)
        except Exception as e:
            log.exception("Unexpected delivery error")
            if not record.is_terminal:
                record.abandon(f"Unexpected error: {e}")
                await self._save(webhook, record)

        if record.success:
            log.info(
                "Webhook delivered",
                event_type=record.event_type,
                status_code=record.status_code,
                attempts=record.attempts,
            )
        else:
            log.warning(
                "Webhook delivery failed",
                event_type=record.event_type,
                status_code=record.status_code,
                attempts=record.attempts,
                error=record.error,
            )
            if self._notifier is not None:
                await self._notifier.notify(webhook, record)

        return record.to_result()

    async def _attempt(self, webhook: Webhook, record: DeliveryRecord) -> None:
        """Make one signed attempt and record its outcome on ``record``."""
        try:
            response = await self._send(webhook, record)
        except DeliveryError as error:
            now = utc_now()
            next_attempt_at = None
            if record.attempts + 1 < record.max_attempts:
                delay = self._policy.backoff_for(record.attempts + 1)
                next_attempt_at = now + timedelta(seconds=delay)
            record.record_failure(
                error,
                at=now,
                next_attempt_at=next_attempt_at,
                max_chars=self._policy.response_max_chars,
            )
            logger.info(
                "Webhook attempt failed",
                delivery_id=record.delivery_id,
                attempt=record.attempts,
                max_attempts=record.max_attempts,
                error=error.reason,
                status_code=error.status_code,
            )
        else:
            record.record_success(
                response.status_code,
                response.text,
                max_chars=self._policy.response_max_chars,
            )

    async def _send(self, webhook: Webhook, record: DeliveryRecord) -> httpx.Response:
        """POST the record's payload. Raises DeliveryError unless 2xx."""
        body = record.body
        timestamp = int(self._clock())
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            **build_delivery_headers(
                webhook.secret,
                timestamp,
                body,
                event_type=record.event_type,
                delivery_id=record.delivery_id,
            ),
        }

        try:
            async with self._semaphore:
                response = await self._post(str(webhook.url), body, headers)
        except httpx.TimeoutException as e:
            raise DeliveryError("Request timeout") from e
        except httpx.RequestError as e:
            raise DeliveryError(f"Connection error: {e}") from e

        if 200 <= response.status_code < 300:
            return response

        text = response.text or None
        raise DeliveryError(
            f"HTTP {response.status_code}",
            status_code=response.status_code,
            response=text,
        )

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> httpx.Response:
        timeout = self._policy.timeout_seconds
        if self._client is not None:
            return await self._client.post(url, content=body, headers=headers, timeout=timeout)

        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def _refresh(self, webhook: Webhook) -> Webhook | None:
        """Re-read the webhook; keep the known copy if the store is unreachable."""
        try:
            return await self._storage.get_webhook(webhook.id)
        except Exception:
            logger.warning(
                "Could not refresh webhook, using cached copy",
                webhook_id=webhook.id,
                exc_info=True,
            )
            return webhook

    async def _save(self, webhook: Webhook, record: DeliveryRecord) -> bool:
        """Write the record unless its webhook is gone. False if it is gone.

        A cascade delete can run between the existence check and the write,
        so the webhook is checked again afterwards and any record written
        for a deleted webhook is removed.
        """
        try:
            if await self._refresh(webhook) is None:
                return False
            await self._storage.upsert_delivery(record)
            if await self._refresh(webhook) is None:
                await self._storage.delete_deliveries_for_webhook(webhook.id)
                return False
        except Exception:
            logger.exception(
                "Failed to write delivery record",
                delivery_id=record.delivery_id,
                attempts=record.attempts,
            )
        return True

    @staticmethod
    def _drop(record: DeliveryRecord, log: Any) -> DeliveryResult:
        log.info("Webhook deleted, dropping delivery", attempts=record.attempts)
        if not record.is_terminal:
            record.abandon("Webhook deleted")
        return record.to_result()
