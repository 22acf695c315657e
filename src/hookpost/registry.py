"""Subscription registry: owner-scoped CRUD over webhooks.

All validation and ownership checks happen here, synchronously, and
surface as ConfigurationError subclasses. The registry never returns a
webhook owned by someone other than the caller.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from pydantic import ValidationError as PydanticValidationError

from hookpost.exceptions import (
    ConfigurationError,
    HookpostError,
    InvalidURLError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    UnknownEventTypeError,
)
from hookpost.models import Webhook, generate_secret, unknown_event_types, utc_now

if TYPE_CHECKING:
    from hookpost.storage import HookpostStorage

logger = logging.getLogger(__name__)


def validate_url(url: str) -> str:
    """Check that ``url`` is an absolute https URL with a host.

    Raises:
        InvalidURLError: On any other scheme, a missing host, or embedded
            credentials.
    """
    parts = urlsplit(url.strip()) if isinstance(url, str) else None
    if parts is None or parts.scheme.lower() != "https":
        raise InvalidURLError(str(url))
    if not parts.hostname:
        raise InvalidURLError(url, "missing host")
    if parts.username or parts.password:
        raise InvalidURLError(url, "credentials are not allowed in webhook URLs")
    return url.strip()


def validate_events(events: list[str]) -> list[str]:
    """Check that ``events`` is a non-empty subset of the catalog.

    Raises:
        UnknownEventTypeError: If empty or containing unknown types.
    """
    if not events:
        raise UnknownEventTypeError([], "At least one event type is required")
    unknown = unknown_event_types(list(events))
    if unknown:
        raise UnknownEventTypeError(unknown)
    return list(dict.fromkeys(events))


@asynccontextmanager
async def _storage_errors(action: str) -> AsyncIterator[None]:
    """Translate unexpected store failures into StorageError."""
    try:
        yield
    except HookpostError:
        raise
    except Exception as e:
        logger.exception("Storage failure during %s", action)
        raise StorageError(f"Failed to {action}: {e}") from e


class SubscriptionRegistry:
    """Owner-scoped webhook CRUD.

    Example:
        ```python
        registry = SubscriptionRegistry(storage)
        webhook = await registry.create(
            "acct_123", "Billing alerts", "https://example.com/hooks", ["credits.low"]
        )
        print(webhook.secret)  # shown once; listings mask it
        ```
    """

    def __init__(self, storage: HookpostStorage) -> None:
        self._storage = storage

    async def create(
        self,
        owner_id: str,
        name: str,
        url: str,
        events: list[str],
    ) -> Webhook:
        """Register a webhook with a freshly generated secret.

        Raises:
            InvalidURLError: URL is not https.
            UnknownEventTypeError: Events empty or outside the catalog.
        """
        url = validate_url(url)
        events = validate_events(events)

        try:
            webhook = Webhook(owner_id=owner_id, name=name, url=url, events=events)
        except PydanticValidationError as e:
            raise _config_error(e, url) from e

        async with _storage_errors("create webhook"):
            await self._storage.store_webhook(webhook)

        logger.info("Webhook created: %s for owner %s", webhook.id, owner_id)
        return webhook

    async def get(self, webhook_id: str, owner_id: str) -> Webhook:
        """Fetch a webhook the caller owns.

        Raises:
            NotFoundError: No webhook with this ID.
            UnauthorizedError: The webhook belongs to another owner.
        """
        async with _storage_errors("load webhook"):
            webhook = await self._storage.get_webhook(webhook_id)

        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        if webhook.owner_id != owner_id:
            raise UnauthorizedError("webhook", webhook_id, owner_id)
        return webhook

    async def update(
        self,
        webhook_id: str,
        owner_id: str,
        *,
        name: str | None = None,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> Webhook:
        """Partially update a webhook. The secret is never touched.

        Raises:
            NotFoundError, UnauthorizedError: As for ``get``.
            InvalidURLError, UnknownEventTypeError: As for ``create``.
        """
        webhook = await self.get(webhook_id, owner_id)

        updates: dict[str, object] = {}
        if name is not None:
            updates["name"] = name
        if url is not None:
            updates["url"] = validate_url(url)
        if events is not None:
            updates["events"] = validate_events(events)
        if active is not None:
            updates["active"] = active

        if not updates:
            return webhook

        updates["updated_at"] = utc_now()
        try:
            updated = Webhook.model_validate({**webhook.model_dump(), **updates})
        except PydanticValidationError as e:
            raise _config_error(e, str(url or webhook.url)) from e

        stored = await self._write_fields(webhook_id, updated, set(updates), "update webhook")
        logger.info("Webhook updated: %s fields=%s", webhook_id, sorted(updates))
        return stored

    async def rotate_secret(self, webhook_id: str, owner_id: str) -> Webhook:
        """Replace the signing secret.

        Only ``secret`` and ``updated_at`` are written, so an ``update``
        running at the same time cannot bring the old secret back. Every
        attempt signed after this returns uses the new secret; attempts
        already on the wire keep their old signature.
        """
        webhook = await self.get(webhook_id, owner_id)
        rotated = webhook.model_copy(update={"secret": generate_secret(), "updated_at": utc_now()})

        stored = await self._write_fields(
            webhook_id, rotated, {"secret", "updated_at"}, "rotate secret"
        )
        logger.info("Webhook secret rotated: %s", webhook_id)
        return stored

    async def _write_fields(
        self, webhook_id: str, changed: Webhook, fields: set[str], action: str
    ) -> Webhook:
        """Persist ``fields`` of ``changed`` and return the webhook as now stored."""
        async with _storage_errors(action):
            stored = await self._storage.update_webhook_fields(
                webhook_id, changed.model_dump(mode="json", include=fields)
            )
        if stored is None:
            raise NotFoundError("webhook", webhook_id)
        return stored

    async def delete(self, webhook_id: str, owner_id: str) -> int:
        """Delete a webhook and its delivery records.

        Returns:
            Number of delivery records removed with it.
        """
        await self.get(webhook_id, owner_id)

        async with _storage_errors("delete webhook"):
            removed = await self._storage.delete_webhook(webhook_id)

        logger.info("Webhook deleted: %s (%d delivery records)", webhook_id, removed)
        return removed

    async def list_webhooks(self, owner_id: str) -> list[Webhook]:
        """All of an owner's webhooks, newest first."""
        async with _storage_errors("list webhooks"):
            return await self._storage.list_webhooks(owner_id)


def _config_error(error: PydanticValidationError, url: str) -> ConfigurationError:
    """Map a model validation failure onto the registry's error types."""
    errors = error.errors()
    if not errors:
        return ConfigurationError(str(error))
    first = errors[0]
    if first["loc"] and first["loc"][0] == "url":
        return InvalidURLError(url, str(first["msg"]))
    field = ".".join(str(part) for part in first["loc"]) or "webhook"
    return ConfigurationError(f"{field}: {first['msg']}")
