"""Event catalog, event payloads and the delivery envelope.

The catalog is a versioned contract with receivers: event names are never
repurposed, only added. Platform code may register additional types at
startup with ``register_event_type``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import generate_id, utc_now

# Reserved type used by the test/replay facility. Not subscribable.
TEST_EVENT_TYPE = "test"

DEFAULT_EVENT_TYPES: tuple[str, ...] = (
    "usage.threshold",
    "usage.limit_reached",
    "credits.low",
    "credits.depleted",
    "api_key.created",
    "api_key.deleted",
    "subscription.changed",
)

_catalog: set[str] = set(DEFAULT_EVENT_TYPES)

# Fixed payload sent by test deliveries
TEST_EVENT_DATA: dict[str, Any] = {
    "message": "This is a test webhook delivery",
    "test": True,
}


def event_catalog() -> frozenset[str]:
    """Return the subscribable event types."""
    return frozenset(_catalog)


def is_known_event_type(event_type: str) -> bool:
    """Check whether an event type is in the catalog."""
    return event_type in _catalog


def register_event_type(event_type: str) -> None:
    """Add a platform-defined event type to the catalog.

    Raises:
        ValueError: If the name is empty, not dotted, or reserved.
    """
    if event_type == TEST_EVENT_TYPE:
        raise ValueError(f"{TEST_EVENT_TYPE!r} is reserved")
    if not event_type or "." not in event_type or event_type != event_type.strip():
        raise ValueError(f"Event types use dotted names like 'credits.low', got {event_type!r}")
    _catalog.add(event_type)


def unknown_event_types(event_types: list[str]) -> list[str]:
    """Return the entries of ``event_types`` that are not in the catalog."""
    return [e for e in event_types if e not in _catalog]


class WebhookEvent(BaseModel):
    """A platform event about to be published.

    Attributes:
        id: Unique identifier for this event.
        event: Event type from the catalog (or the reserved test type).
        owner_id: Account whose webhooks receive the event.
        timestamp: When the event occurred.
        data: Event-specific payload data.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    event: str = Field(description="Event type")
    owner_id: str = Field(min_length=1, description="Account that owns the subscriptions")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event occurred")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    @field_validator("event")
    @classmethod
    def _event_in_catalog(cls, value: str) -> str:
        if value != TEST_EVENT_TYPE and not is_known_event_type(value):
            raise ValueError(f"Unknown event type: {value}")
        return value

    @classmethod
    def for_usage_threshold(
        cls, owner_id: str, usage: int, limit: int, percentage: int
    ) -> WebhookEvent:
        """Create event for an account crossing its usage alert threshold."""
        return cls(
            event="usage.threshold",
            owner_id=owner_id,
            data={
                "usage": usage,
                "limit": limit,
                "percentage": percentage,
                "message": f"You have used {percentage}% of your monthly limit.",
            },
        )

    @classmethod
    def for_usage_limit_reached(cls, owner_id: str, usage: int, limit: int) -> WebhookEvent:
        """Create event for an account exhausting its monthly limit."""
        return cls(
            event="usage.limit_reached",
            owner_id=owner_id,
            data={
                "usage": usage,
                "limit": limit,
                "percentage": 100,
                "message": "You have reached your monthly usage limit.",
            },
        )

    @classmethod
    def for_credits_low(cls, owner_id: str, balance: int, threshold: int) -> WebhookEvent:
        """Create event for a credit balance under the low-water mark."""
        return cls(
            event="credits.low",
            owner_id=owner_id,
            data={"balance": balance, "threshold": threshold},
        )

    @classmethod
    def for_credits_depleted(cls, owner_id: str) -> WebhookEvent:
        """Create event for a credit balance reaching zero."""
        return cls(event="credits.depleted", owner_id=owner_id, data={"balance": 0})

    @classmethod
    def for_test(cls, owner_id: str) -> WebhookEvent:
        """Create the synthetic event used by test deliveries."""
        return cls(event=TEST_EVENT_TYPE, owner_id=owner_id, data=dict(TEST_EVENT_DATA))


class WebhookEnvelope(BaseModel):
    """JSON body transmitted to receivers.

    The envelope is serialized exactly once per logical delivery. The
    resulting text is what gets signed and sent on every attempt.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Delivery ID (X-Webhook-Id)")
    event: str = Field(description="Event type")
    timestamp: datetime = Field(description="When the event occurred")
    api_version: str = Field(description="Envelope schema version")
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def for_delivery(
        cls, delivery_id: str, event: WebhookEvent, api_version: str
    ) -> WebhookEnvelope:
        """Wrap an event for one logical delivery."""
        return cls(
            id=delivery_id,
            event=event.event,
            timestamp=event.timestamp,
            api_version=api_version,
            data=event.data,
        )

    def to_body(self) -> str:
        """Serialize to the compact JSON text that will be signed and sent."""
        return self.model_dump_json()


__all__ = [
    "DEFAULT_EVENT_TYPES",
    "TEST_EVENT_DATA",
    "TEST_EVENT_TYPE",
    "WebhookEnvelope",
    "WebhookEvent",
    "event_catalog",
    "is_known_event_type",
    "register_event_type",
    "unknown_event_types",
]
