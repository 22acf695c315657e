"""Data models for Hookpost.

Subscriptions:
    - Webhook: endpoint URL, signing secret, event filter, active flag

Events:
    - WebhookEvent: a platform event about to be published
    - WebhookEnvelope: the JSON body transmitted to receivers

Delivery log:
    - DeliveryRecord: one logical delivery and all of its attempts
    - DeliveryResult: explicit success/failure outcome
    - DeliverySummary, DeliveryAggregate, DeliveryStats: read models
"""

from .base import generate_id, generate_secret, mask_secret, utc_now
from .delivery import (
    RESPONSE_MAX_CHARS,
    DeliveryAggregate,
    DeliveryRecord,
    DeliveryResult,
    DeliveryStats,
    DeliveryStatus,
    DeliverySummary,
    EventTypeCounts,
    generate_delivery_id,
)
from .events import (
    DEFAULT_EVENT_TYPES,
    TEST_EVENT_DATA,
    TEST_EVENT_TYPE,
    WebhookEnvelope,
    WebhookEvent,
    event_catalog,
    is_known_event_type,
    register_event_type,
    unknown_event_types,
)
from .webhook import Webhook

__all__ = [
    # Helpers
    "generate_id",
    "generate_secret",
    "mask_secret",
    "utc_now",
    # Events
    "DEFAULT_EVENT_TYPES",
    "TEST_EVENT_DATA",
    "TEST_EVENT_TYPE",
    "WebhookEnvelope",
    "WebhookEvent",
    "event_catalog",
    "is_known_event_type",
    "register_event_type",
    "unknown_event_types",
    # Subscriptions
    "Webhook",
    # Delivery log
    "RESPONSE_MAX_CHARS",
    "DeliveryAggregate",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "DeliverySummary",
    "EventTypeCounts",
    "generate_delivery_id",
]
