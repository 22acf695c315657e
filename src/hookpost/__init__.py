"""Hookpost: signed webhook delivery.

Registers notification endpoints, fans platform events out to them, signs
every delivery with HMAC-SHA256, retries failures with backoff and keeps a
delivery log for audit and failure analytics.

Quick Start:
    from hookpost.service import HookpostService

    async with HookpostService.create() as hookpost:
        webhook = await hookpost.registry.create(
            owner_id="acct_123",
            name="Billing alerts",
            url="https://example.com/hooks",
            events=["credits.low", "credits.depleted"],
        )

        # Returns delivery IDs; delivery happens in the background
        delivery_ids = await hookpost.publish(
            "acct_123", "credits.low", {"balance": 42, "threshold": 100}
        )

Receivers verify deliveries with:
    from hookpost.webhooks import verify_signature

    verify_signature(secret, headers["X-Webhook-Signature"], raw_body)
"""

__version__ = "0.1.0"

# Configuration
from .config import DeliveryPolicy, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    DeliveryStateError,
    HookpostError,
    InvalidSignatureError,
    InvalidURLError,
    MalformedSignatureError,
    NotFoundError,
    StaleSignatureError,
    StorageError,
    UnauthorizedError,
    UnknownEventTypeError,
    VerificationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryAggregate,
    DeliveryRecord,
    DeliveryResult,
    DeliveryStats,
    DeliverySummary,
    Webhook,
    WebhookEnvelope,
    WebhookEvent,
)
from .registry import SubscriptionRegistry
from .service import HookpostService
from .storage import HookpostStorage
from .webhooks import (
    DeliveryExecutor,
    FailureNotifier,
    WebhookDispatcher,
    compute_signature,
    verify_signature,
)

__all__ = [
    "__version__",
    # Configuration
    "DeliveryPolicy",
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "DeliveryError",
    "DeliveryStateError",
    "HookpostError",
    "InvalidSignatureError",
    "InvalidURLError",
    "MalformedSignatureError",
    "NotFoundError",
    "StaleSignatureError",
    "StorageError",
    "UnauthorizedError",
    "UnknownEventTypeError",
    "VerificationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "delivery_context",
    "get_logger",
    "unbind_context",
    # Models
    "DeliveryAggregate",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "DeliverySummary",
    "Webhook",
    "WebhookEnvelope",
    "WebhookEvent",
    # Components
    "DeliveryExecutor",
    "FailureNotifier",
    "HookpostService",
    "HookpostStorage",
    "SubscriptionRegistry",
    "WebhookDispatcher",
    "compute_signature",
    "verify_signature",
]
