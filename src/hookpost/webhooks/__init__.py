"""Webhook delivery for Hookpost.

Signed delivery with bounded retry, plus the receiver-side verification
contract.

Example:
    ```python
    from hookpost.webhooks import WebhookDispatcher, verify_signature

    # Sender side
    dispatcher = WebhookDispatcher(storage)
    await dispatcher.publish("acct_123", "usage.threshold", {"percentage": 80})

    # Receiver side
    verify_signature(secret, headers["X-Webhook-Signature"], raw_body)
    ```
"""

from .alerts import FailureNotifier
from .dispatcher import WebhookDispatcher
from .executor import USER_AGENT, DeliveryExecutor
from .signing import (
    DELIVERY_ID_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    build_delivery_headers,
    build_signature_header,
    compute_signature,
)
from .verification import (
    DEFAULT_TOLERANCE_SECONDS,
    is_valid_signature,
    parse_signature_header,
    verify_signature,
)

__all__ = [
    "DEFAULT_TOLERANCE_SECONDS",
    "DELIVERY_ID_HEADER",
    "DeliveryExecutor",
    "EVENT_HEADER",
    "FailureNotifier",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "USER_AGENT",
    "WebhookDispatcher",
    "build_delivery_headers",
    "build_signature_header",
    "compute_signature",
    "is_valid_signature",
    "parse_signature_header",
    "verify_signature",
]
