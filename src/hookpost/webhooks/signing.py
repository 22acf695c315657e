"""HMAC-SHA256 request signing.

The signed message is ``"{timestamp}.{raw_body}"`` and the header value is
``"t={timestamp},v1={hex_signature}"``. The body must be the exact bytes
placed on the wire: signing a dict and sending a re-serialized copy breaks
verification, so these functions accept only ``str``/``bytes``.
"""

from __future__ import annotations

import hashlib
import hmac

# Outbound header names
SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Id"

# Version tag of the current signature scheme
SIGNATURE_SCHEME = "v1"


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def signed_payload(timestamp: int, body: str | bytes) -> bytes:
    """Build the message that gets signed: ``b"{timestamp}." + body``."""
    return str(int(timestamp)).encode("ascii") + b"." + _to_bytes(body)


def compute_signature(secret: str, timestamp: int, body: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 of ``"{timestamp}.{body}"``.

    Args:
        secret: Shared webhook secret.
        timestamp: Unix seconds included in the signed message.
        body: Raw request body exactly as transmitted.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=signed_payload(timestamp, body),
        digestmod=hashlib.sha256,
    ).hexdigest()


def build_signature_header(secret: str, timestamp: int, body: str | bytes) -> str:
    """Build the ``X-Webhook-Signature`` header value.

    Example:
        ```python
        build_signature_header("whsec_abc", 1700000000, b'{"event":"credits.low"}')
        # 't=1700000000,v1=<64 hex chars>'
        ```
    """
    signature = compute_signature(secret, timestamp, body)
    return f"t={int(timestamp)},{SIGNATURE_SCHEME}={signature}"


def build_delivery_headers(
    secret: str,
    timestamp: int,
    body: str | bytes,
    event_type: str,
    delivery_id: str,
) -> dict[str, str]:
    """All signature-related headers for one attempt."""
    return {
        SIGNATURE_HEADER: build_signature_header(secret, timestamp, body),
        TIMESTAMP_HEADER: str(int(timestamp)),
        EVENT_HEADER: event_type,
        DELIVERY_ID_HEADER: delivery_id,
    }
