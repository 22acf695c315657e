"""Receiver-side signature verification.

This is the contract receivers implement to accept a delivery. Hookpost
never runs it on its own deliveries; it ships here as the reference
implementation and backs the ``/webhooks/verify`` debugging endpoint.

Example:
    ```python
    from hookpost.webhooks import verify_signature

    verify_signature(
        secret=WEBHOOK_SECRET,
        header=request.headers["X-Webhook-Signature"],
        body=await request.body(),
    )
    ```
"""

from __future__ import annotations

import hmac
import time

from hookpost.exceptions import (
    InvalidSignatureError,
    MalformedSignatureError,
    StaleSignatureError,
    VerificationError,
)

from .signing import SIGNATURE_SCHEME, compute_signature

DEFAULT_TOLERANCE_SECONDS = 300


def parse_signature_header(header: str) -> tuple[int, str]:
    """Split ``t=<ts>,v1=<hex>`` into its timestamp and signature.

    Unknown components are ignored so the scheme can grow new versions.

    Raises:
        MalformedSignatureError: If ``t`` or ``v1`` is missing, or ``t``
            is not an integer.
    """
    timestamp = ""
    signature = ""
    for part in (header or "").split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == SIGNATURE_SCHEME:
            signature = value

    if not timestamp or not signature:
        raise MalformedSignatureError(
            "Invalid signature header format. Expected: t={timestamp},v1={signature}"
        )
    try:
        return int(timestamp), signature
    except ValueError as e:
        raise MalformedSignatureError(f"Invalid timestamp in signature header: {timestamp!r}") from e


def verify_signature(
    secret: str,
    header: str,
    body: str | bytes,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> int:
    """Verify a delivery's signature header against its raw body.

    Args:
        secret: Shared webhook secret.
        header: ``X-Webhook-Signature`` value.
        body: Raw request body as received.
        tolerance_seconds: Replay window.
        now: Current unix time (defaults to the system clock).

    Returns:
        The verified signature timestamp.

    Raises:
        MalformedSignatureError: Header cannot be parsed.
        StaleSignatureError: Timestamp outside the replay window.
        InvalidSignatureError: Signature does not match.
    """
    timestamp, signature = parse_signature_header(header)

    current = int(time.time()) if now is None else int(now)
    age = abs(current - timestamp)
    if age > tolerance_seconds:
        raise StaleSignatureError(age_seconds=age, tolerance_seconds=tolerance_seconds)

    expected = compute_signature(secret, timestamp, body)
    # Compare bytes: compare_digest rejects non-ASCII str input
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise InvalidSignatureError("Signature does not match the expected value")

    return timestamp


def is_valid_signature(
    secret: str,
    header: str,
    body: str | bytes,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> bool:
    """Boolean form of ``verify_signature``."""
    try:
        verify_signature(secret, header, body, tolerance_seconds=tolerance_seconds, now=now)
    except VerificationError:
        return False
    return True
