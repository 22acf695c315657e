"""Shared helpers for Hookpost models."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from uuid import uuid4

# Prefix for generated signing secrets
SECRET_PREFIX = "whsec_"

# 32 random bytes = 256 bits of entropy
SECRET_BYTES = 32


def generate_id(prefix: str, length: int = 12) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
        generate_id("whd", 24) -> "whd_a1b2c3d4e5f6a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:length]}"


def generate_secret() -> str:
    """Generate a webhook signing secret from the OS CSPRNG."""
    return f"{SECRET_PREFIX}{secrets.token_hex(SECRET_BYTES)}"


def mask_secret(secret: str) -> str:
    """Render a secret for display: prefix plus the last four characters."""
    if len(secret) <= len(SECRET_PREFIX) + 4:
        return "****"
    return f"{SECRET_PREFIX}****{secret[-4:]}"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)
