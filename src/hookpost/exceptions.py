"""Hookpost exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookpostError for easy catching.

Three families matter to callers:

- ConfigurationError: raised synchronously by registry operations.
- DeliveryError: carries a failed delivery attempt inside the executor.
  It never escapes ``publish`` or ``deliver``.
- VerificationError: raised by the receiver-side verification helpers.
"""

from __future__ import annotations


class HookpostError(Exception):
    """Base exception for all Hookpost errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookpost_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ConfigurationError(HookpostError):
    """Invalid webhook configuration or registry request."""

    code: str = "configuration_error"


class InvalidURLError(ConfigurationError):
    """Webhook URL is not an absolute https URL.

    Attributes:
        url: The rejected URL.
    """

    code: str = "invalid_url"

    def __init__(self, url: str, reason: str = "must be an absolute https URL") -> None:
        self.url = url
        super().__init__(f"Invalid webhook URL {url!r}: {reason}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "url": self.url,
                "message": self.message,
            }
        }


class UnknownEventTypeError(ConfigurationError):
    """Event types outside the catalog (or an empty subscription).

    Attributes:
        event_types: The offending event type names.
    """

    code: str = "unknown_event_type"

    def __init__(self, event_types: list[str], message: str | None = None) -> None:
        self.event_types = list(event_types)
        super().__init__(message or f"Unknown event types: {', '.join(self.event_types)}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "event_types": self.event_types,
                "message": self.message,
            }
        }


class NotFoundError(ConfigurationError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class UnauthorizedError(ConfigurationError):
    """Caller does not own the resource."""

    code: str = "unauthorized"

    def __init__(self, resource_type: str, resource_id: str, owner_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.owner_id = owner_id
        super().__init__(f"{resource_type} {resource_id} is not owned by {owner_id}")


class StorageError(HookpostError):
    """Storage operation failed."""

    code: str = "storage_error"


class DeliveryError(HookpostError):
    """A single delivery attempt failed.

    Attributes:
        reason: Short description (timeout, connection error, HTTP status).
        status_code: HTTP status if a response was received.
        response: Truncated response body if a response was received.
    """

    code: str = "delivery_error"

    def __init__(
        self,
        reason: str,
        status_code: int | None = None,
        response: str | None = None,
    ) -> None:
        self.reason = reason
        self.status_code = status_code
        self.response = response
        super().__init__(reason)


class DeliveryStateError(HookpostError):
    """Attempted to mutate a terminal delivery record."""

    code: str = "delivery_state_error"


class VerificationError(HookpostError):
    """Base class for receiver-side signature verification failures."""

    code: str = "verification_error"


class MalformedSignatureError(VerificationError):
    """Signature header is missing its timestamp or v1 component."""

    code: str = "malformed_signature"


class StaleSignatureError(VerificationError):
    """Signature timestamp is outside the replay window.

    Attributes:
        age_seconds: Absolute distance between now and the signed timestamp.
        tolerance_seconds: The replay window that was applied.
    """

    code: str = "stale_signature"

    def __init__(self, age_seconds: int, tolerance_seconds: int) -> None:
        self.age_seconds = age_seconds
        self.tolerance_seconds = tolerance_seconds
        super().__init__(
            f"Timestamp outside tolerance window ({age_seconds}s > {tolerance_seconds}s)"
        )

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "age_seconds": self.age_seconds,
                "tolerance_seconds": self.tolerance_seconds,
                "message": self.message,
            }
        }


class InvalidSignatureError(VerificationError):
    """Signature does not match the expected HMAC."""

    code: str = "invalid_signature"
