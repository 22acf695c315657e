"""Delivery log records and analytics read models.

A DeliveryRecord is one logical notification of one event to one webhook,
including every retry. ``delivery_id`` is the receiver's idempotency key
and never changes across attempts.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from hookpost.exceptions import DeliveryError, DeliveryStateError

from .base import generate_id, utc_now

DeliveryStatus = Literal["pending", "retrying", "success", "failed"]

# Default truncation for stored response bodies
RESPONSE_MAX_CHARS = 1000


def generate_delivery_id() -> str:
    """Generate a delivery ID (24 hex chars of randomness)."""
    return generate_id("whd", 24)


class DeliveryResult(BaseModel):
    """Outcome of one logical delivery, returned through the pipeline."""

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    webhook_id: str
    success: bool
    attempts: int = Field(ge=0)
    status_code: int | None = None
    reason: str | None = Field(default=None, description="Failure reason, None on success")


class DeliveryRecord(BaseModel):
    """Persistent state of one logical delivery.

    Attributes:
        delivery_id: Idempotency key sent as X-Webhook-Id.
        webhook_id: Owning webhook. Deleting it deletes this record.
        owner_id: Account that owns the webhook.
        event_type: Event type being delivered.
        payload: Exact JSON text signed and transmitted. Immutable.
        attempts: Attempts made so far.
        max_attempts: Attempt budget captured when the record was created.
        status: pending, retrying, success or failed.
        status_code: HTTP status of the most recent response, if any.
        response: Truncated body of the most recent response, if any.
        error: Reason for the most recent failure.
        success: True once an attempt returned 2xx.
        created_at: When the record was created at fan-out.
        last_attempt_at: When the most recent attempt finished.
        next_attempt_at: When the next retry is due.
    """

    model_config = ConfigDict(extra="forbid")

    delivery_id: str = Field(default_factory=generate_delivery_id)
    webhook_id: str
    owner_id: str
    event_type: str
    payload: str = Field(description="Raw JSON body, byte-identical across attempts")
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=4, ge=1)
    status: DeliveryStatus = "pending"
    status_code: int | None = None
    response: str | None = None
    error: str | None = None
    success: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """True once the record succeeded, exhausted its attempts or was abandoned."""
        return self.success or self.status == "failed" or self.attempts >= self.max_attempts

    @property
    def body(self) -> bytes:
        """Payload as the bytes placed on the wire."""
        return self.payload.encode("utf-8")

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise DeliveryStateError(
                f"Delivery {self.delivery_id} is terminal after {self.attempts} attempts"
            )

    def record_success(
        self,
        status_code: int,
        response: str | None = None,
        at: datetime | None = None,
        max_chars: int = RESPONSE_MAX_CHARS,
    ) -> "DeliveryRecord":
        """Record a 2xx attempt. The record becomes terminal."""
        self._ensure_open()
        self.attempts += 1
        self.success = True
        self.status = "success"
        self.status_code = status_code
        self.response = response[:max_chars] if response else None
        self.error = None
        self.last_attempt_at = at or utc_now()
        self.next_attempt_at = None
        return self

    def record_failure(
        self,
        error: DeliveryError,
        at: datetime | None = None,
        next_attempt_at: datetime | None = None,
        max_chars: int = RESPONSE_MAX_CHARS,
    ) -> "DeliveryRecord":
        """Record a failed attempt.

        ``status_code`` and ``response`` keep the last observed response:
        a timeout after an earlier 500 still reports 500.
        """
        self._ensure_open()
        self.attempts += 1
        self.error = error.reason
        if error.status_code is not None:
            self.status_code = error.status_code
            self.response = error.response[:max_chars] if error.response else None
        self.last_attempt_at = at or utc_now()
        if self.attempts >= self.max_attempts:
            self.status = "failed"
            self.next_attempt_at = None
        else:
            self.status = "retrying"
            self.next_attempt_at = next_attempt_at
        return self

    def abandon(self, reason: str, at: datetime | None = None) -> "DeliveryRecord":
        """Mark the record failed without another attempt.

        Used when an unexpected error stops the attempt loop. ``attempts``
        keeps the number actually made.
        """
        self._ensure_open()
        self.status = "failed"
        self.error = reason
        self.last_attempt_at = at or utc_now()
        self.next_attempt_at = None
        return self

    def to_result(self) -> DeliveryResult:
        """Summarize the record as an explicit success/failure result."""
        return DeliveryResult(
            delivery_id=self.delivery_id,
            webhook_id=self.webhook_id,
            success=self.success,
            attempts=self.attempts,
            status_code=self.status_code,
            reason=None if self.success else (self.error or "not delivered"),
        )


class DeliverySummary(BaseModel):
    """Row returned by the delivery log read API."""

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    event_type: str
    status_code: int | None
    attempts: int
    success: bool
    created_at: datetime

    @classmethod
    def from_record(cls, record: DeliveryRecord) -> "DeliverySummary":
        return cls(
            delivery_id=record.delivery_id,
            event_type=record.event_type,
            status_code=record.status_code,
            attempts=record.attempts,
            success=record.success,
            created_at=record.created_at,
        )


class DeliveryAggregate(BaseModel):
    """Failure analytics row keyed by (webhook, event type, status, day)."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    event_type: str
    status_code: int | None
    day: date
    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


class EventTypeCounts(BaseModel):
    """Per-event-type counters inside DeliveryStats."""

    total: int = 0
    success: int = 0
    failed: int = 0


class DeliveryStats(BaseModel):
    """Summary of an owner's deliveries over a window."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str
    since: datetime | None = None
    total_sent: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: int = Field(default=100, ge=0, le=100, description="Percent, 100 when empty")
    by_event_type: dict[str, EventTypeCounts] = Field(default_factory=dict)


__all__ = [
    "DeliveryAggregate",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "DeliverySummary",
    "EventTypeCounts",
    "RESPONSE_MAX_CHARS",
    "generate_delivery_id",
]
