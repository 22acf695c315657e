"""Configuration management for Hookpost."""

import logging
import warnings
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class DeliveryPolicy(BaseModel):
    """Retry and timeout policy applied to every delivery.

    The backoff schedule is indexed by the number of failed attempts so far:
    after the first failure the executor waits ``backoff_seconds[0]``, after
    the second ``backoff_seconds[1]`` and so on. When attempts outnumber the
    schedule the last entry repeats.

    Worst-case latency of one delivery is bounded by
    ``max_attempts * (timeout_seconds + max(backoff_seconds))``.

    Attributes:
        max_attempts: Total attempts per logical delivery (4 default).
        backoff_seconds: Delays between attempts (1s, 5s, 25s default).
        timeout_seconds: Per-attempt HTTP timeout (10s default).
        max_concurrent: Maximum attempts in flight at once (10 default).
        ordered_per_webhook: Start deliveries to one webhook in publish order.
        response_max_chars: Truncation length for stored response bodies.
    """

    max_attempts: int = Field(default=4, ge=1, le=20, description="Attempts per delivery")
    backoff_seconds: list[float] = Field(
        default_factory=lambda: [1.0, 5.0, 25.0],
        min_length=1,
        description="Delay before each retry (last value repeats)",
    )
    timeout_seconds: float = Field(
        default=10.0, gt=0.0, le=120.0, description="Per-attempt HTTP timeout"
    )
    max_concurrent: int = Field(default=10, ge=1, description="Concurrent attempts")
    ordered_per_webhook: bool = Field(
        default=False,
        description="Serialize deliveries to the same webhook in publish order",
    )
    response_max_chars: int = Field(
        default=1000, ge=0, description="Truncate stored response bodies to this length"
    )

    @field_validator("backoff_seconds")
    @classmethod
    def _backoff_non_negative(cls, value: list[float]) -> list[float]:
        if any(delay < 0 for delay in value):
            raise ValueError("backoff_seconds must not contain negative delays")
        return value

    def backoff_for(self, failed_attempts: int) -> float:
        """Delay to wait after ``failed_attempts`` failures (1-based)."""
        index = min(max(failed_attempts, 1), len(self.backoff_seconds)) - 1
        return self.backoff_seconds[index]

    @property
    def worst_case_seconds(self) -> float:
        """Upper bound on the wall-clock duration of one delivery."""
        return self.max_attempts * (self.timeout_seconds + max(self.backoff_seconds))


class Settings(BaseSettings):
    """Hookpost configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKPOST_ prefix. For example:
        HOOKPOST_QDRANT_URL=http://localhost:6333
        HOOKPOST_DELIVERY__MAX_ATTEMPTS=6
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookpost",
        description="Prefix for Qdrant collection names",
    )

    # Delivery
    delivery: DeliveryPolicy = Field(
        default_factory=DeliveryPolicy,
        description="Retry and timeout policy for outbound deliveries",
    )
    replay_tolerance_seconds: int = Field(
        default=300,
        ge=1,
        description="Maximum signature age accepted by verification",
    )
    api_version: str = Field(
        default="2024-01-01",
        description="Envelope api_version sent with every delivery",
    )

    # Owner alerts for exhausted deliveries
    failure_alert_url: str | None = Field(
        default=None,
        description="Endpoint notified once when a delivery exhausts its attempts",
    )
    failure_alert_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout for the single failure alert request",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # CORS
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins. Use ['*'] for permissive mode (dev only).",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )
    cors_max_age: int = Field(
        default=600,
        ge=0,
        le=86400,
        description="Max age (seconds) for CORS preflight cache",
    )

    model_config = {
        "env_prefix": "HOOKPOST_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_alert_settings(self) -> "Settings":
        """Validate the owner alert endpoint.

        The alert carries delivery metadata, so production requires https.
        Elsewhere a plain http URL only produces a warning.
        """
        url = self.failure_alert_url
        if url is None or url.startswith("https://"):
            return self

        if self.env == "production":
            raise ValueError(
                f"HOOKPOST_FAILURE_ALERT_URL must use https in production (got {url!r})"
            )

        warnings.warn(
            f"failure_alert_url {url!r} is not https; allowed outside production only.",
            UserWarning,
            stacklevel=2,
        )
        logger.warning("Non-https failure alert URL configured: %s", url)
        return self


# Global settings instance
settings = Settings()
