"""Structured logging for Hookpost.

structlog renders JSON in production and a colored console in development.
Two things are specific to webhook delivery:

- Secrets never reach a log line. ``redact_secrets`` masks known secret
  keys and any string value that looks like a signing secret.
- Every line emitted while a delivery runs carries its ``delivery_id``,
  ``webhook_id`` and ``event_type`` (see ``delivery_context``).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

from hookpost.models.base import SECRET_PREFIX, mask_secret

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False

REDACTED_KEYS = frozenset({"secret", "webhook_secret", "signature", "authorization"})

# httpx logs one INFO line per request, URL included
_NOISY_LOGGERS = ("httpx", "httpcore")

DELIVERY_CONTEXT_KEYS = ("delivery_id", "webhook_id", "event_type")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor that masks secret material.

    Keys in REDACTED_KEYS are replaced outright. Other string values that
    contain a ``whsec_`` token are masked down to its last four characters.
    """
    for key, value in event_dict.items():
        if key in REDACTED_KEYS:
            event_dict[key] = "***"
        elif isinstance(value, str) and SECRET_PREFIX in value:
            event_dict[key] = " ".join(
                mask_secret(word) if word.startswith(SECRET_PREFIX) else word
                for word in value.split(" ")
            )
    return event_dict


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for Hookpost.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for development.

    Example:
        ```python
        from hookpost.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        get_logger(__name__).info("Dispatcher started", max_concurrent=10)
        ```
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if format.lower() == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind key-values to every subsequent log line in this context.

    Context lives in contextvars, so an asyncio task sees the bindings made
    before it was created, plus its own.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def delivery_context(delivery_id: str, webhook_id: str, event_type: str) -> Iterator[None]:
    """Tag log lines with one delivery's identifiers for the block's duration.

    Example:
        ```python
        with delivery_context(record.delivery_id, webhook.id, record.event_type):
            logger.info("Attempt sent")  # includes all three ids
        ```
    """
    bind_context(delivery_id=delivery_id, webhook_id=webhook_id, event_type=event_type)
    try:
        yield
    finally:
        unbind_context(*DELIVERY_CONTEXT_KEYS)


logger = get_logger("hookpost")
