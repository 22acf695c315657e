"""Retry policy for calls into Qdrant.

Only the storage layer uses this. Retrying a webhook delivery is the
executor's job and follows the configured DeliveryPolicy instead.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STORAGE_ATTEMPTS = 3


def is_transient(exc: BaseException) -> bool:
    """True for connection failures, timeouts, 429 and 5xx responses."""
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def _warn_before_sleep(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Qdrant call %s failed (attempt %d/%d), retrying in %.1fs: %s",
        getattr(state.fn, "__qualname__", "<unknown>"),
        state.attempt_number,
        STORAGE_ATTEMPTS,
        state.next_action.sleep if state.next_action else 0.0,
        exc,
    )


qdrant_retry = retry(
    retry=retry_if_exception(is_transient),
    stop=stop_after_attempt(STORAGE_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
    before_sleep=_warn_before_sleep,
    reraise=True,
)
