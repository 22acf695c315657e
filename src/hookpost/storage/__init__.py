"""Storage backends for Hookpost.

Persists webhooks and delivery records to Qdrant, one point per record.

Example:
    ```python
    from hookpost.storage import HookpostStorage

    async with HookpostStorage() as storage:
        webhooks = await storage.list_webhooks("acct_123")
    ```
"""

from .base import COLLECTION_NAMES
from .client import HookpostStorage

__all__ = [
    "COLLECTION_NAMES",
    "HookpostStorage",
]
