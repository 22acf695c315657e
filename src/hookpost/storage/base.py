"""Qdrant plumbing shared by the webhook store and the delivery log.

Qdrant is used as a keyed document store here. A record's ID maps to a
fixed point ID, and every lookup goes through payload filters.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookpost.config import settings

ModelT = TypeVar("ModelT", bound=BaseModel)

# record type -> collection suffix
COLLECTION_NAMES = {
    "webhooks": "webhooks",
    "deliveries": "deliveries",
}

# Nothing is searched by similarity, so all points share one vector
PLACEHOLDER_VECTOR = [1.0]

# Written next to each record for range filters, stripped on read
DERIVED_FIELDS = ("created_at_ts", "day")

SCROLL_PAGE_SIZE = 256

_POINT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "hookpost")

_K = models.PayloadSchemaType.KEYWORD
_PAYLOAD_INDEXES: dict[str, dict[str, models.PayloadSchemaType]] = {
    "webhooks": {"owner_id": _K, "id": _K},
    "deliveries": {
        "owner_id": _K,
        "webhook_id": _K,
        "delivery_id": _K,
        "event_type": _K,
        "status": _K,
        "created_at_ts": models.PayloadSchemaType.FLOAT,
    },
}


class StorageBase:
    """Connection handling and record (de)serialization for Qdrant.

    Pass ``client`` to reuse an existing AsyncQdrantClient, for example an
    in-process ``AsyncQdrantClient(location=":memory:")`` in tests. Otherwise
    one is built from ``url``/``api_key`` (falling back to settings) when
    ``initialize()`` runs.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client: AsyncQdrantClient | None = client

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise RuntimeError("HookpostStorage.initialize() has not been awaited")
        return self._client

    async def initialize(self) -> None:
        """Connect (if needed) and create any missing collections. Safe to repeat."""
        self._client = self._client or AsyncQdrantClient(url=self._url, api_key=self._api_key)
        existing = {c.name for c in (await self._client.get_collections()).collections}
        for record_type in COLLECTION_NAMES:
            name = self._collection_name(record_type)
            if name not in existing:
                await self._create_collection(record_type, name)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()

    async def __aenter__(self) -> StorageBase:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _collection_name(self, record_type: str) -> str:
        return f"{self._prefix}_{COLLECTION_NAMES.get(record_type, record_type)}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Map a record ID (``whk_...``, ``whd_...``) to a stable UUID point ID."""
        return str(uuid.uuid5(_POINT_NAMESPACE, key))

    async def _create_collection(self, record_type: str, name: str) -> None:
        await self.client.create_collection(
            collection_name=name,
            vectors_config=models.VectorParams(
                size=len(PLACEHOLDER_VECTOR), distance=models.Distance.DOT
            ),
        )
        for field_name, schema in _PAYLOAD_INDEXES.get(record_type, {}).items():
            await self.client.create_payload_index(
                collection_name=name, field_name=field_name, field_schema=schema
            )

    def _model_to_payload(self, record: BaseModel) -> dict[str, Any]:
        payload = record.model_dump(mode="json")
        created_at = getattr(record, "created_at", None)
        if isinstance(created_at, datetime):
            payload["created_at_ts"] = created_at.timestamp()
            payload["day"] = created_at.date().isoformat()
        return payload

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        return model_class.model_validate(
            {k: v for k, v in payload.items() if k not in DERIVED_FIELDS}
        )

    async def _upsert(self, record_type: str, key: str, record: BaseModel) -> None:
        """Insert or replace the single point holding ``record``."""
        point = models.PointStruct(
            id=self._key_to_point_id(key),
            vector=PLACEHOLDER_VECTOR,
            payload=self._model_to_payload(record),
        )
        await self.client.upsert(collection_name=self._collection_name(record_type), points=[point])

    async def _retrieve(
        self, record_type: str, key: str, model_class: type[ModelT]
    ) -> ModelT | None:
        points = await self.client.retrieve(
            collection_name=self._collection_name(record_type),
            ids=[self._key_to_point_id(key)],
            with_payload=True,
        )
        payload = points[0].payload if points else None
        return None if payload is None else self._payload_to_model(payload, model_class)

    async def _scroll_all(
        self,
        record_type: str,
        scroll_filter: models.Filter | None,
        model_class: type[ModelT],
    ) -> list[ModelT]:
        """Return every record matching a filter, following scroll pages."""
        collection = self._collection_name(record_type)
        records: list[ModelT] = []
        offset: Any = None

        while True:
            points, offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(
                self._payload_to_model(p.payload, model_class)
                for p in points
                if p.payload is not None
            )
            if offset is None:
                return records

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        """Exact-match filter condition."""
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))
