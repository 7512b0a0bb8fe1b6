"""Pinecone implementation of the vector-store abstraction.

Serverless Pinecone indexes support neither delete-by-metadata nor
filtered index stats, so on those indexes :attr:`supports_filtered_delete`
is ``False`` and counts are estimated with a filtered probe query.  Pod
indexes use the native APIs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pinecone import Pinecone, ServerlessSpec

from deepsearch_rag.config import settings
from deepsearch_rag.errors import ConfigurationError
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import IndexedVector, MetadataFilter

logger = logging.getLogger(__name__)

MAX_TOP_K = 10_000
DELETE_BATCH = 1_000


def _build_pinecone_filter(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Pinecone filter syntax."""
    if not filters:
        return None
    clauses = [{f.field: {f"${f.operator}": f.value}} for f in filters]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK response object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class PineconeVectorStore(VectorStoreBase):
    """Pinecone-backed vector store.

    Parameters
    ----------
    index_name:
        Pinecone index name; created (cosine, serverless) if missing.
    dimension:
        Embedding dimension ``D``.
    api_key:
        Pinecone API key.
    cloud / region:
        Serverless placement used when the index has to be created.
    client:
        Pre-built ``Pinecone`` client (tests).
    """

    def __init__(
        self,
        index_name: str = settings.pinecone_index_name,
        *,
        dimension: int = settings.embedding_dimension,
        api_key: str = settings.pinecone_api_key,
        cloud: str = settings.pinecone_cloud,
        region: str = settings.pinecone_region,
        client: Any = None,
    ) -> None:
        super().__init__(index_name, dimension)
        self._api_key = api_key
        self._cloud = cloud
        self._region = region
        self._client = client
        self._index: Any = None
        self.supports_filtered_delete = False

    # -- lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        if self._index is not None:
            return
        self._index = await asyncio.to_thread(self._open_index)
        logger.info(
            "Connected to Pinecone index %r (filtered delete: %s)",
            self.collection_name,
            self.supports_filtered_delete,
        )

    def _open_index(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("PINECONE_API_KEY must be set to use the Pinecone backend")
            self._client = Pinecone(api_key=self._api_key)

        if self.collection_name not in self._client.list_indexes().names():
            logger.info("Pinecone index %r does not exist; creating it", self.collection_name)
            self._client.create_index(
                name=self.collection_name,
                dimension=self.dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud=self._cloud, region=self._region),
            )

        description = self._client.describe_index(self.collection_name)
        self.check_dimension(_field(description, "dimension"))
        spec = _field(description, "spec")
        self.supports_filtered_delete = _field(spec, "pod") is not None
        return self._client.Index(self.collection_name)

    async def close(self) -> None:
        self._index = None

    @property
    def index(self) -> Any:
        if self._index is None:
            raise RuntimeError("PineconeVectorStore is not connected; call connect() first")
        return self._index

    # -- VectorStoreBase overrides --------------------------------------------

    async def upsert(self, vectors: list[IndexedVector]) -> None:
        if not vectors:
            return
        payload = [{"id": v.id, "values": v.values, "metadata": v.metadata.to_index()} for v in vectors]
        await asyncio.to_thread(self.index.upsert, vectors=payload)

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        response = await asyncio.to_thread(
            self.index.query,
            vector=query_embedding,
            top_k=min(k, MAX_TOP_K),
            include_metadata=True,
            include_values=False,
            filter=_build_pinecone_filter(filters or []),
        )
        hits: list[dict[str, Any]] = []
        for match in _field(response, "matches") or []:
            meta = dict(_field(match, "metadata") or {})
            hits.append(
                {
                    "id": _field(match, "id"),
                    "content": meta.get("text", ""),
                    "score": float(_field(match, "score") or 0.0),
                    "metadata": meta,
                }
            )
        return hits

    async def count(self, filters: list[MetadataFilter]) -> int:
        if not self.supports_filtered_delete:
            # Serverless: no filtered stats, estimate with a probe.
            return len(await self.probe_ids(filters, limit=MAX_TOP_K))
        stats = await asyncio.to_thread(
            self.index.describe_index_stats,
            filter=_build_pinecone_filter(filters),
        )
        return int(_field(stats, "total_vector_count") or 0)

    async def delete(self, ids: list[str]) -> None:
        for start in range(0, len(ids), DELETE_BATCH):
            await asyncio.to_thread(self.index.delete, ids=ids[start : start + DELETE_BATCH])

    async def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        if not self.supports_filtered_delete:
            raise NotImplementedError("Serverless Pinecone indexes cannot delete by metadata filter")
        await asyncio.to_thread(self.index.delete, filter=_build_pinecone_filter(filters))

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self.index.describe_index_stats)
            return True
        except Exception:
            logger.warning("Pinecone health-check failed", exc_info=True)
            return False
