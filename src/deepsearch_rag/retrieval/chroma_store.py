"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import chromadb

from deepsearch_rag.config import settings
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import TEXT_KEY, IndexedVector, MetadataFilter

logger = logging.getLogger(__name__)


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    _OP_MAP = {
        "eq": "$eq",
        "ne": "$ne",
        "gt": "$gt",
        "gte": "$gte",
        "lt": "$lt",
        "lte": "$lte",
        "in": "$in",
        "nin": "$nin",
    }

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    The collection is created with cosine distance, so similarity is
    reported as ``1 - distance``.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    dimension:
        Embedding dimension ``D``.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (tests, embedded ``EphemeralClient``).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        dimension: int = settings.embedding_dimension,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
    ) -> None:
        super().__init__(collection_name, dimension)
        self._host = host
        self._port = port
        self._client = client
        self._collection: Any = None

    # -- lifecycle ------------------------------------------------------------

    async def connect(self) -> None:
        if self._collection is not None:
            return
        self._collection = await asyncio.to_thread(self._open_collection)
        logger.info("Connected to Chroma collection %r", self.collection_name)

    def _open_collection(self) -> Any:
        if self._client is None:
            self._client = chromadb.HttpClient(host=self._host, port=self._port)
        collection = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        sample = collection.get(limit=1, include=["embeddings"])
        embeddings = sample.get("embeddings")
        if embeddings is not None and len(embeddings) > 0:
            self.check_dimension(len(embeddings[0]))
        return collection

    async def close(self) -> None:
        self._collection = None
        self._client = None

    @property
    def collection(self) -> Any:
        if self._collection is None:
            raise RuntimeError("ChromaVectorStore is not connected; call connect() first")
        return self._collection

    # -- VectorStoreBase overrides --------------------------------------------

    async def upsert(self, vectors: list[IndexedVector]) -> None:
        if not vectors:
            return
        await asyncio.to_thread(
            self.collection.upsert,
            ids=[v.id for v in vectors],
            embeddings=[v.values for v in vectors],
            documents=[v.metadata.text for v in vectors],
            metadatas=[v.metadata.to_index() for v in vectors],
        )

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        where = _build_chroma_where(filters) if filters else None

        results = await asyncio.to_thread(
            self.collection.query,
            query_embeddings=[query_embedding],
            n_results=k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            meta = dict(meta or {})
            meta.setdefault(TEXT_KEY, content or "")
            hits.append(
                {
                    "id": doc_id,
                    "content": content or "",
                    "score": 1.0 - float(dist),
                    "metadata": meta,
                }
            )
        return hits

    async def count(self, filters: list[MetadataFilter]) -> int:
        result = await asyncio.to_thread(
            self.collection.get,
            where=_build_chroma_where(filters),
            include=[],
        )
        return len(result.get("ids") or [])

    async def delete(self, ids: list[str]) -> None:
        if ids:
            await asyncio.to_thread(self.collection.delete, ids=ids)

    async def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        await asyncio.to_thread(self.collection.delete, where=_build_chroma_where(filters))

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._client.heartbeat)
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
