"""Shared pytest configuration and fixtures.

Everything here runs without Chroma, Pinecone or a model provider: the
vector index, the embedding function and the chat model are in-memory
fakes.
"""

from __future__ import annotations

import hashlib
import math
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage

from deepsearch_rag.config import Settings
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import IndexedVector, MetadataFilter
from deepsearch_rag.retry import RetryPolicy

DIM = 8


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake vector store ─────────────────────────────────────────────────


def _matches(metadata: dict[str, Any], filters: list[MetadataFilter] | None) -> bool:
    for f in filters or []:
        value = metadata.get(f.field)
        if f.operator == "eq" and value != f.value:
            return False
        if f.operator == "ne" and value == f.value:
            return False
        if f.operator == "in" and value not in f.value:
            return False
        if f.operator == "nin" and value in f.value:
            return False
    return True


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorStore(VectorStoreBase):
    """In-memory vector index with failure injection.

    Parameters
    ----------
    supports_filtered_delete:
        Toggle between the native and the probe-then-delete path.
    ignore_filters:
        Return hits from every owner, as a misbehaving backend would.
    invisible_counts:
        Number of initial ``count`` calls that report 0 (eventual
        consistency).
    """

    def __init__(
        self,
        dimension: int = DIM,
        *,
        supports_filtered_delete: bool = True,
        ignore_filters: bool = False,
        invisible_counts: int = 0,
    ) -> None:
        super().__init__("test-collection", dimension)
        self.supports_filtered_delete = supports_filtered_delete
        self.ignore_filters = ignore_filters
        self.invisible_counts = invisible_counts
        self.records: dict[str, tuple[list[float], dict[str, Any]]] = {}
        self.upsert_errors: list[BaseException] = []
        self.search_errors: list[BaseException] = []
        self.upsert_calls = 0
        self.count_calls = 0
        self.search_calls: list[dict[str, Any]] = []
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def upsert(self, vectors: list[IndexedVector]) -> None:
        self.upsert_calls += 1
        if self.upsert_errors:
            raise self.upsert_errors.pop(0)
        for v in vectors:
            self.records[v.id] = (list(v.values), v.metadata.to_index())

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        self.search_calls.append({"k": k, "filters": filters})
        if self.search_errors:
            raise self.search_errors.pop(0)
        active = None if self.ignore_filters else filters
        hits = [
            {"id": vid, "score": _cosine(query_embedding, values), "metadata": dict(meta)}
            for vid, (values, meta) in self.records.items()
            if _matches(meta, active)
        ]
        hits.sort(key=lambda h: h["score"], reverse=True)
        return hits[:k]

    async def count(self, filters: list[MetadataFilter]) -> int:
        self.count_calls += 1
        if self.count_calls <= self.invisible_counts:
            return 0
        return sum(1 for _, meta in self.records.values() if _matches(meta, filters))

    async def delete(self, ids: list[str]) -> None:
        for vid in ids:
            self.records.pop(vid, None)

    async def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        if not self.supports_filtered_delete:
            raise NotImplementedError("filtered delete disabled")
        for vid in [vid for vid, (_, meta) in self.records.items() if _matches(meta, filters)]:
            del self.records[vid]

    async def health_check(self) -> bool:
        return self.connected


# ── Fake model provider ───────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings: shared words mean higher similarity."""

    def __init__(self, dimension: int = DIM) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in text.lower().split():
            bucket = int(hashlib.md5(word.strip(".,!?").encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        vector[-1] += 0.01
        return vector

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        return self._vector(text)


def make_chat_model(*contents: str) -> MagicMock:
    """Chat-model mock whose ``ainvoke`` returns *contents* in order (last one repeats)."""
    llm = MagicMock()
    responses = [AIMessage(content=c) for c in contents] or [AIMessage(content="")]
    served = 0

    async def _ainvoke(prompt: Any, *args: Any, **kwargs: Any) -> AIMessage:
        nonlocal served
        response = responses[min(served, len(responses) - 1)]
        served += 1
        return response

    llm.ainvoke = AsyncMock(side_effect=_ainvoke)
    return llm


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def no_wait() -> RetryPolicy:
    """Three attempts, no backoff sleep."""
    return RetryPolicy(max_attempts=3, initial_delay=0)


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        embedding_dimension=DIM,
        write_backoff_seconds=0,
        verify_backoff_seconds=0,
        chunk_size=20,
        chunk_overlap=4,
        default_top_k=3,
        extract_entities=True,
    )
