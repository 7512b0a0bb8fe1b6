"""
Retrieval — vector-store backends and user-scoped tiered search.

This module wraps the vector store behind a clean interface so that the
ingestion and answering layers never need to know which DB is backing
the index.

Public surface
--------------
- :class:`TieredRetriever` — filtered search with fallback tiers.
- :class:`VectorStoreBase` — abstract async backend.
- :class:`ChromaVectorStore`, :class:`PineconeVectorStore` — concrete backends.
- :class:`RetrievalMatch`, :class:`RetrievalOutcome`, :class:`QueryFilter`, … — data models.
"""

from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import (
    Chunk,
    ChunkMetadata,
    IndexedVector,
    MetadataFilter,
    QueryFilter,
    RetrievalMatch,
    RetrievalOutcome,
    RetrievalTier,
    WriteReport,
    make_chunk_id,
)
from deepsearch_rag.retrieval.retriever import TieredRetriever

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChromaVectorStore",
    "IndexedVector",
    "MetadataFilter",
    "PineconeVectorStore",
    "QueryFilter",
    "RetrievalMatch",
    "RetrievalOutcome",
    "RetrievalTier",
    "TieredRetriever",
    "VectorStoreBase",
    "WriteReport",
    "make_chunk_id",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import backends to avoid pulling in their SDKs at import time."""
    if name == "ChromaVectorStore":
        from deepsearch_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    if name == "PineconeVectorStore":
        from deepsearch_rag.retrieval.pinecone_store import PineconeVectorStore

        return PineconeVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
