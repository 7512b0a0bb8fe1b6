"""Abstract base class for vector-store backends.

Adding a new backend (Weaviate, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract coroutines.  The
writer and retriever are backend-agnostic.

Backends own their SDK client explicitly: nothing connects at import
time, :meth:`VectorStoreBase.connect` opens the handle and
:meth:`VectorStoreBase.close` releases it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from deepsearch_rag.errors import ConfigurationError
from deepsearch_rag.retrieval.models import IndexedVector, MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic async vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    dimension:
        Embedding dimension ``D`` every stored and queried vector must have.
    """

    #: Whether :meth:`delete_by_filter` is served natively by the backend.
    supports_filtered_delete: bool = True

    def __init__(self, collection_name: str, dimension: int) -> None:
        self.collection_name = collection_name
        self.dimension = dimension

    async def __aenter__(self) -> VectorStoreBase:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- lifecycle ------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """Open the client handle; idempotent."""
        ...

    async def close(self) -> None:
        """Release the client handle.  Default is a no-op."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def upsert(self, vectors: list[IndexedVector]) -> None:
        """Insert or overwrite *vectors* (by id) in a single request."""
        ...

    @abstractmethod
    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* results matching *query_embedding*.

        Each result dict **must** contain at least:

        * ``"id"`` – vector identifier
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – the stored metadata dict (camelCase keys)
        """
        ...

    @abstractmethod
    async def count(self, filters: list[MetadataFilter]) -> int:
        """Return the (possibly estimated) number of vectors matching *filters*."""
        ...

    @abstractmethod
    async def delete(self, ids: list[str]) -> None:
        """Delete vectors by id."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    async def delete_by_filter(self, filters: list[MetadataFilter]) -> None:
        """Delete every vector matching *filters*.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support filtered delete")

    async def probe_ids(self, filters: list[MetadataFilter], *, limit: int) -> list[str]:
        """Return up to *limit* ids matching *filters*.

        The default probes with a similarity query against a unit vector,
        which every backend supports; backends with a cheaper listing API
        can override it.
        """
        probe = [0.0] * self.dimension
        probe[0] = 1.0
        hits = await self.similarity_search(probe, k=limit, filters=filters)
        return [str(hit["id"]) for hit in hits]

    # -- helpers --------------------------------------------------------------

    def check_dimension(self, actual: int | None) -> None:
        """Refuse to operate on an index whose dimension differs from ``D``."""
        if actual is not None and actual != self.dimension:
            raise ConfigurationError(
                f"Index {self.collection_name!r} has dimension {actual}, "
                f"but the embedding provider is configured for {self.dimension}"
            )
