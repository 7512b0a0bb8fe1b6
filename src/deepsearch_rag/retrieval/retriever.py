"""Tiered retriever — user-scoped similarity search with filter relaxation.

The vector index is eventually consistent, so a freshly ingested
document may not yet be visible through the narrowest filter.  The
retriever therefore walks a fallback ladder, stopping at the first tier
that returns anything:

1. **strict**  — ``{userId, documentId}`` (or ``{userId}``), ``top_k``.
2. **relaxed** — only when a document was requested: ``{userId}``,
   ``max(top_k, 15)``.
3. **unfiltered** — opt-in only: no filter, ``max(top_k, 20)``.  The
   outcome is flagged ``degraded``.

Whatever tier answers, hits are re-checked against the requested user
in-process, so another user's chunks are never returned.

Usage::

    retriever = TieredRetriever(store)
    matches = await retriever.retrieve(query_vector, user_id="u1", top_k=5)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from deepsearch_rag.config import settings
from deepsearch_rag.errors import (
    DimensionMismatchError,
    InvalidInputError,
    RetrievalError,
    classify_index_error,
)
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import (
    MetadataFilter,
    QueryFilter,
    RetrievalMatch,
    RetrievalOutcome,
    RetrievalTier,
)

logger = logging.getLogger(__name__)

RELAXED_MIN_K = 15
UNFILTERED_MIN_K = 20


class TieredRetriever:
    """Retriever over any :class:`VectorStoreBase` with a fallback ladder.

    Parameters
    ----------
    store:
        A connected vector-store backend.
    allow_unfiltered_fallback:
        Enable tier 3.  Off by default.
    timeout:
        Per-query timeout in seconds.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        *,
        allow_unfiltered_fallback: bool = settings.allow_unfiltered_fallback,
        timeout: float = settings.index_timeout_seconds,
    ) -> None:
        self._store = store
        self.allow_unfiltered_fallback = allow_unfiltered_fallback
        self.timeout = timeout

    # -- public API -----------------------------------------------------------

    async def retrieve(
        self,
        query_vector: list[float],
        user_id: str,
        top_k: int,
        document_id: str | None = None,
    ) -> list[RetrievalMatch]:
        """Return matches ordered by descending score (see :meth:`search`)."""
        outcome = await self.search(query_vector, user_id, top_k, document_id)
        return outcome.matches

    async def search(
        self,
        query_vector: list[float],
        user_id: str,
        top_k: int,
        document_id: str | None = None,
    ) -> RetrievalOutcome:
        """Run the fallback ladder and report which tier answered.

        Raises
        ------
        InvalidInputError
            Empty ``user_id``, empty query vector or ``top_k < 1``.
        DimensionMismatchError
            Query vector length differs from the index dimension.
        RetrievalError
            Classified backend failure; aborts the whole retrieval.
        """
        if not user_id or not user_id.strip():
            raise InvalidInputError("user_id is required for retrieval")
        if top_k < 1:
            raise InvalidInputError(f"top_k must be >= 1, got {top_k}")
        if not query_vector:
            raise InvalidInputError("query vector is empty")
        if len(query_vector) != self._store.dimension:
            raise DimensionMismatchError(self._store.dimension, len(query_vector))

        scope = QueryFilter(user_id=user_id, document_id=document_id)

        matches = await self._run_tier(query_vector, scope.to_filters(), top_k, user_id)
        if matches:
            return RetrievalOutcome(matches=matches, tier=RetrievalTier.STRICT)

        if document_id:
            k = max(top_k, RELAXED_MIN_K)
            logger.info(
                "No matches for document %s; relaxing to user scope (k=%d)", document_id, k
            )
            matches = await self._run_tier(query_vector, scope.without_document().to_filters(), k, user_id)
            if matches:
                return RetrievalOutcome(matches=matches, tier=RetrievalTier.RELAXED)

        if self.allow_unfiltered_fallback:
            k = max(top_k, UNFILTERED_MIN_K)
            logger.warning("User-scoped tiers empty for user %s; running unfiltered query (k=%d)", user_id, k)
            matches = await self._run_tier(query_vector, None, k, user_id)
            if matches:
                return RetrievalOutcome(matches=matches, tier=RetrievalTier.UNFILTERED)

        logger.info("No matches found for user %s", user_id)
        return RetrievalOutcome()

    # -- internals ------------------------------------------------------------

    async def _run_tier(
        self,
        query_vector: list[float],
        filters: list[MetadataFilter] | None,
        k: int,
        user_id: str,
    ) -> list[RetrievalMatch]:
        try:
            hits = await asyncio.wait_for(
                self._store.similarity_search(query_vector, k=k, filters=filters),
                timeout=self.timeout,
            )
        except RetrievalError:
            raise
        except Exception as exc:
            raise classify_index_error(exc, "query") from exc
        return self._to_matches(hits, k, user_id)

    def _to_matches(self, hits: list[dict[str, Any]], k: int, user_id: str) -> list[RetrievalMatch]:
        by_id: dict[str, RetrievalMatch] = {}
        dropped = 0
        for hit in hits:
            match = RetrievalMatch.from_hit(hit)
            if match.user_id != user_id:
                dropped += 1
                continue
            key = match.id or f"{match.document_id}:{match.chunk_index}"
            current = by_id.get(key)
            if current is None or match.score > current.score:
                by_id[key] = match
        if dropped:
            logger.warning("Dropped %d hit(s) not owned by user %s", dropped, user_id)
        ordered = sorted(by_id.values(), key=lambda m: m.score, reverse=True)
        return ordered[:k]
