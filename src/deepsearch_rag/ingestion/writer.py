"""Index writer — persist embedded chunks with ownership metadata.

Writes go out as one batch per document with deterministic ids
(``<documentId>_chunk_<n>``), so a re-submitted batch overwrites rather
than duplicates.  Because the index is eventually consistent, every
write is followed by a visibility check; when that check stays
inconclusive the write is reported as a *soft* success
(``verified=False``) instead of failing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from deepsearch_rag.config import settings
from deepsearch_rag.errors import (
    DimensionMismatchError,
    InvalidInputError,
    RetrievalError,
    WriteError,
    classify_index_error,
)
from deepsearch_rag.retrieval.base import VectorStoreBase
from deepsearch_rag.retrieval.models import (
    CHUNK_INDEX_KEY,
    DOCUMENT_ID_KEY,
    ChunkMetadata,
    IndexedVector,
    MetadataFilter,
    QueryFilter,
    WriteReport,
    chunk_ordinal,
    make_chunk_id,
)
from deepsearch_rag.retry import RetryPolicy

logger = logging.getLogger(__name__)

PROBE_PAGE_SIZE = 1_000
MAX_PROBE_ROUNDS = 100


class IndexWriter:
    """Write and delete a document's vectors.

    Parameters
    ----------
    store:
        A connected vector-store backend.
    submit_policy:
        Retry policy for batch submission.
    verify_policy:
        Polling policy for visibility verification.
    timeout:
        Per-call timeout (seconds) for index operations.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        *,
        submit_policy: RetryPolicy | None = None,
        verify_policy: RetryPolicy | None = None,
        timeout: float = settings.index_timeout_seconds,
    ) -> None:
        self._store = store
        self.submit_policy = submit_policy or RetryPolicy(
            max_attempts=settings.write_max_attempts,
            initial_delay=settings.write_backoff_seconds,
        )
        self.verify_policy = verify_policy or RetryPolicy(
            max_attempts=settings.verify_max_attempts,
            initial_delay=settings.verify_backoff_seconds,
        )
        self.timeout = timeout

    async def write(
        self,
        chunks: Sequence[tuple[str, list[float]]],
        document_id: str,
        user_id: str,
    ) -> WriteReport:
        """Upsert ``(text, vector)`` pairs for one document and verify visibility.

        Raises
        ------
        InvalidInputError
            Missing ``document_id`` or ``user_id``.
        DimensionMismatchError
            A vector does not have the store's dimension.
        WriteError
            Submission failed after the retry budget (``.cause`` holds the
            last underlying error).
        """
        if not document_id or not user_id:
            raise InvalidInputError("document_id and user_id are required to write vectors")
        if not chunks:
            logger.info("No chunks to write for document %s", document_id)
            return WriteReport(document_id=document_id)

        vectors = [
            IndexedVector(
                id=make_chunk_id(document_id, ordinal),
                values=vector,
                metadata=ChunkMetadata(
                    document_id=document_id,
                    user_id=user_id,
                    chunk_index=ordinal,
                    text=text,
                ),
            )
            for ordinal, (text, vector) in enumerate(chunks)
        ]
        for v in vectors:
            if len(v.values) != self._store.dimension:
                raise DimensionMismatchError(self._store.dimension, len(v.values))

        attempts = 0

        async def _submit() -> None:
            nonlocal attempts
            attempts += 1
            await asyncio.wait_for(self._store.upsert(vectors), timeout=self.timeout)

        try:
            await self.submit_policy.call(_submit)
        except Exception as exc:
            raise WriteError(
                f"Failed to write {len(vectors)} vectors for document {document_id} "
                f"after {attempts} attempt(s): {type(exc).__name__}: {exc}",
                cause=exc,
            ) from exc
        logger.info("Upserted %d vectors for document %s", len(vectors), document_id)

        visible = await self.verify(document_id, user_id)
        if not visible:
            logger.warning(
                "Vectors for document %s not yet visible after %d check(s); reporting soft success",
                document_id,
                self.verify_policy.max_attempts,
            )
        return WriteReport(
            document_id=document_id,
            vectors_written=len(vectors),
            chunk_ids=[v.id for v in vectors],
            verified=visible > 0,
            visible_count=visible,
            submit_attempts=attempts,
        )

    async def verify(self, document_id: str, user_id: str) -> int:
        """Poll the filtered count until non-zero; return the last count seen."""
        filters = QueryFilter(user_id=user_id, document_id=document_id).to_filters()

        async def _count() -> int:
            return await asyncio.wait_for(self._store.count(filters), timeout=self.timeout)

        return await self.verify_policy.poll(_count, lambda n: n > 0, default=0)

    async def delete_by_document(self, document_id: str) -> None:
        """Remove every vector of *document_id*, whoever owns it.

        Ownership must already have been checked by the caller.  Backends
        without filtered delete go through a probe-then-delete loop.
        """
        if not document_id:
            raise InvalidInputError("document_id is required to delete vectors")
        try:
            await self._delete(document_id)
        except RetrievalError:
            raise
        except Exception as exc:
            raise classify_index_error(exc, "delete") from exc

    async def _delete(self, document_id: str) -> None:
        filters = [MetadataFilter.equals(DOCUMENT_ID_KEY, document_id)]

        if self._store.supports_filtered_delete:
            await asyncio.wait_for(self._store.delete_by_filter(filters), timeout=self.timeout)
            logger.info("Deleted vectors for document %s by filter", document_id)
            return

        # Deletes are not immediately visible to the probe, so each round
        # excludes the chunks already deleted and skips stale ids.
        deleted: set[str] = set()
        ordinals: list[int] = []
        for _ in range(MAX_PROBE_ROUNDS):
            page_filters = list(filters)
            if ordinals:
                page_filters.append(MetadataFilter(field=CHUNK_INDEX_KEY, operator="nin", value=sorted(ordinals)))
            ids = await asyncio.wait_for(
                self._store.probe_ids(page_filters, limit=PROBE_PAGE_SIZE), timeout=self.timeout
            )
            fresh = [vid for vid in ids if vid not in deleted]
            if not fresh:
                break
            await asyncio.wait_for(self._store.delete(fresh), timeout=self.timeout)
            deleted.update(fresh)
            ordinals.extend(o for o in (chunk_ordinal(vid, document_id) for vid in fresh) if o is not None)
            if len(ids) < PROBE_PAGE_SIZE:
                break
        logger.info("Deleted %d vectors for document %s by id", len(deleted), document_id)
