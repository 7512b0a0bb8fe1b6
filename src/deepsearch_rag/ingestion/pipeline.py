"""Ingestion pipeline — extracted text → chunks → vectors → index.

Ordinals (and therefore chunk ids) are fixed before any embedding starts,
so concurrent embedding never changes which text lands under which id.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field

from deepsearch_rag.agent.entities import Entity, EntityExtractor
from deepsearch_rag.config import settings
from deepsearch_rag.errors import InvalidInputError
from deepsearch_rag.ingestion.chunker import build_chunks, clean_text
from deepsearch_rag.ingestion.embedder import Embedder
from deepsearch_rag.ingestion.writer import IndexWriter
from deepsearch_rag.retrieval.models import WriteReport

logger = logging.getLogger(__name__)


class IndexStatus(str, Enum):
    """Searchability of a document after ingestion."""

    SEARCHABLE = "searchable"
    PENDING_VISIBILITY = "pending_visibility"
    EMPTY = "empty"


class IngestionReport(BaseModel):
    """What happened to one document during ingestion."""

    document_id: str
    user_id: str
    chunk_count: int = 0
    chunk_ids: list[str] = Field(default_factory=list)
    status: IndexStatus = IndexStatus.EMPTY
    entities: list[Entity] = Field(default_factory=list)
    write: WriteReport | None = None

    @property
    def searchable(self) -> bool:
        return self.status is IndexStatus.SEARCHABLE


class IngestionPipeline:
    """Chunk, embed and index one document's text.

    Parameters
    ----------
    embedder:
        Embedding wrapper.
    writer:
        Index writer bound to the target store.
    entity_extractor:
        Optional best-effort entity enrichment.
    chunk_size / chunk_overlap:
        Chunking parameters, in whitespace tokens.
    max_concurrency:
        Upper bound on concurrent embedding calls.
    """

    def __init__(
        self,
        embedder: Embedder,
        writer: IndexWriter,
        *,
        entity_extractor: EntityExtractor | None = None,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
        max_concurrency: int = settings.embedding_concurrency,
    ) -> None:
        self.embedder = embedder
        self.writer = writer
        self.entity_extractor = entity_extractor
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_concurrency = max_concurrency

    async def ingest(
        self,
        document_id: str,
        user_id: str,
        text: str,
        *,
        replace_existing: bool = True,
    ) -> IngestionReport:
        """Ingest *text* for *document_id* owned by *user_id*.

        With ``replace_existing`` the document's previous vectors are
        deleted first, so a shorter re-ingestion leaves no stale chunks.
        Embedding failures propagate; nothing is written in that case.
        """
        if not document_id or not user_id:
            raise InvalidInputError("document_id and user_id are required for ingestion")

        cleaned = clean_text(text)
        chunks = build_chunks(cleaned, document_id, self.chunk_size, self.chunk_overlap)
        report = IngestionReport(document_id=document_id, user_id=user_id)
        if not chunks:
            logger.info("Document %s has no text; nothing to index", document_id)
            return report

        if self.entity_extractor is not None:
            report.entities = await self.entity_extractor.extract(cleaned)

        vectors = await self.embedder.embed_many([c.text for c in chunks], max_concurrency=self.max_concurrency)
        logger.info("Embedded %d chunks for document %s", len(vectors), document_id)

        if replace_existing:
            await self.writer.delete_by_document(document_id)
        write = await self.writer.write(
            [(c.text, v) for c, v in zip(chunks, vectors)],
            document_id,
            user_id,
        )

        report.chunk_count = len(chunks)
        report.chunk_ids = write.chunk_ids
        report.write = write
        report.status = IndexStatus.SEARCHABLE if write.verified else IndexStatus.PENDING_VISIBILITY
        return report
