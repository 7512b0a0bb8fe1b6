"""Domain models for chunks, indexed vectors and retrieval results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Metadata keys as stored in the vector index.
DOCUMENT_ID_KEY = "documentId"
USER_ID_KEY = "userId"
CHUNK_INDEX_KEY = "chunkIndex"
TEXT_KEY = "text"


def make_chunk_id(document_id: str, ordinal: int) -> str:
    """Deterministic vector id for chunk ``ordinal`` of ``document_id``."""
    return f"{document_id}_chunk_{ordinal}"


def chunk_ordinal(chunk_id: str, document_id: str) -> int | None:
    """Inverse of :func:`make_chunk_id`; ``None`` for ids of another shape."""
    prefix = f"{document_id}_chunk_"
    if not chunk_id.startswith(prefix):
        return None
    suffix = chunk_id[len(prefix) :]
    return int(suffix) if suffix.isdigit() else None


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"userId"``, ``"documentId"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class QueryFilter(BaseModel):
    """Ownership scope of a query: always a user, optionally one document."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    document_id: str | None = None

    @field_validator("user_id")
    @classmethod
    def _user_id_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("user_id is required for every index query")
        return value

    def to_filters(self) -> list[MetadataFilter]:
        filters = [MetadataFilter.equals(USER_ID_KEY, self.user_id)]
        if self.document_id:
            filters.append(MetadataFilter.equals(DOCUMENT_ID_KEY, self.document_id))
        return filters

    def without_document(self) -> QueryFilter:
        return QueryFilter(user_id=self.user_id)


class Chunk(BaseModel):
    """A bounded span of a document's text."""

    id: str
    document_id: str
    text: str
    ordinal: int = Field(ge=0)


class ChunkMetadata(BaseModel):
    """Ownership metadata stored alongside every vector."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias=DOCUMENT_ID_KEY)
    user_id: str = Field(alias=USER_ID_KEY)
    chunk_index: int = Field(alias=CHUNK_INDEX_KEY, ge=0)
    text: str = Field(alias=TEXT_KEY)

    def to_index(self) -> dict[str, Any]:
        """Flat dict with the index's camelCase keys."""
        return self.model_dump(by_alias=True)


class IndexedVector(BaseModel):
    """An embedding plus its metadata, as persisted in the index."""

    id: str
    values: list[float]
    metadata: ChunkMetadata


class RetrievalMatch(BaseModel):
    """One chunk returned by a similarity query (higher score = more relevant)."""

    id: str = ""
    text: str
    score: float
    document_id: str | None = None
    chunk_index: int | None = None
    user_id: str | None = None

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> RetrievalMatch:
        """Build a match from a backend hit dict (``id``/``score``/``metadata``)."""
        meta = hit.get("metadata") or {}
        chunk_index = meta.get(CHUNK_INDEX_KEY)
        return cls(
            id=str(hit.get("id", "")),
            text=meta.get(TEXT_KEY) or hit.get("content") or "",
            score=float(hit.get("score") or 0.0),
            document_id=meta.get(DOCUMENT_ID_KEY),
            chunk_index=int(chunk_index) if chunk_index is not None else None,
            user_id=meta.get(USER_ID_KEY),
        )


class RetrievalTier(str, Enum):
    """Which step of the fallback ladder produced the result."""

    STRICT = "strict"
    RELAXED = "relaxed"
    UNFILTERED = "unfiltered"
    NONE = "none"


class RetrievalOutcome(BaseModel):
    """Matches plus the tier that produced them."""

    matches: list[RetrievalMatch] = Field(default_factory=list)
    tier: RetrievalTier = RetrievalTier.NONE

    @property
    def degraded(self) -> bool:
        """``True`` when the unfiltered last-resort tier was used."""
        return self.tier is RetrievalTier.UNFILTERED


class WriteReport(BaseModel):
    """Outcome of an index write, including visibility verification."""

    document_id: str
    vectors_written: int = 0
    chunk_ids: list[str] = Field(default_factory=list)
    verified: bool = False
    visible_count: int = 0
    submit_attempts: int = 0
