"""Sentence-window chunking with token overlap.

Text is split into sentence-like units on terminal punctuation, and the
units are packed into chunks of at most ``chunk_size`` whitespace tokens
(a single unit longer than that becomes its own chunk).  Each new chunk
starts with the last ``chunk_overlap`` tokens of the previous one.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from langchain_text_splitters import TextSplitter

from deepsearch_rag.errors import InvalidInputError
from deepsearch_rag.retrieval.models import Chunk, make_chunk_id

if TYPE_CHECKING:
    from langchain_core.documents import Document

_WHITESPACE = re.compile(r"\s+")
# A unit ends at terminal punctuation followed by whitespace, so tokens such
# as "3.14" or "example.com" stay whole; trailing text is one unit.
_UNIT_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def clean_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def split_units(text: str) -> list[str]:
    """Split *text* into trimmed, non-empty sentence-like units."""
    units = (u.strip() for u in _UNIT_BOUNDARY.split(text))
    return [u for u in units if u]


def chunk_text(text: str, target_size: int, overlap: int) -> list[str]:
    """Split *text* into overlapping chunks of roughly ``target_size`` tokens.

    Parameters
    ----------
    text:
        Extracted document text; whitespace is normalised.
    target_size:
        Maximum tokens per chunk before a unit triggers a close.
    overlap:
        Tokens carried over from the closed chunk.  Clamped into
        ``[0, target_size - 1]``.

    Returns
    -------
    list[str]
        Chunks in document order; ``[]`` for blank input.
    """
    if target_size < 1:
        raise InvalidInputError(f"target_size must be >= 1, got {target_size}")
    overlap = max(0, min(overlap, target_size - 1))

    normalized = clean_text(text)
    if not normalized:
        return []

    chunks: list[str] = []
    current: list[str] = []
    for unit in split_units(normalized):
        tokens = unit.split()
        if current and len(current) + len(tokens) > target_size:
            chunks.append(" ".join(current))
            seed = current[max(0, len(current) - overlap) :] if overlap else []
            current = seed + tokens
        else:
            current.extend(tokens)

    if current:
        chunks.append(" ".join(current))
    if not chunks:
        return [normalized]
    return chunks


class SentenceWindowSplitter(TextSplitter):
    """LangChain splitter wrapping :func:`chunk_text`.

    ``chunk_size`` and ``chunk_overlap`` are measured in whitespace tokens,
    not characters.
    """

    def __init__(self, chunk_size: int = 200, chunk_overlap: int = 40, **kwargs: Any) -> None:
        if chunk_size < 1:
            raise InvalidInputError(f"chunk_size must be >= 1, got {chunk_size}")
        chunk_overlap = max(0, min(chunk_overlap, chunk_size - 1))
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)

    def split_text(self, text: str) -> list[str]:
        return chunk_text(text, self._chunk_size, self._chunk_overlap)


def chunk_documents(
    documents: list[Document],
    chunk_size: int = 200,
    chunk_overlap: int = 40,
) -> list[Document]:
    """Split *documents* into smaller chunks for embedding.

    Parameters
    ----------
    documents:
        Source documents carrying already-extracted text.
    chunk_size:
        Target number of tokens per chunk.
    chunk_overlap:
        Number of overlapping tokens between consecutive chunks.

    Returns
    -------
    list[Document]
        Chunked documents; each inherits its parent's metadata and gains a
        ``chunk_index`` counted per parent document.
    """
    splitter = SentenceWindowSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    chunked: list[Document] = []
    for document in documents:
        pieces = splitter.split_documents([document])
        for index, piece in enumerate(pieces):
            piece.metadata["chunk_index"] = index
        chunked.extend(pieces)
    return chunked


def build_chunks(text: str, document_id: str, chunk_size: int, chunk_overlap: int) -> list[Chunk]:
    """Chunk *text* and assign ordinals and deterministic ids."""
    return [
        Chunk(id=make_chunk_id(document_id, ordinal), document_id=document_id, text=piece, ordinal=ordinal)
        for ordinal, piece in enumerate(chunk_text(text, chunk_size, chunk_overlap))
    ]
