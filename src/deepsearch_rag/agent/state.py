"""Question-answering state — shared across all graph nodes.

The state is the *single source of truth* that flows through every node
in the LangGraph workflow.  Each field is documented so that new nodes
can be added without guessing what data is available.
"""

from __future__ import annotations

from typing import TypedDict

from pydantic import BaseModel, Field

from deepsearch_rag.retrieval.models import RetrievalMatch, RetrievalTier


class QAState(TypedDict, total=False):
    """Typed state that flows through the question-answering graph.

    Attributes
    ----------
    question:
        The user's natural-language question.
    user_id:
        Owner whose documents may be searched.  Always required.
    document_id:
        Optional document the question is scoped to.
    top_k:
        Number of chunks requested from the retriever.
    query_vector:
        Embedding of ``question`` (set by ``embed_question``).
    matches:
        Retrieved chunks, best first (set by ``retrieve``).
    tier:
        Retrieval tier that produced ``matches``.
    answer:
        Final user-visible answer.
    found:
        ``False`` when nothing relevant was retrieved and the fixed
        not-found answer was returned.
    """

    question: str
    user_id: str
    document_id: str | None
    top_k: int
    query_vector: list[float]
    matches: list[RetrievalMatch]
    tier: RetrievalTier
    answer: str
    found: bool


class Answer(BaseModel):
    """Result of :meth:`DocSearchRuntime.ask`."""

    answer: str
    found: bool
    matches: list[RetrievalMatch] = Field(default_factory=list)
    tier: RetrievalTier = RetrievalTier.NONE

    @property
    def degraded(self) -> bool:
        """``True`` when the answer relied on the unfiltered retrieval tier."""
        return self.tier is RetrievalTier.UNFILTERED
