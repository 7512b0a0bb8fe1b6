"""Graph nodes — each coroutine is one step of the question-answering flow.

Node contract
-------------
* Accepts the full :class:`QAState` dict.
* Returns a *partial* dict with **only the keys that changed**.
* Collaborators (embedder, retriever, composer) are injected through
  :class:`QANodes`, so every node is independently testable with fakes.
"""

from __future__ import annotations

import logging
from typing import Any

from deepsearch_rag.agent.composer import NOT_FOUND_ANSWER, AnswerComposer
from deepsearch_rag.agent.state import QAState
from deepsearch_rag.ingestion.embedder import Embedder
from deepsearch_rag.retrieval.retriever import TieredRetriever

logger = logging.getLogger(__name__)


class QANodes:
    """Node implementations bound to their collaborators."""

    def __init__(self, embedder: Embedder, retriever: TieredRetriever, composer: AnswerComposer) -> None:
        self.embedder = embedder
        self.retriever = retriever
        self.composer = composer

    # ── 1. EMBED QUESTION ─────────────────────────────────────────────

    async def embed_question(self, state: QAState) -> dict[str, Any]:
        return {"query_vector": await self.embedder.embed(state["question"])}

    # ── 2. RETRIEVE ───────────────────────────────────────────────────

    async def retrieve(self, state: QAState) -> dict[str, Any]:
        outcome = await self.retriever.search(
            state["query_vector"],
            state["user_id"],
            state["top_k"],
            state.get("document_id"),
        )
        if outcome.degraded:
            logger.warning("Answering from unfiltered fallback results for user %s", state["user_id"])
        return {"matches": outcome.matches, "tier": outcome.tier}

    # ── 3a. COMPOSE ANSWER ────────────────────────────────────────────

    async def compose_answer(self, state: QAState) -> dict[str, Any]:
        answer = await self.composer.compose(state["question"], state["matches"])
        return {"answer": answer, "found": True}

    # ── 3b. NOT FOUND ─────────────────────────────────────────────────

    async def not_found(self, state: QAState) -> dict[str, Any]:
        logger.info("No relevant chunks for question; returning fixed answer")
        return {"answer": NOT_FOUND_ANSWER, "found": False}


# ── ROUTING (conditional edge) ────────────────────────────────────────


def route_after_retrieval(state: QAState) -> str:
    """Conditional edge after ``retrieve``.

    Returns
    -------
    str
        ``"compose_answer"`` when there is something to answer from,
        ``"not_found"`` otherwise.  The model is never called with an
        empty context.
    """
    if state.get("matches"):
        return "compose_answer"
    return "not_found"
