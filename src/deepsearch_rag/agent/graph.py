"""LangGraph graph definition — the question-answering workflow.

This module wires the nodes defined in :mod:`deepsearch_rag.agent.nodes`
into a compiled :class:`StateGraph`:

1. **Embed** the question.
2. **Retrieve** user-scoped chunks through the fallback ladder.
3. **Compose** a grounded answer.  When nothing was retrieved, return
   the fixed not-found answer without calling the model.

The graph can be tested locally without any external infrastructure by
injecting fake collaborators (see tests).
"""

from __future__ import annotations

from typing import Any

from langgraph.graph import END, StateGraph

from deepsearch_rag.agent.composer import AnswerComposer
from deepsearch_rag.agent.nodes import QANodes, route_after_retrieval
from deepsearch_rag.agent.state import QAState
from deepsearch_rag.config import settings
from deepsearch_rag.ingestion.embedder import Embedder
from deepsearch_rag.retrieval.retriever import TieredRetriever


def build_graph(embedder: Embedder, retriever: TieredRetriever, composer: AnswerComposer) -> Any:
    """Construct and return the compiled question-answering graph.

    Graph topology::

        ┌─────────┐
        │  START   │
        └────┬─────┘
             ▼
      ┌────────────────┐
      │ embed_question │
      └──────┬─────────┘
             ▼
      ┌──────────────┐
      │   retrieve    │
      └──────┬───────┘
     matches │ no matches
       ┌─────┴──────┐
       ▼            ▼
  ┌──────────┐ ┌───────────┐
  │ compose  │ │ not_found │
  └────┬─────┘ └─────┬─────┘
       └──────┬──────┘
              ▼
           [ END ]

    Returns
    -------
    CompiledGraph
        A compiled LangGraph workflow ready for ``.ainvoke()``.
    """
    nodes = QANodes(embedder, retriever, composer)
    workflow = StateGraph(QAState)

    # -- Nodes ---------------------------------------------------------------
    workflow.add_node("embed_question", nodes.embed_question)
    workflow.add_node("retrieve", nodes.retrieve)
    workflow.add_node("compose_answer", nodes.compose_answer)
    workflow.add_node("not_found", nodes.not_found)

    # -- Edges ---------------------------------------------------------------
    workflow.set_entry_point("embed_question")
    workflow.add_edge("embed_question", "retrieve")
    workflow.add_conditional_edges(
        "retrieve",
        route_after_retrieval,
        {
            "compose_answer": "compose_answer",
            "not_found": "not_found",
        },
    )
    workflow.add_edge("compose_answer", END)
    workflow.add_edge("not_found", END)

    return workflow.compile()


def create_initial_state(
    question: str,
    user_id: str,
    *,
    document_id: str | None = None,
    top_k: int = settings.default_top_k,
) -> dict[str, Any]:
    """Build the initial state dict for ``graph.ainvoke()``.

    Usage::

        graph = build_graph(embedder, retriever, composer)
        result = await graph.ainvoke(create_initial_state("Who signed it?", "user-1"))
        print(result["answer"])
    """
    return {
        "question": question,
        "user_id": user_id,
        "document_id": document_id,
        "top_k": top_k,
        "matches": [],
        "answer": "",
        "found": False,
    }
