"""
Agent — question answering and model-output handling.

Wires the embedder, tiered retriever and answer composer into a LangGraph
state-machine that can be tested locally with fake collaborators, plus the
structured-output parser used by every generation call.

Public API
----------
- :func:`build_graph` — compile the question-answering workflow.
- :func:`create_initial_state` — bootstrap the state dict for ``graph.ainvoke()``.
- :class:`AnswerComposer` — grounded generation over retrieved chunks.
- :class:`EntityExtractor` — best-effort entity enrichment.
- :func:`parse_structured` — robust JSON extraction from model output.
"""

from deepsearch_rag.agent.composer import NOT_FOUND_ANSWER, AnswerComposer
from deepsearch_rag.agent.entities import Entity, EntityExtractor
from deepsearch_rag.agent.graph import build_graph, create_initial_state
from deepsearch_rag.agent.parsing import parse_structured, strip_reasoning
from deepsearch_rag.agent.state import Answer, QAState

__all__ = [
    "NOT_FOUND_ANSWER",
    "Answer",
    "AnswerComposer",
    "Entity",
    "EntityExtractor",
    "QAState",
    "build_graph",
    "create_initial_state",
    "parse_structured",
    "strip_reasoning",
]
