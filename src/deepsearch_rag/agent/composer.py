"""Answer composer — bounded context + one grounded generation call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from deepsearch_rag.agent.parsing import message_text, strip_reasoning
from deepsearch_rag.agent.prompts import build_answer_prompt
from deepsearch_rag.config import settings
from deepsearch_rag.errors import InvalidInputError, OperationTimeoutError, ProviderError
from deepsearch_rag.retrieval.models import RetrievalMatch

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[...context truncated...]"

# Returned by the orchestration layer when retrieval finds nothing; no
# model call is made in that case.
NOT_FOUND_ANSWER = (
    "I couldn't find any relevant information in your documents to answer that question."
)


def build_context(matches: Sequence[RetrievalMatch], budget: int) -> str:
    """Join match texts with blank lines, cut to *budget* characters."""
    context = "\n\n".join(m.text for m in matches if m.text)
    if len(context) <= budget:
        return context
    return context[:budget] + TRUNCATION_MARKER


class AnswerComposer:
    """Compose a grounded answer from retrieved chunks.

    Parameters
    ----------
    llm:
        LangChain chat model.
    context_char_budget:
        Maximum characters of context sent to the model.
    timeout:
        Generation timeout in seconds.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        *,
        context_char_budget: int = settings.context_char_budget,
        timeout: float = settings.generation_timeout_seconds,
    ) -> None:
        self._llm = llm
        self.context_char_budget = context_char_budget
        self.timeout = timeout

    async def compose(self, question: str, matches: Sequence[RetrievalMatch]) -> str:
        """Return the sanitised model answer for *question*.

        Raises
        ------
        InvalidInputError
            Empty question, or no matches (callers answer with
            :data:`NOT_FOUND_ANSWER` instead of calling the composer).
        OperationTimeoutError
            Generation exceeded ``timeout``.
        ProviderError
            The model call failed.
        """
        if not question or not question.strip():
            raise InvalidInputError("Question is required")
        if not matches:
            raise InvalidInputError("AnswerComposer requires at least one match")

        context = build_context(matches, self.context_char_budget)
        prompt = build_answer_prompt(question.strip(), context)
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(prompt), timeout=self.timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise OperationTimeoutError(f"Generation timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise ProviderError(f"Generation failed: {type(exc).__name__}: {exc}") from exc

        answer = strip_reasoning(message_text(response.content))
        logger.info("Composed answer (%d chars) from %d match(es)", len(answer), len(matches))
        return answer
