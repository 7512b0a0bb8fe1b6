"""Named-entity extraction — a best-effort enrichment at ingestion time."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from deepsearch_rag.agent.parsing import message_text, parse_structured
from deepsearch_rag.agent.prompts import build_entity_prompt
from deepsearch_rag.config import settings

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)

EntityType = Literal["PERSON", "ORG", "LOCATION"]


class Entity(BaseModel):
    """A named entity mentioned in a document."""

    text: str = Field(min_length=1)
    type: EntityType


class EntityExtractor:
    """Extract :class:`Entity` objects from document text.

    Never raises on model failure: extraction must not block ingestion.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        *,
        text_limit: int = settings.entity_text_limit,
        max_items: int = settings.entity_max_items,
        timeout: float = settings.generation_timeout_seconds,
    ) -> None:
        self._llm = llm
        self.text_limit = text_limit
        self.max_items = max_items
        self.timeout = timeout

    async def extract(self, text: str) -> list[Entity]:
        if not text or not text.strip():
            return []
        prompt = build_entity_prompt(text[: self.text_limit])
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(prompt), timeout=self.timeout)
        except Exception:
            logger.warning("Entity extraction failed; continuing without entities", exc_info=True)
            return []
        entities = parse_structured(message_text(response.content), Entity, max_items=self.max_items)
        logger.info("Extracted %d entities", len(entities))
        return entities
