"""Prompt templates for answering and entity extraction.

Every LLM call uses a dedicated prompt from this module.  Keeping prompts
in one place makes them easy to audit, version, and A/B test.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

# ── 1. Grounded answering ─────────────────────────────────────────────

ANSWER_SYSTEM = """\
You are a precise assistant answering questions about the user's own
documents.

Rules:
1. Answer **strictly** from the context provided. Do not use outside
   knowledge and do not fabricate information.
2. If the answer cannot be found in the context, state explicitly that
   the information is not available in the document.
3. Be concise but complete.
"""


def build_answer_prompt(question: str, context: str) -> list[BaseMessage]:
    """Build the grounding prompt for the answer composer."""
    return [
        SystemMessage(content=ANSWER_SYSTEM),
        HumanMessage(content=f"Context:\n{context}\n\nQuestion: {question}"),
    ]


# ── 2. Entity extraction ──────────────────────────────────────────────

ENTITY_SYSTEM = """\
Extract named entities (PERSON, ORG, LOCATION) from the text the user
provides.

Provide the output as a JSON array where each object has "text" (the
entity name) and "type" (one of PERSON, ORG, LOCATION). If no entities
are found, return an empty JSON array.

IMPORTANT: Only return the JSON array. Do NOT include any additional
text, explanations, or Markdown code fences. The output must be valid,
plain JSON.
"""


def build_entity_prompt(text: str) -> list[BaseMessage]:
    """Build the prompt for entity extraction."""
    return [
        SystemMessage(content=ENTITY_SYSTEM),
        HumanMessage(content=f'Text: "{text}"\n\nJSON Entities:'),
    ]
