"""Sanitising and parsing free-form model output.

Models served behind an OpenAI-compatible endpoint may wrap internal
reasoning in ``<think>…</think>``, fence their JSON in markdown, or add
prose around it despite being told not to.  Everything here is
best-effort: malformed output yields an empty result, never an exception.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

REASONING_OPEN = "<think>"
REASONING_CLOSE = "</think>"

_REASONING_BLOCK = re.compile(
    re.escape(REASONING_OPEN) + r".*?" + re.escape(REASONING_CLOSE), re.DOTALL | re.IGNORECASE
)
# An opening tag with no close swallows the rest of the text.
_REASONING_UNCLOSED = re.compile(re.escape(REASONING_OPEN) + r".*\Z", re.DOTALL | re.IGNORECASE)
_REASONING_LEADING = re.compile(r"\A.*" + re.escape(REASONING_CLOSE), re.DOTALL | re.IGNORECASE)
_FENCE = re.compile(r"```[a-zA-Z0-9_-]*\s*(.*?)\s*```", re.DOTALL)

_BRACKETS = {"array": ("[", "]"), "object": ("{", "}")}

DEFAULT_MAX_ITEMS = 50


def strip_reasoning(text: str) -> str:
    """Remove every reasoning segment and trim the result."""
    if not text:
        return ""
    cleaned = _REASONING_BLOCK.sub("", text)
    cleaned = _REASONING_UNCLOSED.sub("", cleaned)
    # A stray closing tag means the opening one was cut off upstream.
    cleaned = _REASONING_LEADING.sub("", cleaned)
    return cleaned.strip()


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or *text* trimmed."""
    match = _FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json_span(text: str, container: Literal["array", "object"] = "array") -> str | None:
    """Slice *text* from the first opening to the last closing bracket."""
    opening, closing = _BRACKETS[container]
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _load(raw: str, container: Literal["array", "object"]) -> Any:
    span = extract_json_span(strip_code_fences(strip_reasoning(raw)), container)
    if span is None:
        logger.debug("No JSON %s found in model output: %.200s", container, raw)
        return None
    try:
        return json.loads(span)
    except json.JSONDecodeError:
        logger.warning("Could not parse model JSON: %.200s", span)
        return None


def parse_structured(
    raw: str,
    model: type[T],
    *,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> list[T]:
    """Parse a JSON array of *model* objects out of free-form model output.

    Elements that fail validation are dropped; the result is capped at
    *max_items*.  Returns ``[]`` when no array can be recovered.
    """
    data = _load(raw or "", "array")
    if not isinstance(data, list):
        return []

    items: list[T] = []
    dropped = 0
    for element in data:
        try:
            items.append(model.model_validate(element))
        except ValidationError:
            dropped += 1
            continue
        if len(items) >= max_items:
            break
    if dropped:
        logger.info("Dropped %d invalid %s element(s)", dropped, model.__name__)
    return items


def parse_structured_object(raw: str, model: type[T]) -> T | None:
    """Parse a single JSON object of *model* out of free-form model output."""
    data = _load(raw or "", "object")
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        logger.info("Model output did not match %s", model.__name__)
        return None


def message_text(content: object) -> str:
    """Flatten a chat message ``content`` (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content or "")
