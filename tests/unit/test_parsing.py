"""Unit tests for model-output sanitising and structured parsing."""

from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from deepsearch_rag.agent.entities import Entity
from deepsearch_rag.agent.parsing import (
    extract_json_span,
    message_text,
    parse_structured,
    parse_structured_object,
    strip_code_fences,
    strip_reasoning,
)


class Verdict(BaseModel):
    relevant: bool
    reason: str = ""


# ── Reasoning segments ─────────────────────────────────────────────────


class TestStripReasoning:
    def test_removes_closed_block(self) -> None:
        assert strip_reasoning("<think>hmm, let me see</think>The answer is 42.") == "The answer is 42."

    def test_removes_multiple_blocks(self) -> None:
        text = "<think>a</think>First.<think>b</think> Second."
        assert strip_reasoning(text) == "First. Second."

    def test_unclosed_block_swallows_the_rest(self) -> None:
        assert strip_reasoning("Answer.<think>still thinking") == "Answer."

    def test_stray_closing_tag(self) -> None:
        assert strip_reasoning("truncated reasoning</think>\nFinal.") == "Final."

    def test_multiline_and_case_insensitive(self) -> None:
        assert strip_reasoning("<THINK>\nline one\nline two\n</THINK>\nDone") == "Done"

    def test_plain_text_is_untouched(self) -> None:
        assert strip_reasoning("  Nothing to strip.  ") == "Nothing to strip."

    def test_empty(self) -> None:
        assert strip_reasoning("") == ""


# ── JSON recovery helpers ──────────────────────────────────────────────


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fences("  no fence ") == "no fence"


def test_extract_json_span() -> None:
    assert extract_json_span('Sure! [1, 2] hope that helps') == "[1, 2]"
    assert extract_json_span('{"a": {"b": 1}} trailing', "object") == '{"a": {"b": 1}}'
    assert extract_json_span("no json here") is None


# ── parse_structured ───────────────────────────────────────────────────


class TestParseStructured:
    def test_fenced_json_example(self) -> None:
        raw = '```json\n[{"text":"Alice","type":"PERSON"}]\n```'
        assert parse_structured(raw, Entity) == [Entity(text="Alice", type="PERSON")]

    def test_leading_prose_before_fence(self) -> None:
        raw = "Sure! Here you go:\n```json\n[{\"text\":\"Alice\",\"type\":\"PERSON\"}]\n```"
        assert parse_structured(raw, Entity) == [Entity(text="Alice", type="PERSON")]

    def test_prose_only_yields_empty_list(self) -> None:
        assert parse_structured("There are no entities in this text.", Entity) == []

    @pytest.mark.parametrize("raw", ["", "[", "[{]", "null", '{"text": "Alice"}'])
    def test_malformed_input_never_raises(self, raw: str) -> None:
        assert parse_structured(raw, Entity) == []

    def test_reasoning_and_prose_around_json(self) -> None:
        raw = (
            "<think>The user wants entities. [maybe] Paris is a city.</think>\n"
            'Here you go: [{"text": "Paris", "type": "LOCATION"}] Anything else?'
        )
        assert parse_structured(raw, Entity) == [Entity(text="Paris", type="LOCATION")]

    def test_invalid_elements_are_dropped(self) -> None:
        raw = json.dumps(
            [
                {"text": "Acme", "type": "ORG"},
                {"text": "Blue", "type": "COLOR"},
                {"text": "", "type": "PERSON"},
                "just a string",
                {"text": "Bob", "type": "PERSON"},
            ]
        )
        assert parse_structured(raw, Entity) == [
            Entity(text="Acme", type="ORG"),
            Entity(text="Bob", type="PERSON"),
        ]

    def test_result_is_capped(self) -> None:
        raw = json.dumps([{"text": f"P{i}", "type": "PERSON"} for i in range(80)])
        result = parse_structured(raw, Entity, max_items=50)
        assert len(result) == 50
        assert result[-1].text == "P49"

    def test_works_for_any_model(self) -> None:
        assert parse_structured('[{"relevant": true}]', Verdict) == [Verdict(relevant=True)]


class TestParseStructuredObject:
    def test_object(self) -> None:
        raw = '<think>x</think>```json\n{"relevant": false, "reason": "off topic"}\n```'
        assert parse_structured_object(raw, Verdict) == Verdict(relevant=False, reason="off topic")

    def test_invalid_object(self) -> None:
        assert parse_structured_object('{"reason": "missing flag"}', Verdict) is None

    def test_no_object(self) -> None:
        assert parse_structured_object("nope", Verdict) is None


# ── message_text ───────────────────────────────────────────────────────


def test_message_text_flattens_parts() -> None:
    content = [{"type": "text", "text": "Hello "}, {"type": "image_url", "image_url": "x"}, "world"]
    assert message_text(content) == "Hello world"
    assert message_text("plain") == "plain"
    assert message_text(None) == ""
