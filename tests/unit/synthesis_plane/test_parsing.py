"""
agent-team-orchestrator — unit tests for the output parsing ladder

File: tests/unit/synthesis_plane/test_parsing.py
Last updated: 2026-10-19

Purpose
- Validate that each ladder stage claims the inputs it should and that parsing never raises.

What this test file should cover
- Whole-document JSON, fenced JSON/YAML, brace spans, markdown sections, fallback.
- Stage ordering (earlier stages win).
- Parsed values reduced to plain JSON data (non-finite floats, dates, deep nesting).
- Property: arbitrary text always yields a value.
"""

from __future__ import annotations

import json
from datetime import date, datetime

from hypothesis import given
from hypothesis import strategies as st

from agent_team.synthesis_plane.parsing import (
    ParseAttempt,
    parse_fallback,
    parse_response,
    parse_with_stage,
    to_json_safe,
)


def test_whole_document_json_wins() -> None:
    attempt = parse_with_stage('{"a": 1}')
    assert attempt.stage == "document"
    assert attempt.value == {"a": 1}


def test_fenced_json_block_is_extracted_from_prose() -> None:
    raw = 'Here is the plan:\n```json\n{"phases": []}\n```\nThanks.'
    attempt = parse_with_stage(raw)
    assert attempt.stage == "fenced"
    assert attempt.value == {"phases": []}


def test_fenced_yaml_block_requires_structured_value() -> None:
    raw = "```yaml\nsteps:\n  - one\n  - two\n```"
    assert parse_response(raw) == {"steps": ["one", "two"]}

    scalar_only = "```yaml\njust text\n```"
    assert parse_with_stage(scalar_only).stage == "fallback"


def test_broken_fence_falls_through_to_brace_span() -> None:
    raw = 'noise ```json\n{broken\n``` then {"ok": true} trailing'
    attempt = parse_with_stage(raw)
    assert attempt.stage == "brace"
    assert attempt.value == {"ok": True}


def test_markdown_sections_keep_raw_text() -> None:
    raw = "## Summary\nAll good.\n### Risks\nNone."
    value = parse_response(raw, label="Review")
    assert value["label"] == "Review"
    assert value["sections"] == [
        {"title": "Summary", "content": "All good."},
        {"title": "Risks", "content": "None."},
    ]
    assert value["_raw"] == raw


def test_plain_text_falls_back_to_labelled_text() -> None:
    assert parse_response("just words", label="Note") == {"label": "Note", "text": "just words"}
    assert parse_response(None) == {"label": "Response", "text": ""}


def test_failing_custom_stage_is_skipped() -> None:
    def explode(raw: str, label: str) -> ParseAttempt:
        raise RuntimeError("boom")

    attempt = parse_with_stage("text", ladder=(explode, parse_fallback))
    assert attempt.stage == "fallback"


def test_empty_ladder_still_returns_fallback() -> None:
    assert parse_response("x", ladder=()) == {"label": "Response", "text": "x"}


@given(st.text())
def test_parse_response_never_raises(raw: str) -> None:
    attempt = parse_with_stage(raw)
    assert attempt.ok
    assert attempt.stage in {"document", "fenced", "brace", "sections", "fallback"}


def test_parsed_values_are_reduced_to_plain_json() -> None:
    assert parse_response('{"score": NaN, "spread": -Infinity}') == {"score": None, "spread": None}
    assert parse_response("```yaml\nreleased: 2024-01-01\ntags: [a, b]\n```") == {
        "released": "2024-01-01",
        "tags": ["a", "b"],
    }
    assert parse_response("```yaml\n1: one\n```") == {"1": "one"}


def test_to_json_safe_converts_leaves() -> None:
    value = {
        "when": datetime(2024, 1, 2, 3, 4, 5),
        "day": date(2024, 1, 2),
        "ids": (1, 2),
        "unique": frozenset({"x"}),
        "blob": object(),
        "long": "y" * 300,
    }
    safe = to_json_safe(value)
    assert safe["when"] == "2024-01-02T03:04:05"
    assert safe["day"] == "2024-01-02"
    assert safe["ids"] == [1, 2]
    assert safe["unique"] == ["x"]
    assert safe["blob"].startswith("<object object at")
    assert safe["long"] == "y" * 300
    json.dumps(safe, allow_nan=False)


def test_to_json_safe_collapses_deep_nesting() -> None:
    deep: object = 1
    for _ in range(40):
        deep = [deep]
    safe = to_json_safe(deep, max_depth=3)
    assert safe == [[["<list nested deeper than 3>"]]]
    assert parse_response("[" * 40 + "]" * 40) is not None
