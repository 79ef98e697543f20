"""Resilient parsing of free-form model output into structured values.

The ladder is an ordered tuple of pure parser functions. Each returns a
``ParseAttempt``; the first successful attempt wins and the final stage always
succeeds, so ``parse_response`` never raises.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Any, Final

import yaml

_FENCED_BLOCK_RE: Final[re.Pattern[str]] = re.compile(
    r"```(?P<lang>[A-Za-z0-9_-]*)[ \t]*\n?(?P<body>.*?)\n?```",
    flags=re.DOTALL,
)
_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^#{1,3}\s+(.+)$", flags=re.MULTILINE)
_JSON_FENCE_LANGS: Final[frozenset[str]] = frozenset({"", "json", "jsonc"})
_YAML_FENCE_LANGS: Final[frozenset[str]] = frozenset({"yaml", "yml"})
# Leaves room for the envelope that lifecycle events wrap around a parsed value.
MAX_PARSED_DEPTH: Final[int] = 10
_TRUNCATED_CHARS: Final[int] = 200


@dataclass(frozen=True, slots=True)
class ParseAttempt:
    """Outcome of one ladder stage."""

    ok: bool
    value: Any = None
    stage: str = ""


Parser = Callable[[str, str], ParseAttempt]

_MISS = ParseAttempt(ok=False)


def parse_whole_document(raw: str, label: str) -> ParseAttempt:
    """Stage 1: the entire response is a JSON document."""

    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return _MISS
    return ParseAttempt(ok=True, value=value, stage="document")


def parse_fenced_block(raw: str, label: str) -> ParseAttempt:
    """Stage 2: the first fenced block whose body parses (JSON, or YAML when tagged)."""

    for match in _FENCED_BLOCK_RE.finditer(raw):
        lang = match.group("lang").strip().lower()
        body = match.group("body").strip()
        if not body:
            continue
        if lang in _JSON_FENCE_LANGS:
            try:
                return ParseAttempt(ok=True, value=json.loads(body), stage="fenced")
            except json.JSONDecodeError:
                continue
        if lang in _YAML_FENCE_LANGS:
            try:
                value = yaml.safe_load(body)
            except yaml.YAMLError:
                continue
            if isinstance(value, (Mapping, list)):
                return ParseAttempt(ok=True, value=value, stage="fenced")
    return _MISS


def parse_brace_span(raw: str, label: str) -> ParseAttempt:
    """Stage 3: the first balanced ``{...}`` span that decodes as a JSON object."""

    decoder = json.JSONDecoder()
    index = raw.find("{")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(raw, index)
        except json.JSONDecodeError:
            index = raw.find("{", index + 1)
            continue
        if isinstance(value, Mapping):
            return ParseAttempt(ok=True, value=value, stage="brace")
        index = raw.find("{", index + 1)
    return _MISS


def parse_markdown_sections(raw: str, label: str) -> ParseAttempt:
    """Stage 4: split on ``#``..``###`` headings into titled sections."""

    matches = list(_HEADING_RE.finditer(raw))
    if not matches:
        return _MISS
    sections: list[dict[str, str]] = []
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(raw)
        sections.append(
            {
                "title": match.group(1).strip(),
                "content": raw[match.end() : end].strip(),
            }
        )
    return ParseAttempt(
        ok=True,
        value={"label": label, "sections": sections, "_raw": raw},
        stage="sections",
    )


def parse_fallback(raw: str, label: str) -> ParseAttempt:
    """Stage 5: wrap the raw text; always succeeds."""

    return ParseAttempt(ok=True, value={"label": label, "text": raw}, stage="fallback")


DEFAULT_LADDER: Final[tuple[Parser, ...]] = (
    parse_whole_document,
    parse_fenced_block,
    parse_brace_span,
    parse_markdown_sections,
    parse_fallback,
)


def parse_with_stage(
    raw: object,
    *,
    label: str = "Response",
    ladder: tuple[Parser, ...] = DEFAULT_LADDER,
) -> ParseAttempt:
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    for parser in ladder:
        try:
            attempt = parser(text, label)
        except Exception:  # noqa: BLE001
            continue
        if attempt.ok:
            return replace(attempt, value=to_json_safe(attempt.value))
    return parse_fallback(text, label)


def to_json_safe(value: object, *, max_depth: int = MAX_PARSED_DEPTH) -> Any:
    """Degrade a parsed value to plain JSON data.

    Non-finite floats become ``None``, dates and times become ISO strings, other
    leaves become truncated ``str``, and containers nested past ``max_depth`` collapse
    to a short placeholder.
    """

    return _json_safe(value, max_depth, 0)


def _json_safe(value: object, max_depth: int, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if depth >= max_depth:
            return f"<{type(value).__name__} nested deeper than {max_depth}>"
        if isinstance(value, Mapping):
            return {
                str(key): _json_safe(item, max_depth, depth + 1) for key, item in value.items()
            }
        return [_json_safe(item, max_depth, depth + 1) for item in value]
    return _truncate(str(value))


def _truncate(text: str) -> str:
    if len(text) <= _TRUNCATED_CHARS:
        return text
    return text[: _TRUNCATED_CHARS - 1] + "…"


def parse_response(
    raw: object,
    *,
    label: str = "Response",
    ladder: tuple[Parser, ...] = DEFAULT_LADDER,
) -> Any:
    """Return the most specific structured interpretation of ``raw``."""

    return parse_with_stage(raw, label=label, ladder=ladder).value


__all__ = [
    "DEFAULT_LADDER",
    "MAX_PARSED_DEPTH",
    "ParseAttempt",
    "Parser",
    "parse_brace_span",
    "parse_fallback",
    "parse_fenced_block",
    "parse_markdown_sections",
    "parse_response",
    "parse_whole_document",
    "parse_with_stage",
    "to_json_safe",
]
