"""
agent-team-orchestrator — token-budgeted context assembly

File: src/agent_team/synthesis_plane/context_assembler.py
Last updated: 2026-10-19

Purpose
- Builds the context block handed to an agent for one task, within its tier budget.

What should be included in this file
- Per-tier token budgets and a character-based token estimate.
- Role visibility policy over message types.
- Per-role accumulated notes with folding of old notes into a running summary.

Functional requirements
- The project block is always included, even when it alone exceeds the budget.
- Message selection is newest-first within budget, emitted oldest-first.
- Never raises for well-typed inputs.

Non-functional requirements
- Deterministic for the same inputs; no I/O.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Final

from agent_team.constants import ADDRESS_PREFIX, BROADCAST_ADDRESS
from agent_team.domain.models import Message, ProjectContext, Tier, as_tier, utc_now
from agent_team.domain.plan import Task

DEFAULT_TIER_BUDGETS: Final[Mapping[Tier, int]] = MappingProxyType(
    {Tier.MINIMAL: 4_000, Tier.STANDARD: 12_000, Tier.DEEP: 32_000}
)
TASK_RESERVE_TOKENS: Final[int] = 500
NOTE_FOLD_THRESHOLD: Final[int] = 20
NOTES_KEPT_AFTER_FOLD: Final[int] = 10
NOTE_SUMMARY_CHARS: Final[int] = 100
FEATURES_SHOWN: Final[int] = 10
CONSTRAINTS_SHOWN: Final[int] = 5
_MESSAGES_HEADER: Final[str] = "\n## Team Communication\n"


@dataclass(frozen=True, slots=True)
class VisibilityRule:
    """Message types a role may see; ``see_all`` bypasses the lists."""

    allow: frozenset[str] = frozenset()
    deny: frozenset[str] = frozenset()
    see_all: bool = False

    def permits(self, message_type: str) -> bool:
        if self.see_all:
            return True
        if message_type in self.deny:
            return False
        return message_type in self.allow


def _rule(allow: Sequence[str], deny: Sequence[str] = ()) -> VisibilityRule:
    return VisibilityRule(allow=frozenset(allow), deny=frozenset(deny))


DEFAULT_VISIBILITY_RULE: Final[VisibilityRule] = _rule(("task", "broadcast", "report"))

VISIBILITY_RULES: Final[Mapping[str, VisibilityRule]] = MappingProxyType(
    {
        "sentinel": VisibilityRule(see_all=True),
        "project-auditor": VisibilityRule(see_all=True),
        "coo": _rule(
            ("task", "status", "report", "escalation", "approval", "broadcast", "plan"),
            ("code",),
        ),
        "cto": _rule(("task", "code", "architecture", "report", "security", "broadcast", "plan")),
        "cfo": _rule(("task", "cost", "report", "budget", "broadcast"), ("code", "architecture")),
        "frontend": _rule(("task", "code", "design", "broadcast")),
        "backend": _rule(("task", "code", "architecture", "broadcast")),
        "devops": _rule(("task", "code", "infra", "broadcast")),
    }
)


@dataclass(frozen=True, slots=True)
class ContextNote:
    content: str
    category: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class AssembledContext:
    """Context handed to one agent call; ``used`` counts tokens actually included."""

    system_context: str
    task_context: str
    budget: int
    used: int


def estimate_tokens(text: str | None) -> int:
    return math.ceil(len(text or "") / 4)


class ContextAssembler:
    """Per-role context builder with note accumulation and summary folding."""

    def __init__(
        self,
        project: ProjectContext | None = None,
        *,
        tier_budgets: Mapping[Tier | str, int] | None = None,
        visibility: Mapping[str, VisibilityRule] | None = None,
    ) -> None:
        budgets: dict[Tier, int] = dict(DEFAULT_TIER_BUDGETS)
        for tier, value in (tier_budgets or {}).items():
            if value <= 0:
                raise ValueError("tier budgets must be > 0")
            budgets[as_tier(tier)] = value
        self._budgets = budgets
        self._visibility = dict(visibility) if visibility is not None else dict(VISIBILITY_RULES)
        self._project = project or ProjectContext()
        self._notes: dict[str, list[ContextNote]] = {}
        self._summaries: dict[str, str] = {}

    @property
    def project(self) -> ProjectContext:
        return self._project

    def budget_for(self, tier: Tier | str | None) -> int:
        if tier is None:
            return self._budgets[Tier.STANDARD]
        try:
            return self._budgets[as_tier(tier)]
        except ValueError:
            return self._budgets[Tier.STANDARD]

    def build_context(
        self,
        role_id: str,
        tier: Tier | str | None,
        task: Task,
        history: Sequence[Message] = (),
    ) -> AssembledContext:
        budget = self.budget_for(tier)

        project_block = self._project_block()
        parts = [project_block]
        used = estimate_tokens(project_block)

        summary = self._summaries.get(role_id, "")
        if summary:
            summary_block = f"\n## Prior Context Summary\n{summary}\n"
            if used + estimate_tokens(summary_block) <= budget:
                parts.append(summary_block)
                used += estimate_tokens(summary_block)

        notes = self._notes.get(role_id, [])
        if notes:
            notes_text = "\n".join(f"- {note.content}" for note in notes)
            notes_block = f"\n## Your Prior Notes\n{notes_text}\n"
            if used + estimate_tokens(notes_block) <= budget:
                parts.append(notes_block)
                used += estimate_tokens(notes_block)

        message_budget = max(
            0,
            budget
            - used
            - estimate_tokens(_MESSAGES_HEADER)
            - estimate_tokens(task.description)
            - TASK_RESERVE_TOKENS,
        )
        selected: list[str] = []
        message_tokens = 0
        for message in reversed(self.visible_messages(role_id, history)):
            line = f"[{message.from_role}→{message.to}] {message.content}\n"
            line_tokens = estimate_tokens(line)
            if message_tokens + line_tokens > message_budget:
                break
            selected.append(line)
            message_tokens += line_tokens
        if selected:
            parts.append(_MESSAGES_HEADER + "".join(reversed(selected)))
            used += estimate_tokens(_MESSAGES_HEADER) + message_tokens

        return AssembledContext(
            system_context="".join(parts),
            task_context=task.description,
            budget=budget,
            used=used,
        )

    def visible_messages(self, role_id: str, history: Sequence[Message]) -> list[Message]:
        rule = self._visibility.get(role_id, DEFAULT_VISIBILITY_RULE)
        if rule.see_all:
            return list(history)
        direct = f"{ADDRESS_PREFIX}{role_id}"
        return [
            message
            for message in history
            if message.to in (direct, BROADCAST_ADDRESS) or rule.permits(str(message.type))
        ]

    def add_agent_context(self, role_id: str, content: str, category: str = "note") -> None:
        notes = self._notes.setdefault(role_id, [])
        notes.append(ContextNote(content=content, category=category))
        if len(notes) > NOTE_FOLD_THRESHOLD:
            self._fold_notes(role_id)

    def update_project_context(self, updates: Mapping[str, object]) -> ProjectContext:
        self._project = self._project.merged(updates)
        return self._project

    def set_project_context(self, project: ProjectContext) -> None:
        self._project = project

    def notes(self, role_id: str) -> tuple[ContextNote, ...]:
        return tuple(self._notes.get(role_id, ()))

    def summary(self, role_id: str) -> str:
        return self._summaries.get(role_id, "")

    def clear(self) -> None:
        self._notes.clear()
        self._summaries.clear()

    def _fold_notes(self, role_id: str) -> None:
        notes = self._notes.get(role_id, [])
        if len(notes) <= NOTES_KEPT_AFTER_FOLD:
            return
        folded = notes[:-NOTES_KEPT_AFTER_FOLD]
        fold = " | ".join(
            f"[{note.category}] {note.content[:NOTE_SUMMARY_CHARS]}" for note in folded
        )
        existing = self._summaries.get(role_id)
        self._summaries[role_id] = f"{existing}\n---\n{fold}" if existing else fold
        self._notes[role_id] = notes[-NOTES_KEPT_AFTER_FOLD:]

    def _project_block(self) -> str:
        project = self._project
        lines = ["## Project Context", f"Project: {project.name or 'Unnamed'}"]
        if project.stack:
            lines.append(f"Stack: {project.stack}")
        if project.features:
            shown = ", ".join(project.features[:FEATURES_SHOWN])
            extra = len(project.features) - FEATURES_SHOWN
            lines.append(f"Features: {shown}" + (f" (+{extra} more)" if extra > 0 else ""))
        if project.constraints:
            lines.append(f"Constraints: {', '.join(project.constraints[:CONSTRAINTS_SHOWN])}")
        return "\n".join(lines) + "\n"


__all__ = [
    "DEFAULT_TIER_BUDGETS",
    "DEFAULT_VISIBILITY_RULE",
    "VISIBILITY_RULES",
    "AssembledContext",
    "ContextAssembler",
    "ContextNote",
    "VisibilityRule",
    "estimate_tokens",
]
