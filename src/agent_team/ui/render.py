"""Output rendering for the agent-team CLI.

File: src/agent_team/ui/render.py
Last updated: 2026-10-19

Purpose
- Provide a thin rendering layer for CLI output.
- Respect NO_COLOR environment variable and --no-color CLI flag.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Plan, role-table, and session-summary formatting shared by the commands.

Functional requirements
- Plain-text rendering must always work without external dependencies.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, Sequence
from typing import TextIO

from agent_team.domain.plan import Plan
from agent_team.synthesis_plane.roles import RoleRegistry


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output. Color is only used for
    headings, and only on an interactive stream.
    """

    _BOLD = "\033[1m"
    _RESET = "\033[0m"

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def heading(self, text: str) -> None:
        if self._color:
            self._write(f"{self._BOLD}{text}{self._RESET}")
        else:
            self._write(text)

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def blank(self) -> None:
        self._write("")

    def section(self, title: str) -> None:
        self._write("")
        self.heading(title)

    def warning(self, text: str) -> None:
        self._write(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._write(f"  {_pad(list(row))}")

    def next_steps(self, steps: Sequence[str]) -> None:
        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._write(f"  $ {step}")

    def _write(self, line: str) -> None:
        print(line, file=self._stream)


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


def role_rows(registry: RoleRegistry) -> list[list[str]]:
    """One row per role: id, label, tier, reports-to, and human/agent kind."""

    rows: list[list[str]] = []
    for entry in registry.all():
        role = entry.role
        rows.append(
            [
                role.role_id,
                role.label,
                role.tier.value,
                role.reports_to or "-",
                "human" if role.human else "agent",
            ]
        )
    return rows


def render_plan(renderer: CLIRenderer, plan: Plan) -> None:
    renderer.heading(plan.summary or f"{len(plan.phases)}-phase plan")
    renderer.kv("Estimated rounds", plan.estimated_rounds)
    renderer.kv("Tasks", plan.task_count)
    for index, phase in enumerate(plan.phases, start=1):
        renderer.section(f"Phase {index}: {phase.name}")
        for milestone in phase.milestones:
            renderer.text(f"  {milestone.title}")
            renderer.items(
                [
                    f"[{task.tier.value if task.tier else 'default'}] "
                    f"@{task.assigned_to}: {task.title}"
                    for task in milestone.tasks
                ],
                prefix="  - ",
            )


def render_cost_summary(renderer: CLIRenderer, snapshot: Mapping[str, object]) -> None:
    session = snapshot.get("session")
    if not isinstance(session, Mapping):
        return
    renderer.kv(
        "Cost",
        f"${float(session.get('cost', 0.0)):.4f} "
        f"(input={session.get('input', 0)} output={session.get('output', 0)} "
        f"calls={session.get('calls', 0)})",
    )


__all__ = [
    "CLIRenderer",
    "create_renderer",
    "render_cost_summary",
    "render_plan",
    "role_rows",
]
