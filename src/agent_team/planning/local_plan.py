"""
agent-team-orchestrator — deterministic fallback plan

File: src/agent_team/planning/local_plan.py
Last updated: 2026-10-19

Purpose
- Build a plan from project facts alone, without a planning-agent call.

Functional requirements
- Same project context always yields the same plan.
- Phases: architecture & research, core features (if any), integrations (if any),
  then testing & security review.
"""

from __future__ import annotations

from typing import Final

from agent_team.domain.models import ProjectContext, Tier
from agent_team.domain.plan import Milestone, Phase, Plan, Task

_FRONTEND_HINTS: Final[tuple[str, ...]] = ("ui", "page")


def feature_owner(label: str) -> str:
    """Route UI/page features to frontend, everything else to backend."""

    lowered = label.lower()
    return "frontend" if any(hint in lowered for hint in _FRONTEND_HINTS) else "backend"


def build_local_plan(project: ProjectContext | None = None) -> Plan:
    project = project or ProjectContext()
    phases: list[Phase] = []

    def add_phase(name: str, milestone_title: str, tasks: list[tuple[str, str, Tier, str]]) -> None:
        n = len(phases) + 1
        phases.append(
            Phase(
                phase_id=f"phase-{n}",
                name=name,
                milestones=(
                    Milestone(
                        milestone_id=f"m{n}_1",
                        title=milestone_title,
                        tasks=tuple(
                            Task(
                                task_id=f"t{n}_{index}",
                                title=title,
                                assigned_to=role,
                                tier=tier,
                                description=description,
                            )
                            for index, (title, role, tier, description) in enumerate(
                                tasks, start=1
                            )
                        ),
                    ),
                ),
            )
        )

    add_phase(
        "Architecture & Research",
        "System Architecture",
        [
            (
                "Define system architecture",
                "cto",
                Tier.DEEP,
                f"Design architecture for {project.name or 'the project'} "
                f"using {project.stack or 'optimal stack'}.",
            ),
            (
                "Research tech stack",
                "deep-researcher",
                Tier.STANDARD,
                "Research best practices and gotchas for the chosen stack.",
            ),
            (
                "Security requirements",
                "sentinel",
                Tier.DEEP,
                "Define security requirements, authentication strategy, and data protection plan.",
            ),
            (
                "UI/UX design system",
                "frontend",
                Tier.STANDARD,
                "Design the visual system: colors, typography, spacing, component patterns.",
            ),
        ],
    )

    if project.features:
        add_phase(
            "Core Feature Implementation",
            "Build Core Features",
            [
                (
                    f"Implement: {label}",
                    feature_owner(label),
                    Tier.STANDARD,
                    f"Implement the {label} feature.",
                )
                for label in project.features
            ],
        )

    if project.integrations:
        add_phase(
            "Integrations",
            "Connect External Services",
            [
                (f"Integrate: {name}", "backend", Tier.STANDARD, f"Set up and integrate {name}.")
                for name in project.integrations
            ],
        )

    add_phase(
        "Testing & Security Review",
        "Quality Assurance",
        [
            (
                "Write unit tests",
                "qa-tester",
                Tier.STANDARD,
                "Write comprehensive unit and integration tests.",
            ),
            (
                "Security audit",
                "sentinel",
                Tier.DEEP,
                "Full security audit of implemented features.",
            ),
            (
                "Quality review",
                "devils-advocate",
                Tier.STANDARD,
                "Review all agent output for quality and completeness.",
            ),
            (
                "Project documentation",
                "documenter",
                Tier.MINIMAL,
                "Document all decisions, APIs, and setup instructions.",
            ),
        ],
    )

    return Plan(
        phases=tuple(phases),
        summary=(
            f"{len(phases)}-phase plan covering {len(project.features)} features "
            f"and {len(project.integrations)} integrations."
        ),
        estimated_rounds=len(phases),
    )


__all__ = ["build_local_plan", "feature_owner"]
