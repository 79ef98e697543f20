"""Immutable work breakdown: Plan → Phase → Milestone → Task."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from agent_team.domain.models import JSONValue, Tier, as_tier

if TYPE_CHECKING:
    from collections.abc import Callable


class PlanValidationError(ValueError):
    """Raised when a plan document does not match the expected shape."""


def _required_str(payload: Mapping[str, object], key: str, path: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PlanValidationError(f"{path}.{key} must be a non-empty string")
    return value.strip()


def _optional_str(payload: Mapping[str, object], key: str, default: str) -> str:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise PlanValidationError(f"{key} must be a string")
    return value.strip() or default


def _as_list(payload: Mapping[str, object], key: str, path: str) -> list[Mapping[str, object]]:
    raw = payload.get(key, [])
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        raise PlanValidationError(f"{path}.{key} must be a list")
    out: list[Mapping[str, object]] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise PlanValidationError(f"{path}.{key}[{index}] must be an object")
        out.append(item)
    return out


@dataclass(frozen=True, slots=True)
class Task:
    """Single unit of work assigned to one role; consumed exactly once."""

    task_id: str
    title: str
    assigned_to: str
    description: str = ""
    tier: Tier | None = None
    context: str | None = None

    def __post_init__(self) -> None:
        for attr in ("task_id", "title", "assigned_to"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise PlanValidationError(f"Task.{attr} must be a non-empty string")
            object.__setattr__(self, attr, value.strip())
        if not isinstance(self.description, str):
            raise PlanValidationError("Task.description must be a string")
        if self.tier is not None:
            try:
                object.__setattr__(self, "tier", as_tier(self.tier, "Task.tier"))
            except ValueError as exc:
                raise PlanValidationError(str(exc)) from exc

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.task_id,
            "title": self.title,
            "assignedTo": self.assigned_to,
            "description": self.description,
        }
        if self.tier is not None:
            payload["tier"] = self.tier.value
        if self.context is not None:
            payload["context"] = self.context
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, object], *, default_id: str, path: str) -> Task:
        raw_tier = payload.get("tier")
        return cls(
            task_id=_optional_str(payload, "id", default_id),
            title=_required_str(payload, "title", path),
            assigned_to=_required_str(payload, "assignedTo", path),
            description=_optional_str(payload, "description", ""),
            tier=raw_tier if isinstance(raw_tier, (str, Tier)) and raw_tier else None,
            context=payload.get("context") if isinstance(payload.get("context"), str) else None,
        )


@dataclass(frozen=True, slots=True)
class Milestone:
    """Ordered task list executed as one round."""

    milestone_id: str
    title: str
    tasks: tuple[Task, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tasks", tuple(self.tasks))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.milestone_id,
            "title": self.title,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(frozen=True, slots=True)
class Phase:
    """Ordered milestones gated by approval when the session is not hands-off."""

    phase_id: str
    name: str
    milestones: tuple[Milestone, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "milestones", tuple(self.milestones))

    def iter_tasks(self) -> Iterator[Task]:
        for milestone in self.milestones:
            yield from milestone.tasks

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.phase_id,
            "name": self.name,
            "milestones": [milestone.to_dict() for milestone in self.milestones],
        }


@dataclass(frozen=True, slots=True)
class Plan:
    """Session plan; traversed strictly in order and never mutated."""

    phases: tuple[Phase, ...]
    summary: str = ""
    estimated_rounds: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "phases", tuple(self.phases))
        if self.estimated_rounds < 0:
            raise PlanValidationError("Plan.estimated_rounds must be >= 0")

    @property
    def task_count(self) -> int:
        return sum(1 for phase in self.phases for _ in phase.iter_tasks())

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "phases": [phase.to_dict() for phase in self.phases],
            "summary": self.summary,
            "estimatedRounds": self.estimated_rounds,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, object],
        *,
        default_tier: Callable[[str], Tier | None] | None = None,
    ) -> Plan:
        """Validate a plan document; missing ids become positional ids."""

        if not isinstance(payload, Mapping):
            raise PlanValidationError("plan must be an object")
        raw_phases = _as_list(payload, "phases", "plan")
        if not raw_phases:
            raise PlanValidationError("plan.phases must not be empty")

        phases: list[Phase] = []
        for p_index, raw_phase in enumerate(raw_phases, start=1):
            p_path = f"plan.phases[{p_index - 1}]"
            milestones: list[Milestone] = []
            for m_index, raw_milestone in enumerate(
                _as_list(raw_phase, "milestones", p_path), start=1
            ):
                m_path = f"{p_path}.milestones[{m_index - 1}]"
                tasks: list[Task] = []
                for t_index, raw_task in enumerate(
                    _as_list(raw_milestone, "tasks", m_path), start=1
                ):
                    task = Task.from_dict(
                        raw_task,
                        default_id=f"t{p_index}.{m_index}.{t_index}",
                        path=f"{m_path}.tasks[{t_index - 1}]",
                    )
                    if task.tier is None and default_tier is not None:
                        fallback = default_tier(task.assigned_to)
                        if fallback is not None:
                            task = Task(
                                task_id=task.task_id,
                                title=task.title,
                                assigned_to=task.assigned_to,
                                description=task.description,
                                tier=fallback,
                                context=task.context,
                            )
                    tasks.append(task)
                milestones.append(
                    Milestone(
                        milestone_id=_optional_str(raw_milestone, "id", f"m{p_index}.{m_index}"),
                        title=_optional_str(raw_milestone, "title", f"Milestone {m_index}"),
                        tasks=tuple(tasks),
                    )
                )
            phases.append(
                Phase(
                    phase_id=_optional_str(raw_phase, "id", f"phase-{p_index}"),
                    name=_optional_str(raw_phase, "name", f"Phase {p_index}"),
                    milestones=tuple(milestones),
                )
            )

        raw_rounds = payload.get("estimatedRounds")
        if isinstance(raw_rounds, bool) or not isinstance(raw_rounds, int) or raw_rounds < 0:
            raw_rounds = len(phases)
        return cls(
            phases=tuple(phases),
            summary=_optional_str(payload, "summary", ""),
            estimated_rounds=raw_rounds,
        )


__all__ = ["Milestone", "Phase", "Plan", "PlanValidationError", "Task"]
