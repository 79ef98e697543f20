"""Round scheduling: plan traversal cursor and the swappable task runner."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from agent_team.domain.models import TaskResult
from agent_team.domain.plan import Phase, Plan, Task

TaskExecutor = Callable[[Task], Awaitable[TaskResult]]


@runtime_checkable
class TaskRunner(Protocol):
    """Runs one round's tasks and returns results in task order."""

    async def run(
        self, tasks: Sequence[Task], execute: TaskExecutor
    ) -> tuple[TaskResult, ...]: ...


class SequentialTaskRunner:
    """Strictly in-order runner; each task finishes before the next starts."""

    __slots__ = ()

    async def run(self, tasks: Sequence[Task], execute: TaskExecutor) -> tuple[TaskResult, ...]:
        results: list[TaskResult] = []
        for task in tasks:
            results.append(await execute(task))
        return tuple(results)


@dataclass(frozen=True, slots=True)
class PlanCursor:
    """Position of the next phase to run; plans are consumed front to back."""

    phase_index: int = 0

    def __post_init__(self) -> None:
        if self.phase_index < 0:
            raise ValueError("phase_index must be >= 0")

    def exhausted(self, plan: Plan) -> bool:
        return self.phase_index >= len(plan.phases)

    def current(self, plan: Plan) -> Phase | None:
        if self.exhausted(plan):
            return None
        return plan.phases[self.phase_index]

    def advance(self) -> PlanCursor:
        return PlanCursor(phase_index=self.phase_index + 1)


__all__ = ["PlanCursor", "SequentialTaskRunner", "TaskExecutor", "TaskRunner"]
