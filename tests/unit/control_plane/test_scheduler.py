from __future__ import annotations

import pytest

from agent_team.control_plane.scheduler import PlanCursor, SequentialTaskRunner, TaskRunner
from agent_team.domain.models import TaskResult, TaskStatus
from agent_team.domain.plan import Milestone, Phase, Plan, Task


def _plan(phase_count: int) -> Plan:
    return Plan(
        phases=tuple(
            Phase(
                phase_id=f"phase-{n}",
                name=f"Phase {n}",
                milestones=(Milestone(f"m{n}", "Work", (Task(f"t{n}", "Do", "backend"),)),),
            )
            for n in range(1, phase_count + 1)
        )
    )


def test_cursor_walks_phases_front_to_back() -> None:
    plan = _plan(2)
    cursor = PlanCursor()
    assert cursor.current(plan) is plan.phases[0]
    cursor = cursor.advance()
    assert cursor.current(plan) is plan.phases[1]
    cursor = cursor.advance()
    assert cursor.exhausted(plan)
    assert cursor.current(plan) is None
    with pytest.raises(ValueError):
        PlanCursor(phase_index=-1)


async def test_sequential_runner_preserves_order_and_never_overlaps() -> None:
    tasks = [Task(f"t{i}", f"Task {i}", "backend") for i in range(4)]
    active = 0
    started: list[str] = []

    async def execute(task: Task) -> TaskResult:
        nonlocal active
        active += 1
        assert active == 1
        started.append(task.task_id)
        active -= 1
        return TaskResult(task.task_id, task.title, task.assigned_to, TaskStatus.COMPLETED)

    runner = SequentialTaskRunner()
    assert isinstance(runner, TaskRunner)
    results = await runner.run(tasks, execute)
    assert started == ["t0", "t1", "t2", "t3"]
    assert [result.task_id for result in results] == started
