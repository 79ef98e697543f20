"""
agent-team-orchestrator — execution engine tests.

File: tests/unit/control_plane/test_engine.py
Last updated: 2026-10-19

What this test file should cover
- Session start from the planning agent, the local fallback, and explicit plans.
- Phase execution, approval gates, and session completion.
- Per-task failure isolation, skipped and pending tasks.
- Budget escalation and lifecycle events.
- State-gate operations that must not mutate outside their valid states.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from agent_team.control_plane import (
    BudgetLimits,
    CostLedger,
    EngineStateError,
    ExecutionEngine,
    SequentialTaskRunner,
    TaskExecutor,
)
from agent_team.domain.models import (
    EngineState,
    ExternalState,
    ProjectContext,
    TaskResult,
    TaskStatus,
)
from agent_team.domain.plan import Milestone, Phase, Plan, Task
from agent_team.messaging import MessageBus
from agent_team.observability.events import EngineEvent, EngineEventType, EventBus
from agent_team.synthesis_plane.providers import ScriptedProvider


@dataclass
class RecordingLogger:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def debug(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


PLAN_DOCUMENT = {
    "phases": [
        {
            "id": "phase-1",
            "name": "Build",
            "milestones": [
                {
                    "id": "m1",
                    "title": "API and UI",
                    "tasks": [
                        {"id": "t1", "title": "Login API", "assignedTo": "backend"},
                        {"id": "t2", "title": "Login form", "assignedTo": "frontend"},
                    ],
                },
                {
                    "id": "m2",
                    "title": "Verify",
                    "tasks": [{"id": "t3", "title": "Login tests", "assignedTo": "qa-tester"}],
                },
            ],
        }
    ],
    "summary": "One phase",
    "estimatedRounds": 2,
}


def _engine(
    provider: ScriptedProvider | None = None, **kwargs: Any
) -> tuple[ExecutionEngine, ScriptedProvider, RecordingLogger]:
    provider = provider or ScriptedProvider(responses={"coo": json.dumps(PLAN_DOCUMENT)})
    logger = RecordingLogger()
    kwargs.setdefault("bus", MessageBus(logger=logger))
    kwargs.setdefault("ledger", CostLedger(logger=logger))
    engine = ExecutionEngine(provider=provider, logger=logger, **kwargs)
    return engine, provider, logger


def _single_phase_plan(*tasks: Task) -> Plan:
    return Plan(phases=(Phase("phase-1", "Only", (Milestone("m1", "Round one", tasks),)),))


async def test_start_session_uses_planning_agent() -> None:
    engine, provider, _ = _engine()
    handle = await engine.start_session(ProjectContext(name="Shop"))

    assert handle.session_id.startswith("ses-")
    assert handle.plan.summary == "One phase"
    assert engine.state is EngineState.PLANNING
    assert engine.external_state is ExternalState.INITIALIZING
    assert len(provider.calls_for("coo")) == 1
    assert engine.ledger.agent_cost("coo").calls == 1
    assert engine.bus.all()[-1].content == "Execution plan created: 1 phases, estimated 2 rounds."
    assert engine.registry.stats()["active"] == 14


async def test_phase_runs_milestones_as_rounds_then_waits_for_approval() -> None:
    engine, provider, _ = _engine()
    await engine.start_session(ProjectContext(name="Shop"))

    outcome = await engine.execute_next_phase()

    assert not outcome.complete
    assert outcome.phase is not None and outcome.phase.name == "Build"
    assert [(r.task_id, r.status) for r in outcome.results] == [
        ("t1", TaskStatus.COMPLETED),
        ("t2", TaskStatus.COMPLETED),
        ("t3", TaskStatus.COMPLETED),
    ]
    assert engine.current_round == 2
    assert [r.task_id for r in engine.last_round] == ["t3"]
    assert engine.state is EngineState.AWAITING_APPROVAL
    assert engine.external_state is ExternalState.PAUSED
    assert [call.role for call in provider.calls] == ["coo", "backend", "frontend", "qa-tester"]
    assert "### Context\n## Project Context\nProject: Shop" in provider.calls[1].prompt

    with pytest.raises(EngineStateError, match="awaiting-approval"):
        await engine.execute_next_phase()

    assert engine.approve_current() is True
    assert engine.state is EngineState.IDLE
    assert engine.bus.by_type("approval")[-1].content == 'Phase "Build" approved. Proceeding.'

    final = await engine.execute_next_phase()
    assert final.complete
    assert final.report is not None and final.report["session"]["calls"] == 4
    assert engine.state is EngineState.SESSION_COMPLETE
    assert engine.external_state is ExternalState.COMPLETED
    assert len(engine.ledger.history()) == 1


async def test_hands_off_session_runs_local_plan_without_gates() -> None:
    engine, provider, _ = _engine(ScriptedProvider())
    handle = await engine.start_session(hands_off=True, use_planner=False)
    assert len(handle.plan.phases) == 2

    first = await engine.execute_next_phase()
    assert engine.state is EngineState.PHASE_COMPLETE
    second = await engine.execute_next_phase()
    done = await engine.execute_next_phase()

    assert not first.complete and not second.complete and done.complete
    assert len(engine.completed_tasks) == 8
    assert provider.calls_for("coo") == ()
    assert engine.summary()["completed_tasks"] == 8


async def test_failed_task_does_not_fail_the_round() -> None:
    provider = ScriptedProvider(failures={"backend": "quota exceeded"})
    engine, _, logger = _engine(provider)
    plan = _single_phase_plan(
        Task("t1", "Login API", "backend"),
        Task("t2", "Login form", "frontend"),
    )
    await engine.start_session(plan=plan, hands_off=True)
    outcome = await engine.execute_next_phase()

    statuses = {r.task_id: r.status for r in outcome.results}
    assert statuses == {"t1": TaskStatus.FAILED, "t2": TaskStatus.COMPLETED}
    escalation = engine.bus.by_type("escalation")[0]
    assert escalation.from_role == "backend"
    assert escalation.to == "@coo"
    assert escalation.content.startswith("Task failed: Login API")
    assert "engine_task_failed" in logger.names()
    assert [r.task_id for r in engine.completed_tasks] == ["t2"]


async def test_unknown_and_human_roles() -> None:
    engine, provider, _ = _engine(ScriptedProvider())
    plan = _single_phase_plan(
        Task("t1", "Sign contract", "ceo"),
        Task("t2", "Mystery", "intern"),
    )
    await engine.start_session(plan=plan)
    outcome = await engine.execute_next_phase()

    pending, skipped = outcome.results
    assert (pending.status, pending.error) == (TaskStatus.PENDING, "agent not instantiated")
    assert (skipped.status, skipped.error) == (TaskStatus.SKIPPED, "no agent")
    assert engine.bus.for_role("ceo")[-1].content == "Task assigned: Sign contract"
    assert provider.calls == []


async def test_planner_failure_falls_back_to_local_plan() -> None:
    provider = ScriptedProvider(failures={"coo": "offline"})
    engine, _, logger = _engine(provider)
    handle = await engine.start_session(ProjectContext(name="Shop", features=("Search",)))
    assert handle.plan.phases[1].name == "Core Feature Implementation"
    assert "engine_planner_failed" in logger.names()


async def test_budget_alert_escalates_from_finance_to_planner() -> None:
    logger = RecordingLogger()
    ledger = CostLedger(limits=BudgetLimits(session_usd=0.000001), logger=logger)
    events = EventBus()
    alerts: list[EngineEvent] = []
    events.subscribe(EngineEventType.COST_ALERT, alerts.append)
    engine, _, _ = _engine(ledger=ledger, events=events)

    await engine.start_session(ProjectContext(name="Shop"))

    escalations = engine.bus.by_type("escalation")
    assert escalations[0].from_role == "cfo"
    assert escalations[0].content.startswith("Budget alert: Session budget exceeded")
    assert [event.payload["key"] for event in alerts] == ["session"]

    await engine.execute_next_phase()
    assert len(engine.bus.by_type("escalation")) == 1


async def test_lifecycle_events_are_published_in_order() -> None:
    events = EventBus()
    engine, _, _ = _engine(events=events, bus=MessageBus(logger=RecordingLogger()))
    await engine.start_session(ProjectContext(name="Shop"), hands_off=True)
    await engine.execute_next_phase()
    await engine.execute_next_phase()

    lifecycle = [
        event.event_type
        for event in events.replay()
        if event.event_type not in (EngineEventType.STATE_CHANGE, EngineEventType.COST_UPDATE)
    ]
    assert lifecycle == [
        EngineEventType.PLAN_READY,
        EngineEventType.PHASE_STARTED,
        EngineEventType.ROUND_STARTED,
        EngineEventType.ROUND_COMPLETE,
        EngineEventType.ROUND_STARTED,
        EngineEventType.ROUND_COMPLETE,
        EngineEventType.PHASE_COMPLETE,
        EngineEventType.SESSION_COMPLETE,
    ]
    states = [e.payload["state"] for e in events.replay(event_type="state-change")]
    assert states == [
        "planning",
        "executing",
        "reviewing",
        "executing",
        "reviewing",
        "phase-complete",
        "session-complete",
    ]
    assert events.replay(event_type="cost-update")


async def test_invalid_operations_raise_or_no_op() -> None:
    engine, _, _ = _engine()
    with pytest.raises(EngineStateError, match="no plan loaded"):
        await engine.execute_next_phase()
    assert engine.approve_current() is False
    assert engine.pause() is False
    assert engine.resume() is False
    assert engine.state is EngineState.IDLE

    await engine.start_session(ProjectContext(name="Shop"))
    with pytest.raises(EngineStateError, match="cannot start session"):
        await engine.start_session()
    assert engine.state is EngineState.PLANNING


async def test_pause_and_resume_are_state_gates() -> None:
    observed: list[EngineState] = []

    class GatingRunner(SequentialTaskRunner):
        __slots__ = ()

        async def run(
            self, tasks: Sequence[Task], execute: TaskExecutor
        ) -> tuple[TaskResult, ...]:
            assert engine.pause() is True
            observed.append(engine.state)
            assert engine.pause() is False
            assert engine.resume() is True
            observed.append(engine.state)
            return await super().run(tasks, execute)

    engine, _, _ = _engine(ScriptedProvider(), runner=GatingRunner())
    await engine.start_session(plan=_single_phase_plan(Task("t1", "Docs", "documenter")))
    await engine.execute_next_phase()
    assert observed == [EngineState.PAUSED, EngineState.EXECUTING]


async def test_session_can_restart_after_completion() -> None:
    engine, _, _ = _engine(ScriptedProvider())
    plan = _single_phase_plan(Task("t1", "Docs", "documenter"))
    first = await engine.start_session(plan=plan, hands_off=True)
    await engine.execute_next_phase()
    await engine.execute_next_phase()
    second = await engine.start_session(plan=plan, hands_off=True)

    assert second.session_id != first.session_id
    assert engine.completed_tasks == ()
    assert engine.ledger.total_cost == 0.0
    engine.close()


def _two_phase_plan(role: str) -> Plan:
    return Plan(
        phases=(
            Phase("phase-1", "First", (Milestone("m1", "Round one", (Task("t1", "A", role),)),)),
            Phase("phase-2", "Second", (Milestone("m2", "Round two", (Task("t2", "B", role),)),)),
        )
    )


@pytest.mark.parametrize(
    ("role", "status"),
    [("ghost", TaskStatus.SKIPPED), ("ceo", TaskStatus.PENDING)],
)
async def test_session_completes_when_no_task_has_an_agent(role: str, status: TaskStatus) -> None:
    engine, provider, _ = _engine(ScriptedProvider())
    await engine.start_session(plan=_two_phase_plan(role), hands_off=True)

    first = await engine.execute_next_phase()
    second = await engine.execute_next_phase()
    done = await engine.execute_next_phase()

    assert [r.status for r in first.results + second.results] == [status, status]
    assert done.complete
    assert engine.state is EngineState.SESSION_COMPLETE
    assert engine.completed_tasks == ()
    assert provider.calls == []


async def test_approve_between_hands_off_phases_changes_nothing() -> None:
    engine, _, logger = _engine(ScriptedProvider())
    await engine.start_session(plan=_two_phase_plan("documenter"), hands_off=True)
    await engine.execute_next_phase()
    assert engine.state is EngineState.PHASE_COMPLETE
    count = engine.bus.count

    assert engine.approve_current() is False

    assert engine.bus.count == count
    assert engine.state is EngineState.PHASE_COMPLETE
    assert engine.bus.by_type("approval") == ()
    assert "engine_approve_ignored" in logger.names()
    assert not (await engine.execute_next_phase()).complete


def _nested(levels: int) -> str:
    return '{"a": ' * levels + "1" + "}" * levels


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"score": NaN, "confidence": Infinity}', {"score": None, "confidence": None}),
        ("Release notes:\n```yaml\nreleased: 2024-01-01\n```", {"released": "2024-01-01"}),
    ],
)
async def test_unusual_model_output_is_reduced_to_plain_json(
    raw: str, expected: dict[str, Any]
) -> None:
    events = EventBus()
    engine, _, _ = _engine(ScriptedProvider(responses={"backend": raw}), events=events)
    await engine.start_session(plan=_single_phase_plan(Task("t1", "API", "backend")))

    outcome = await engine.execute_next_phase()

    (result,) = outcome.results
    assert result.status is TaskStatus.COMPLETED
    assert result.result["parsed"] == expected
    assert engine.state is EngineState.AWAITING_APPROVAL
    (round_done,) = events.replay(event_type="round-complete")
    assert round_done.payload["results"][0]["result"]["parsed"] == expected
    assert engine.bus.by_type("response")[-1].data == expected


async def test_deeply_nested_model_output_is_collapsed() -> None:
    events = EventBus()
    provider = ScriptedProvider(responses={"backend": _nested(30)})
    engine, _, _ = _engine(provider, events=events)
    await engine.start_session(plan=_single_phase_plan(Task("t1", "API", "backend")))

    outcome = await engine.execute_next_phase()

    (result,) = outcome.results
    assert result.status is TaskStatus.COMPLETED
    node = result.result["parsed"]
    for _ in range(10):
        node = node["a"]
    assert node == "<dict nested deeper than 10>"
    assert len(events.replay(event_type="phase-complete")) == 1
