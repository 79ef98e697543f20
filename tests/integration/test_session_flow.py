"""
agent-team-orchestrator — full session integration

File: tests/integration/test_session_flow.py
Last updated: 2026-10-19

Purpose
- Drive a complete multi-phase session through the real engine, bus, ledger, and SQLite store.
- Prove that persisted messages and cost history survive the session and can be restored.

What this test file should cover
- Planner-produced plan executed phase by phase with approvals in between.
- Per-task failure isolation inside a round.
- Cost ledger totals matching provider calls, and finalized history on disk.
"""

from __future__ import annotations

from pathlib import Path

from agent_team.control_plane import CostLedger, ExecutionEngine
from agent_team.domain.models import EngineState, MessageType, ProjectContext, TaskStatus
from agent_team.messaging import MessageBus
from agent_team.observability import EngineEventType
from agent_team.persistence import SQLiteMessageStore
from agent_team.planning import build_local_plan
from agent_team.synthesis_plane import ContextAssembler, ModelCatalog
from agent_team.synthesis_plane.providers import ScriptedProvider

PROJECT = ProjectContext.from_mapping(
    {
        "name": "Shop",
        "stack": "FastAPI + React",
        "features": ["Checkout page", "Order export"],
        "integrations": ["Stripe"],
    }
)


def _wire(store_path: Path, provider: ScriptedProvider) -> ExecutionEngine:
    store = SQLiteMessageStore(store_path)
    catalog = ModelCatalog()
    return ExecutionEngine(
        provider=provider,
        bus=MessageBus(store=store),
        assembler=ContextAssembler(),
        ledger=CostLedger(catalog=catalog, store=store),
        catalog=catalog,
    )


async def test_session_runs_every_phase_and_persists_history(tmp_path: Path) -> None:
    store_path = tmp_path / "team.sqlite"
    provider = ScriptedProvider(
        responses={"coo": build_local_plan(PROJECT).to_json()},
        default_response="Done. Decisions recorded.",
        failures={"sentinel": "sentinel offline"},
    )
    engine = _wire(store_path, provider)
    seen: list[str] = []
    engine.events.subscribe(None, lambda event: seen.append(event.event_type.value))

    handle = await engine.start_session(PROJECT)
    assert [phase.name for phase in handle.plan.phases] == [
        "Architecture & Research",
        "Core Feature Implementation",
        "Integrations",
        "Testing & Security Review",
    ]

    results = []
    phases_run = 0
    while True:
        outcome = await engine.execute_next_phase()
        if outcome.complete:
            break
        phases_run += 1
        results.extend(outcome.results)
        assert engine.state is EngineState.AWAITING_APPROVAL
        assert engine.approve_current() is True

    assert phases_run == 4
    assert engine.state is EngineState.SESSION_COMPLETE
    assert len(results) == handle.plan.task_count == 11

    failed = [result for result in results if result.status is TaskStatus.FAILED]
    assert sorted(result.task_id for result in failed) == ["t1_3", "t4_2"]
    assert all(result.error == "sentinel offline" for result in failed)
    assert sum(result.status is TaskStatus.COMPLETED for result in results) == 9

    escalations = engine.bus.by_type(MessageType.ESCALATION)
    assert [m.from_role for m in escalations if m.content.startswith("Task failed")] == [
        "sentinel",
        "sentinel",
    ]
    assert not [m for m in escalations if m.content.startswith("Budget alert")]
    assert len(engine.bus.by_type(MessageType.APPROVAL)) == 4

    successful_calls = len(provider.calls) - len(provider.calls_for("sentinel"))
    snapshot = engine.ledger.snapshot()
    assert snapshot["session"]["calls"] == successful_calls
    assert "sentinel" not in snapshot["agents"]

    assert seen[0] == EngineEventType.STATE_CHANGE.value
    assert seen.count(EngineEventType.PHASE_COMPLETE.value) == 4
    assert seen.count(EngineEventType.APPROVAL_NEEDED.value) == 4
    assert seen[-1] == EngineEventType.SESSION_COMPLETE.value
    engine.close()

    reopened = SQLiteMessageStore(store_path)
    restored = MessageBus(store=reopened)
    assert restored.restore() == engine.bus.count
    assert [m.message_id for m in restored.all()] == [m.message_id for m in engine.bus.all()]

    history = reopened.load_cost_history()
    assert len(history) == 1
    assert history[0]["session"]["calls"] == successful_calls


async def test_specialist_prompts_carry_project_and_team_context(tmp_path: Path) -> None:
    provider = ScriptedProvider(
        responses={"coo": build_local_plan(PROJECT).to_json()},
        default_response="ok",
    )
    engine = _wire(tmp_path / "team.sqlite", provider)
    await engine.start_session(PROJECT, hands_off=True)
    while not (await engine.execute_next_phase()).complete:
        pass

    cto_calls = provider.calls_for("cto")
    assert len(cto_calls) == 1
    prompt = cto_calls[0].prompt
    assert "Project: Shop" in prompt
    assert "Stack: FastAPI + React" in prompt
    assert "Define system architecture" in prompt

    first_audit, second_audit = (call.prompt for call in provider.calls_for("sentinel"))
    assert "Your Prior Notes" not in first_audit
    assert "- Completed: Security requirements" in second_audit
    engine.close()


async def test_second_session_starts_from_a_clean_slate(tmp_path: Path) -> None:
    provider = ScriptedProvider(default_response="ok")
    engine = _wire(tmp_path / "team.sqlite", provider)

    await engine.start_session(PROJECT, hands_off=True, use_planner=False)
    while not (await engine.execute_next_phase()).complete:
        pass
    first_session = engine.session_id
    assert engine.ledger.history()[0]["session"]["calls"] > 0

    handle = await engine.start_session(
        ProjectContext(name="Tiny"), hands_off=True, use_planner=False
    )
    assert handle.session_id != first_session
    assert engine.state is EngineState.PLANNING
    assert engine.ledger.snapshot()["session"]["calls"] == 0
    assert engine.completed_tasks == ()
    assert len(engine.ledger.history()) == 1
    assert [phase.phase_id for phase in handle.plan.phases] == ["phase-1", "phase-2"]
    engine.close()
