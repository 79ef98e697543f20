"""
agent-team-orchestrator — round-based execution engine

File: src/agent_team/control_plane/engine.py
Last updated: 2026-10-19

Purpose
- Drives one session: plan acquisition, phase/milestone/task traversal, approval gates.

What should be included in this file
- Engine state machine with a mapping onto the narrower external state vocabulary.
- Session start (explicit plan, planning agent, or deterministic fallback).
- Phase execution through a swappable task runner with per-task failure isolation.
- Budget alert escalation from the finance role to the planner.

Functional requirements
- Invalid operations raise ``EngineStateError`` before mutating anything.
- A failing task never fails its round.
- ``approve_current``, ``pause``, and ``resume`` outside their valid states are no-ops.

Non-functional requirements
- Single asyncio task; the only awaits are agent provider calls and async observers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Final

import structlog

from agent_team.constants import APPROVER_ROLE, FINANCE_ROLE, PLANNER_ROLE
from agent_team.control_plane.budgets import BudgetAlert, CostLedger
from agent_team.control_plane.scheduler import PlanCursor, SequentialTaskRunner, TaskRunner
from agent_team.domain.ids import generate_session_id
from agent_team.domain.models import (
    EngineState,
    ExternalState,
    JSONValue,
    MessageType,
    ProjectContext,
    TaskResult,
    TaskStatus,
)
from agent_team.domain.plan import Milestone, Phase, Plan, Task
from agent_team.messaging.bus import MessageBus, role_address
from agent_team.observability.events import EngineEventType, EventBus
from agent_team.planning.local_plan import build_local_plan
from agent_team.synthesis_plane.agents import (
    Agent,
    AgentExecutionError,
    create_agent,
    planning_task,
    team_roster,
)
from agent_team.synthesis_plane.context_assembler import ContextAssembler
from agent_team.synthesis_plane.model_catalog import ModelCatalog
from agent_team.synthesis_plane.prompt_templates import PromptTemplateEngine
from agent_team.synthesis_plane.providers.base import CompletionProvider
from agent_team.synthesis_plane.roles import RoleRegistry

EXTERNAL_STATE: Final[Mapping[EngineState, ExternalState]] = MappingProxyType(
    {
        EngineState.IDLE: ExternalState.IDLE,
        EngineState.PLANNING: ExternalState.INITIALIZING,
        EngineState.EXECUTING: ExternalState.EXECUTING,
        EngineState.REVIEWING: ExternalState.MONITORING,
        EngineState.AWAITING_APPROVAL: ExternalState.PAUSED,
        EngineState.PHASE_COMPLETE: ExternalState.MONITORING,
        EngineState.SESSION_COMPLETE: ExternalState.COMPLETED,
        EngineState.ERROR: ExternalState.FAILED,
        EngineState.PAUSED: ExternalState.PAUSED,
    }
)

_STARTABLE: Final[frozenset[EngineState]] = frozenset(
    {EngineState.IDLE, EngineState.SESSION_COMPLETE}
)
_ADVANCEABLE: Final[frozenset[EngineState]] = frozenset(
    {EngineState.PLANNING, EngineState.IDLE, EngineState.PHASE_COMPLETE, EngineState.REVIEWING}
)
_PAUSABLE: Final[frozenset[EngineState]] = frozenset(
    {EngineState.EXECUTING, EngineState.REVIEWING}
)


class EngineStateError(RuntimeError):
    """Raised when an engine operation is invalid in the current state."""


@dataclass(frozen=True, slots=True)
class SessionHandle:
    session_id: str
    plan: Plan
    hands_off: bool


@dataclass(frozen=True, slots=True)
class PhaseOutcome:
    """Result of one ``execute_next_phase`` call."""

    complete: bool
    phase: Phase | None = None
    results: tuple[TaskResult, ...] = ()
    report: Mapping[str, Any] | None = None


class ExecutionEngine:
    """Session state machine over an injected registry, bus, assembler, ledger, and events."""

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        registry: RoleRegistry | None = None,
        bus: MessageBus | None = None,
        assembler: ContextAssembler | None = None,
        ledger: CostLedger | None = None,
        events: EventBus | None = None,
        catalog: ModelCatalog | None = None,
        prompts: PromptTemplateEngine | None = None,
        runner: TaskRunner | None = None,
        logger: Any | None = None,
    ) -> None:
        self._provider = provider
        self._catalog = catalog if catalog is not None else ModelCatalog()
        self._registry = registry if registry is not None else RoleRegistry.default()
        self._bus = bus if bus is not None else MessageBus()
        self._assembler = assembler if assembler is not None else ContextAssembler()
        self._ledger = ledger if ledger is not None else CostLedger(catalog=self._catalog)
        self._events = events if events is not None else EventBus()
        self._prompts = prompts if prompts is not None else PromptTemplateEngine()
        self._runner = runner if runner is not None else SequentialTaskRunner()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._state = EngineState.IDLE
        self._session_id: str | None = None
        self._plan: Plan | None = None
        self._cursor = PlanCursor()
        self._current_phase: Phase | None = None
        self._round = 0
        self._hands_off = False
        self._completed: list[TaskResult] = []
        self._last_round: tuple[TaskResult, ...] = ()

        self._unsubscribers = [
            self._ledger.on_update(self._on_cost_update),
            self._ledger.on_alert(self._on_budget_alert),
        ]

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def external_state(self) -> ExternalState:
        return EXTERNAL_STATE[self._state]

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def plan(self) -> Plan | None:
        return self._plan

    @property
    def current_phase(self) -> Phase | None:
        return self._current_phase

    @property
    def current_round(self) -> int:
        return self._round

    @property
    def hands_off(self) -> bool:
        return self._hands_off

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def assembler(self) -> ContextAssembler:
        return self._assembler

    @property
    def ledger(self) -> CostLedger:
        return self._ledger

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def completed_tasks(self) -> tuple[TaskResult, ...]:
        return tuple(self._completed)

    @property
    def last_round(self) -> tuple[TaskResult, ...]:
        return self._last_round

    async def start_session(
        self,
        project_context: ProjectContext | None = None,
        *,
        hands_off: bool = False,
        plan: Plan | None = None,
        use_planner: bool = True,
    ) -> SessionHandle:
        """Reset per-session state, bind agents, and obtain the plan."""

        if self._state not in _STARTABLE:
            raise EngineStateError(f'cannot start session in state "{self._state.value}"')

        project = project_context or ProjectContext()
        self._session_id = generate_session_id()
        self._hands_off = hands_off
        self._plan = None
        self._cursor = PlanCursor()
        self._current_phase = None
        self._round = 0
        self._completed = []
        self._last_round = ()
        self._transition(EngineState.PLANNING)

        self._bus.clear()
        self._ledger.reset()
        self._registry.clear_instances()
        self._assembler.clear()
        self._assembler.set_project_context(project)
        self._instantiate_agents(project)

        try:
            if plan is not None:
                resolved = plan
            elif use_planner:
                resolved = await self._plan_with_agent(project)
            else:
                resolved = build_local_plan(project)
        except Exception as exc:
            self._transition(EngineState.ERROR)
            await self._emit(EngineEventType.ERROR, {"error": str(exc), "stage": "planning"})
            raise

        self._plan = resolved
        self._bus.broadcast(
            PLANNER_ROLE,
            f"Execution plan created: {len(resolved.phases)} phases, "
            f"estimated {resolved.estimated_rounds or 1} rounds.",
            type=MessageType.TASK,
            data=resolved.to_dict(),
        )
        await self._emit(EngineEventType.PLAN_READY, {"plan": resolved.to_dict()})
        self._logger.info(
            "engine_plan_ready",
            session_id=self._session_id,
            phases=len(resolved.phases),
            tasks=resolved.task_count,
        )
        return SessionHandle(session_id=self._session_id, plan=resolved, hands_off=hands_off)

    async def execute_next_phase(self) -> PhaseOutcome:
        """Run every milestone of the next phase, or finish the session when none remain."""

        if self._plan is None:
            raise EngineStateError("no plan loaded; call start_session first")
        if self._state not in _ADVANCEABLE:
            raise EngineStateError(f'cannot execute next phase in state "{self._state.value}"')

        plan = self._plan
        phase = self._cursor.current(plan)
        if phase is None:
            report = self._ledger.finalize()
            self._transition(EngineState.SESSION_COMPLETE)
            await self._emit(EngineEventType.SESSION_COMPLETE, {"report": report})
            return PhaseOutcome(complete=True, report=report)

        phase_index = self._cursor.phase_index
        self._cursor = self._cursor.advance()
        self._current_phase = phase
        self._round = 0
        await self._emit(
            EngineEventType.PHASE_STARTED,
            {
                "phase": phase.to_dict(),
                "phase_index": phase_index,
                "total_phases": len(plan.phases),
            },
        )

        phase_results: list[TaskResult] = []
        for milestone in phase.milestones:
            self._round += 1
            phase_results.extend(await self._execute_round(milestone))

        self._transition(EngineState.PHASE_COMPLETE)
        await self._emit(
            EngineEventType.PHASE_COMPLETE,
            {"phase": phase.name, "results": [r.to_dict() for r in phase_results]},
        )
        if not self._hands_off:
            self._transition(EngineState.AWAITING_APPROVAL)
            await self._emit(
                EngineEventType.APPROVAL_NEEDED,
                {
                    "phase": phase.name,
                    "message": f'Phase "{phase.name}" complete. Approve to proceed to next phase.',
                },
            )
        return PhaseOutcome(complete=False, phase=phase, results=tuple(phase_results))

    def approve_current(self) -> bool:
        """Release the approval gate; returns ``False`` and changes nothing outside it."""

        if self._state is not EngineState.AWAITING_APPROVAL:
            self._logger.info("engine_approve_ignored", state=self._state.value)
            return False
        name = self._current_phase.name if self._current_phase is not None else ""
        self._bus.broadcast(
            APPROVER_ROLE,
            f'Phase "{name}" approved. Proceeding.',
            type=MessageType.APPROVAL,
        )
        self._transition(EngineState.IDLE)
        return True

    def pause(self) -> bool:
        if self._state not in _PAUSABLE:
            return False
        self._transition(EngineState.PAUSED)
        return True

    def resume(self) -> bool:
        if self._state is not EngineState.PAUSED:
            return False
        self._transition(EngineState.EXECUTING)
        return True

    def summary(self) -> dict[str, JSONValue]:
        return {
            "session_id": self._session_id,
            "state": self._state.value,
            "external_state": self.external_state.value,
            "phase_index": self._cursor.phase_index,
            "current_phase": self._current_phase.name if self._current_phase else None,
            "total_phases": len(self._plan.phases) if self._plan is not None else 0,
            "round": self._round,
            "completed_tasks": len(self._completed),
            "last_round": [result.to_dict() for result in self._last_round],
            "cost": self._ledger.snapshot(),
            "messages": self._bus.count,
            "threads": self._bus.thread_count,
        }

    def close(self) -> None:
        """Detach ledger listeners."""

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def _execute_round(self, milestone: Milestone) -> tuple[TaskResult, ...]:
        self._transition(EngineState.EXECUTING)
        await self._emit(
            EngineEventType.ROUND_STARTED,
            {
                "round": self._round,
                "milestone": milestone.title,
                "task_count": len(milestone.tasks),
            },
        )
        self._bus.broadcast(
            PLANNER_ROLE,
            f"Round {self._round}: {milestone.title} — {len(milestone.tasks)} tasks.",
            type=MessageType.TASK,
        )

        results = await self._runner.run(milestone.tasks, self._run_task)

        self._transition(EngineState.REVIEWING)
        self._last_round = results
        await self._emit(
            EngineEventType.ROUND_COMPLETE,
            {"round": self._round, "results": [r.to_dict() for r in results]},
        )
        return results

    async def _run_task(self, task: Task) -> TaskResult:
        role_id = task.assigned_to
        entry = self._registry.get(role_id)
        if entry is None:
            self._logger.warning("engine_task_skipped", task_id=task.task_id, role_id=role_id)
            return TaskResult(
                task.task_id, task.title, role_id, TaskStatus.SKIPPED, error="no agent"
            )

        agent = entry.instance
        if not isinstance(agent, Agent):
            self._bus.send(
                PLANNER_ROLE,
                role_address(role_id),
                f"Task assigned: {task.title}",
                type=MessageType.TASK,
                data=task.to_dict(),
            )
            return TaskResult(
                task.task_id,
                task.title,
                role_id,
                TaskStatus.PENDING,
                error="agent not instantiated",
            )

        try:
            history = self._bus.all()
            assembled = self._assembler.build_context(role_id, agent.tier, task, history)
            result = await agent.execute(
                replace(task, context=assembled.system_context),
                history,
                project_context=self._assembler.project,
            )
            self._ledger.record(role_id, result.tier, result.model, result.tokens)
            self._assembler.add_agent_context(role_id, f"Completed: {task.title}", "decision")
            payload = result.to_dict()
            self._bus.send(
                role_id,
                role_address(PLANNER_ROLE),
                f"Task completed: {task.title}",
                type=MessageType.RESPONSE,
                data=payload["parsed"],
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "engine_task_failed",
                task_id=task.task_id,
                role_id=role_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._bus.send(
                role_id,
                role_address(PLANNER_ROLE),
                f"Task failed: {task.title} — {exc}",
                type=MessageType.ESCALATION,
            )
            return TaskResult(task.task_id, task.title, role_id, TaskStatus.FAILED, error=str(exc))

        completed = TaskResult(task.task_id, task.title, role_id, TaskStatus.COMPLETED, payload)
        self._completed.append(completed)
        return completed

    async def _plan_with_agent(self, project: ProjectContext) -> Plan:
        planner = self._registry.get_instance(PLANNER_ROLE)
        if not isinstance(planner, Agent):
            self._logger.info("engine_planner_unavailable", fallback="local_plan")
            return build_local_plan(project)
        try:
            result = await planner.execute(planning_task(project), project_context=project)
        except AgentExecutionError as exc:
            self._logger.warning("engine_planner_failed", error=str(exc), fallback="local_plan")
            return build_local_plan(project)
        self._ledger.record(PLANNER_ROLE, result.tier, result.model, result.tokens)
        if not isinstance(result.parsed, Plan):
            return build_local_plan(project)
        return result.parsed

    def _instantiate_agents(self, project: ProjectContext) -> None:
        for entry in self._registry.executable():
            role_id = entry.role.role_id
            kwargs: dict[str, Any] = {
                "provider": self._provider,
                "catalog": self._catalog,
                "prompts": self._prompts,
                "tier": entry.role.tier,
                "project_context": project,
            }
            if role_id == PLANNER_ROLE:
                kwargs["roster"] = team_roster(self._registry)
                kwargs["default_tier_for"] = self._registry.default_tier
            agent = create_agent(role_id, **kwargs)
            if agent is not None:
                self._registry.register_instance(role_id, agent)

    def _transition(self, new_state: EngineState) -> None:
        previous = self._state
        self._state = new_state
        self._logger.debug(
            "engine_state_change",
            session_id=self._session_id,
            previous=previous.value,
            current=new_state.value,
        )
        self._events.emit(
            EngineEventType.STATE_CHANGE,
            {
                "state": new_state.value,
                "external_state": EXTERNAL_STATE[new_state].value,
                "previous": previous.value,
            },
            session_id=self._session_id,
        )

    async def _emit(self, event_type: EngineEventType, payload: Mapping[str, object]) -> None:
        await self._events.emit_async(event_type, payload, session_id=self._session_id)

    def _on_cost_update(self, snapshot: dict[str, JSONValue]) -> None:
        self._events.emit(EngineEventType.COST_UPDATE, snapshot, session_id=self._session_id)

    def _on_budget_alert(self, alert: BudgetAlert) -> None:
        self._bus.send(
            FINANCE_ROLE,
            role_address(PLANNER_ROLE),
            f"Budget alert: {alert.message}",
            type=MessageType.ESCALATION,
        )
        self._events.emit(EngineEventType.COST_ALERT, alert.to_dict(), session_id=self._session_id)


__all__ = [
    "EXTERNAL_STATE",
    "EngineStateError",
    "ExecutionEngine",
    "PhaseOutcome",
    "SessionHandle",
]
