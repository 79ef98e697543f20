"""
agent-team-orchestrator — agent executor tests.

File: tests/unit/synthesis_plane/test_agents.py
Last updated: 2026-10-19

What this test file should cover
- One provider call per execute, routed to the tier's model.
- State transitions for success and failure.
- Planner output validation and the manual-review fallback.
- Factory behavior for human and unknown roles.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from agent_team.domain.models import AgentState, Message, ProjectContext, Tier
from agent_team.domain.plan import Plan, Task
from agent_team.synthesis_plane.agents import (
    AGENT_CLASSES,
    SPECIALIST_ROLES,
    AgentExecutionError,
    BackendAgent,
    DocumenterAgent,
    PlannerAgent,
    create_agent,
    planning_task,
    team_roster,
)
from agent_team.synthesis_plane.providers import ProviderError, ScriptedProvider
from agent_team.synthesis_plane.roles import RoleRegistry


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


TASK = Task(task_id="t1", title="Build login API", assigned_to="backend", description="JWT")

PLAN_DOCUMENT = {
    "phases": [
        {
            "name": "Foundation",
            "milestones": [
                {
                    "title": "API",
                    "tasks": [
                        {"title": "Schema", "assignedTo": "backend"},
                        {"title": "Docs", "assignedTo": "documenter", "tier": "deep"},
                    ],
                }
            ],
        }
    ],
    "summary": "Ship the API",
    "estimatedRounds": 2,
}


async def test_execute_runs_one_call_and_tracks_state() -> None:
    transitions: list[tuple[str, AgentState, AgentState]] = []
    provider = ScriptedProvider(responses={"backend": '{"files": ["api.py"]}'})
    agent = BackendAgent(
        provider=provider,
        logger=RecordingLogger(),
        on_state_change=lambda role, old, new: transitions.append((role, old, new)),
    )
    result = await agent.execute(TASK)

    assert result.parsed == {"files": ["api.py"]}
    assert result.tier is Tier.STANDARD
    assert result.model == "claude-sonnet-4-20250514"
    assert len(provider.calls) == 1
    assert provider.calls[0].model == result.model
    assert provider.calls[0].prompt.startswith("<system>\n")
    assert agent.state is AgentState.DONE
    assert agent.last_response is result
    assert [(old, new) for _, old, new in transitions] == [
        (AgentState.IDLE, AgentState.THINKING),
        (AgentState.THINKING, AgentState.RESPONDING),
        (AgentState.RESPONDING, AgentState.DONE),
    ]


async def test_usage_accumulates_across_calls_and_survives_reset() -> None:
    agent = BackendAgent(provider=ScriptedProvider(), logger=RecordingLogger())
    first = await agent.execute(TASK)
    agent.reset()
    second = await agent.execute(TASK)
    assert agent.state is AgentState.DONE
    assert agent.usage.total_tokens == first.tokens.total_tokens + second.tokens.total_tokens


async def test_history_addressed_to_role_is_in_prompt() -> None:
    provider = ScriptedProvider()
    agent = BackendAgent(provider=provider, logger=RecordingLogger())
    history = [
        Message(
            message_id="msg-1",
            from_role="cto",
            to="@backend",
            content="use postgres",
            thread_id="thr-1",
        )
    ]
    await agent.execute(TASK, history)
    assert "**[cto]** → use postgres" in provider.calls[0].prompt


async def test_failure_moves_to_error_and_chains_cause() -> None:
    logger = RecordingLogger()
    agent = BackendAgent(provider=ScriptedProvider(failures={"backend": "quota"}), logger=logger)
    with pytest.raises(AgentExecutionError) as excinfo:
        await agent.execute(TASK)
    assert excinfo.value.role_id == "backend"
    assert isinstance(excinfo.value.__cause__, ProviderError)
    assert agent.state is AgentState.ERROR
    assert isinstance(agent.last_error, ProviderError)
    assert agent.usage.total_tokens == 0
    assert "agent_execution_failed" in logger.names()


async def test_documenter_keeps_markdown_whole_on_minimal_tier() -> None:
    provider = ScriptedProvider(responses={"documenter": "# Title\n\n```json\n{}\n```"})
    agent = DocumenterAgent(provider=provider, logger=RecordingLogger())
    result = await agent.execute(Task(task_id="t9", title="Docs", assigned_to="documenter"))
    assert result.parsed == {"label": "Documentation", "content": "# Title\n\n```json\n{}\n```"}
    assert result.model == "claude-3-haiku-20240307"


async def test_planner_returns_validated_plan_with_default_tiers() -> None:
    registry = RoleRegistry.default()
    provider = ScriptedProvider(responses={"coo": json.dumps(PLAN_DOCUMENT)})
    planner = PlannerAgent(
        provider=provider,
        roster=team_roster(registry),
        default_tier_for=registry.default_tier,
        logger=RecordingLogger(),
    )
    project = ProjectContext(name="Storefront", features=("login",))
    result = await planner.execute(planning_task(project), project_context=project)

    plan = result.parsed
    assert isinstance(plan, Plan)
    tasks = list(plan.phases[0].iter_tasks())
    assert [task.tier for task in tasks] == [Tier.STANDARD, Tier.DEEP]
    assert plan.estimated_rounds == 2
    prompt = provider.calls[0].prompt
    assert '"name": "Storefront"' in prompt
    assert "**Backend**" in prompt


async def test_planner_falls_back_to_manual_review() -> None:
    logger = RecordingLogger()
    planner = PlannerAgent(
        provider=ScriptedProvider(responses={"coo": "I could not decide."}), logger=logger
    )
    result = await planner.execute(planning_task(ProjectContext()))
    plan = result.parsed
    assert plan.task_count == 1
    task = next(plan.phases[0].iter_tasks())
    assert task.title == "Manual review required"
    assert task.description == "I could not decide."
    assert "planner_plan_unparsed" in logger.names()


async def test_planner_logs_invalid_plan_documents() -> None:
    logger = RecordingLogger()
    planner = PlannerAgent(
        provider=ScriptedProvider(responses={"coo": '{"phases": []}'}), logger=logger
    )
    result = await planner.execute(planning_task(ProjectContext()))
    assert result.parsed.summary.startswith("COO response could not be parsed")
    assert "planner_plan_invalid" in logger.names()


def test_factory_and_roster() -> None:
    assert create_agent("ceo") is None
    assert create_agent("intern") is None
    agent = create_agent("sentinel", provider=ScriptedProvider())
    assert agent is not None
    assert agent.tier is Tier.DEEP
    assert len(AGENT_CLASSES) == 14
    assert "coo" not in SPECIALIST_ROLES

    roster = team_roster(RoleRegistry.default())
    ids = [member["id"] for member in roster]
    assert "coo" not in ids
    assert "ceo" not in ids
    assert len(ids) == 13
