"""
agent-team-orchestrator — task executors

File: src/agent_team/synthesis_plane/agents.py
Last updated: 2026-10-19

Purpose
- Runs one task for one role: prompt construction, a single provider call, resilient parsing.

What should be included in this file
- Abstract agent base with mandatory role members and the execution state machine.
- One concrete class per executable role with its result label and task prompt.
- The planning agent that turns model output into a ``Plan``.
- An id-keyed factory; human and unknown roles yield ``None``.

Functional requirements
- Exactly one provider call per ``execute``.
- Token deltas are accumulated before the agent reports DONE.
- Failures move the agent to ERROR and re-raise with the provider error chained.

Non-functional requirements
- Agents never touch the message bus or ledger directly; the engine wires results.
"""

from __future__ import annotations

import abc
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Final

import structlog

from agent_team.constants import PLANNER_ROLE
from agent_team.domain.ids import generate_session_id
from agent_team.domain.models import AgentState, JSONValue, ProjectContext, Tier, TokenUsage
from agent_team.domain.plan import Milestone, Phase, Plan, PlanValidationError, Task
from agent_team.synthesis_plane import roles as role_ids
from agent_team.synthesis_plane.model_catalog import ModelCatalog
from agent_team.synthesis_plane.parsing import parse_response, to_json_safe
from agent_team.synthesis_plane.prompt_templates import PromptTemplateEngine, combine_prompts
from agent_team.synthesis_plane.providers.base import (
    CompletionProvider,
    CompletionRequest,
    collect_completion,
)

if TYPE_CHECKING:
    from agent_team.domain.models import Message
    from agent_team.synthesis_plane.roles import RoleRegistry

StateListener = Callable[[str, AgentState, AgentState], None]

MANUAL_REVIEW_EXCERPT_CHARS: Final[int] = 500


class AgentExecutionError(RuntimeError):
    """Raised when an agent's provider call fails; the cause is chained."""

    def __init__(self, role_id: str, detail: str) -> None:
        self.role_id = role_id
        self.detail = detail
        super().__init__(f"{role_id}: {detail}")


@dataclass(frozen=True, slots=True)
class AgentResult:
    """Raw text, parsed value, and token usage of one agent call."""

    raw: str
    parsed: Any
    tokens: TokenUsage
    model: str
    tier: Tier

    def to_dict(self) -> dict[str, JSONValue]:
        parsed = (
            self.parsed.to_dict() if isinstance(self.parsed, Plan) else to_json_safe(self.parsed)
        )
        return {
            "raw": self.raw,
            "parsed": parsed,
            "tokens": self.tokens.to_dict(),
            "model": self.model,
            "tier": self.tier.value,
        }


class Agent(abc.ABC):
    """Base executor: IDLE → THINKING → RESPONDING → DONE | ERROR."""

    default_tier: ClassVar[Tier] = Tier.STANDARD

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        catalog: ModelCatalog | None = None,
        prompts: PromptTemplateEngine | None = None,
        tier: Tier | None = None,
        project_context: ProjectContext | None = None,
        on_state_change: StateListener | None = None,
        logger: Any | None = None,
    ) -> None:
        self._provider = provider
        self._catalog = catalog if catalog is not None else ModelCatalog()
        self._prompts = prompts if prompts is not None else PromptTemplateEngine()
        self._tier = tier if tier is not None else self.default_tier
        self._project_context = project_context or ProjectContext()
        self._on_state_change = on_state_change
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._state = AgentState.IDLE
        self._last_response: AgentResult | None = None
        self._last_error: BaseException | None = None
        self._usage = TokenUsage()

    @property
    @abc.abstractmethod
    def role_id(self) -> str:
        """Registry id this agent executes for."""

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-facing name used to tag responses."""

    @property
    @abc.abstractmethod
    def result_label(self) -> str:
        """Label attached to unstructured parse results."""

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def tier(self) -> Tier:
        return self._tier

    @property
    def model(self) -> str:
        return self._catalog.model_for_tier(self._tier)

    @property
    def usage(self) -> TokenUsage:
        return self._usage

    @property
    def last_response(self) -> AgentResult | None:
        return self._last_response

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def project_context(self) -> ProjectContext:
        return self._project_context

    def build_task_prompt(self, task: Task) -> str:
        return self._prompts.task_prompt(self.role_id, task, display_name=self.display_name)

    def parse_response(self, raw: str) -> Any:
        return parse_response(raw, label=self.result_label)

    def build_system_prompt(self, project_context: ProjectContext | None = None) -> str:
        project = project_context or self._project_context
        return self._prompts.system_prompt(self.role_id, project).prompt

    def build_user_prompt(self, task: Task, history: Sequence[Message] = ()) -> str:
        return self._prompts.history_block(self.role_id, history) + self.build_task_prompt(task)

    async def execute(
        self,
        task: Task,
        history: Sequence[Message] = (),
        *,
        project_context: ProjectContext | None = None,
    ) -> AgentResult:
        """Run ``task`` with one provider call and return the parsed result."""

        self._transition(AgentState.THINKING)
        self._last_error = None
        model = self.model
        try:
            system_prompt = self.build_system_prompt(project_context)
            user_prompt = self.build_user_prompt(task, history)
            request = CompletionRequest(
                prompt=combine_prompts(system_prompt, user_prompt),
                model=model,
                session_id=generate_session_id(),
                role=self.role_id,
            )
            self._transition(AgentState.RESPONDING)
            completion = await collect_completion(self._provider, request)
        except Exception as exc:
            self._last_error = exc
            self._transition(AgentState.ERROR)
            self._logger.warning(
                "agent_execution_failed",
                role_id=self.role_id,
                task_id=task.task_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise AgentExecutionError(self.role_id, str(exc)) from exc

        parsed = self.parse_response(completion.text)
        self._usage = self._usage.plus(completion.usage)
        result = AgentResult(
            raw=completion.text,
            parsed=parsed,
            tokens=completion.usage,
            model=model,
            tier=self._tier,
        )
        self._last_response = result
        self._transition(AgentState.DONE)
        return result

    def reset(self) -> None:
        """Back to IDLE between rounds; cumulative usage is kept."""

        self._state = AgentState.IDLE
        self._last_response = None
        self._last_error = None

    def _transition(self, new_state: AgentState) -> None:
        previous = self._state
        self._state = new_state
        self._logger.debug(
            "agent_state_change",
            role_id=self.role_id,
            previous=previous.value,
            current=new_state.value,
        )
        if self._on_state_change is not None:
            self._on_state_change(self.role_id, previous, new_state)


class CTOAgent(Agent):
    role_id = role_ids.ROLE_CTO
    display_name = "CTO / Architect"
    result_label = "Architecture Document"
    default_tier = Tier.DEEP


class CFOAgent(Agent):
    role_id = role_ids.ROLE_CFO
    display_name = "CFO / Budget"
    result_label = "CFO Report"


class FrontendAgent(Agent):
    role_id = role_ids.ROLE_FRONTEND
    display_name = "Frontend UI/UX"
    result_label = "Frontend UI/UX"


class BackendAgent(Agent):
    role_id = role_ids.ROLE_BACKEND
    display_name = "Backend Dev"
    result_label = "Backend Implementation"


class DevOpsAgent(Agent):
    role_id = role_ids.ROLE_DEVOPS
    display_name = "DevOps Engineer"
    result_label = "DevOps Configuration"


class QATesterAgent(Agent):
    role_id = role_ids.ROLE_QA_TESTER
    display_name = "QA Engineer"
    result_label = "QA Report"


class DeepResearcherAgent(Agent):
    role_id = role_ids.ROLE_DEEP_RESEARCHER
    display_name = "Deep Researcher"
    result_label = "Research Brief"


class DevilsAdvocateAgent(Agent):
    role_id = role_ids.ROLE_DEVILS_ADVOCATE
    display_name = "Devil's Advocate"
    result_label = "Critical Review"


class SentinelAgent(Agent):
    role_id = role_ids.ROLE_SENTINEL
    display_name = "Sentinel / Security"
    result_label = "Security Audit"
    default_tier = Tier.DEEP


class DocumenterAgent(Agent):
    role_id = role_ids.ROLE_DOCUMENTER
    display_name = "Documenter"
    result_label = "Documentation"
    default_tier = Tier.MINIMAL

    def parse_response(self, raw: str) -> Any:
        # Documentation is markdown by contract; keep it whole.
        return {"label": self.result_label, "content": raw}


class TokenAuditorAgent(Agent):
    role_id = role_ids.ROLE_TOKEN_AUDITOR
    display_name = "Token Auditor"
    result_label = "Token Audit"
    default_tier = Tier.MINIMAL


class ApiCostAuditorAgent(Agent):
    role_id = role_ids.ROLE_API_COST_AUDITOR
    display_name = "API Cost Auditor"
    result_label = "Cost Audit"
    default_tier = Tier.MINIMAL


class ProjectAuditorAgent(Agent):
    role_id = role_ids.ROLE_PROJECT_AUDITOR
    display_name = "Project Auditor"
    result_label = "Project Audit"
    default_tier = Tier.MINIMAL


class PlannerAgent(Agent):
    """Operations lead; turns model output into a validated ``Plan``."""

    role_id = PLANNER_ROLE
    display_name = "COO / Orchestrator"
    result_label = "Execution Plan"

    def __init__(
        self,
        *,
        roster: Sequence[Mapping[str, object]] = (),
        default_tier_for: Callable[[str], Tier | None] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._roster = tuple(roster)
        self._default_tier_for = default_tier_for

    def build_task_prompt(self, task: Task) -> str:
        return self._prompts.task_prompt(
            self.role_id,
            task,
            display_name=self.display_name,
            roster=self._roster,
        )

    def parse_response(self, raw: str) -> Plan:
        value = parse_response(raw, label=self.result_label)
        if isinstance(value, Mapping) and "phases" in value:
            try:
                return Plan.from_dict(value, default_tier=self._default_tier_for)
            except PlanValidationError as exc:
                self._logger.warning("planner_plan_invalid", error=str(exc))
        else:
            self._logger.warning("planner_plan_unparsed", chars=len(raw))
        return manual_review_plan(raw)


def manual_review_plan(raw: str) -> Plan:
    """Single-task plan asking for a human look at unparseable planner output."""

    task = Task(
        task_id="t1",
        title="Manual review required",
        assigned_to=PLANNER_ROLE,
        description=raw[:MANUAL_REVIEW_EXCERPT_CHARS],
        tier=Tier.STANDARD,
    )
    return Plan(
        phases=(
            Phase(
                phase_id="phase-1",
                name="Auto-generated Phase",
                milestones=(Milestone("m1", "Review COO Output", (task,)),),
            ),
        ),
        summary="COO response could not be parsed into structured plan.",
        estimated_rounds=1,
    )


def planning_task(project_context: ProjectContext) -> Task:
    return Task(
        task_id="plan",
        title="Create Execution Plan",
        assigned_to=PLANNER_ROLE,
        description=(
            "Analyze the project and create a structured phase plan.\n\n"
            f"Project Data:\n{_project_json(project_context)}"
        ),
    )


def team_roster(registry: RoleRegistry) -> tuple[dict[str, object], ...]:
    return tuple(
        {
            "id": entry.role.role_id,
            "label": entry.role.label,
            "tier": entry.role.tier.value,
            "reports_to": entry.role.reports_to or "",
        }
        for entry in registry.executable()
        if entry.role.role_id != PLANNER_ROLE
    )


AGENT_CLASSES: Final[Mapping[str, type[Agent]]] = {
    cls.role_id: cls  # type: ignore[misc]
    for cls in (
        PlannerAgent,
        CTOAgent,
        CFOAgent,
        FrontendAgent,
        BackendAgent,
        DevOpsAgent,
        QATesterAgent,
        DeepResearcherAgent,
        DevilsAdvocateAgent,
        SentinelAgent,
        DocumenterAgent,
        TokenAuditorAgent,
        ApiCostAuditorAgent,
        ProjectAuditorAgent,
    )
}

SPECIALIST_ROLES: Final[tuple[str, ...]] = tuple(
    role for role in AGENT_CLASSES if role != PLANNER_ROLE
)


def create_agent(role_id: str, **kwargs: Any) -> Agent | None:
    """Instantiate the agent class for ``role_id``; unknown or human roles yield ``None``."""

    agent_class = AGENT_CLASSES.get(role_id)
    if agent_class is None:
        structlog.get_logger(__name__).warning("agent_factory_unknown_role", role_id=role_id)
        return None
    return agent_class(**kwargs)


def _project_json(project_context: ProjectContext) -> str:
    return json.dumps(project_context.to_dict(), indent=2, ensure_ascii=False)


__all__ = [
    "AGENT_CLASSES",
    "Agent",
    "AgentExecutionError",
    "AgentResult",
    "ApiCostAuditorAgent",
    "BackendAgent",
    "CFOAgent",
    "CTOAgent",
    "DeepResearcherAgent",
    "DevOpsAgent",
    "DevilsAdvocateAgent",
    "DocumenterAgent",
    "FrontendAgent",
    "PlannerAgent",
    "ProjectAuditorAgent",
    "QATesterAgent",
    "SPECIALIST_ROLES",
    "SentinelAgent",
    "StateListener",
    "TokenAuditorAgent",
    "create_agent",
    "manual_review_plan",
    "planning_task",
    "team_roster",
]
