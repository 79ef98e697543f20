"""Domain models, plan documents, and identifiers for the agent team."""

from agent_team.domain.models import (
    AgentState,
    EngineState,
    ExternalState,
    JSONScalar,
    JSONValue,
    Message,
    MessageType,
    ProjectContext,
    TaskResult,
    TaskStatus,
    Tier,
    TokenUsage,
    as_tier,
    normalize_message_type,
)
from agent_team.domain.plan import Milestone, Phase, Plan, PlanValidationError, Task

__all__ = [
    "AgentState",
    "EngineState",
    "ExternalState",
    "JSONScalar",
    "JSONValue",
    "Message",
    "MessageType",
    "Milestone",
    "Phase",
    "Plan",
    "PlanValidationError",
    "ProjectContext",
    "Task",
    "TaskResult",
    "TaskStatus",
    "Tier",
    "TokenUsage",
    "as_tier",
    "normalize_message_type",
]
