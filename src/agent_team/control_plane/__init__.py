"""Control plane: session state machine, round scheduling, and cost accounting."""

from agent_team.control_plane.budgets import (
    BudgetAlert,
    BudgetLimits,
    CostLedger,
    UsageTotals,
)
from agent_team.control_plane.engine import (
    EXTERNAL_STATE,
    EngineStateError,
    ExecutionEngine,
    PhaseOutcome,
    SessionHandle,
)
from agent_team.control_plane.scheduler import (
    PlanCursor,
    SequentialTaskRunner,
    TaskExecutor,
    TaskRunner,
)

__all__ = [
    "BudgetAlert",
    "BudgetLimits",
    "CostLedger",
    "EXTERNAL_STATE",
    "EngineStateError",
    "ExecutionEngine",
    "PhaseOutcome",
    "PlanCursor",
    "SequentialTaskRunner",
    "SessionHandle",
    "TaskExecutor",
    "TaskRunner",
    "UsageTotals",
]
