"""Public observability primitives: JSON-lines logging and lifecycle event streaming."""

from agent_team.observability.events import (
    DispatchError,
    EngineEvent,
    EngineEventType,
    EventBus,
    Subscriber,
)
from agent_team.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_correlation_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "DispatchError",
    "EngineEvent",
    "EngineEventType",
    "EventBus",
    "LoggingConfig",
    "Subscriber",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
