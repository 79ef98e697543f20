"""Stable constants shared across orchestrator planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
MESSAGE_STORE_SCHEMA_VERSION: Final[int] = 1

# Message addressing.
BROADCAST_ADDRESS: Final[str] = "@all"
ADDRESS_PREFIX: Final[str] = "@"

# Roles the engine talks through directly.
PLANNER_ROLE: Final[str] = "coo"
APPROVER_ROLE: Final[str] = "ceo"
FINANCE_ROLE: Final[str] = "cfo"

# Bounded retention.
DEFAULT_MESSAGE_PERSIST_LIMIT: Final[int] = 500
DEFAULT_COST_HISTORY_LIMIT: Final[int] = 50
DEFAULT_HISTORY_WINDOW: Final[int] = 10

__all__ = [
    "ADDRESS_PREFIX",
    "APPROVER_ROLE",
    "BROADCAST_ADDRESS",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COST_HISTORY_LIMIT",
    "DEFAULT_HISTORY_WINDOW",
    "DEFAULT_MESSAGE_PERSIST_LIMIT",
    "FINANCE_ROLE",
    "MESSAGE_STORE_SCHEMA_VERSION",
    "PLANNER_ROLE",
]
