"""Persistence layer for the team message log and cost history."""

from agent_team.persistence.message_store import (
    InMemoryMessageStore,
    MessageStore,
    MessageStoreError,
    SQLiteMessageStore,
)

__all__ = [
    "InMemoryMessageStore",
    "MessageStore",
    "MessageStoreError",
    "SQLiteMessageStore",
]
