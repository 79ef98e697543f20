"""
agent-team-orchestrator — bounded persistence for the team log

File: src/agent_team/persistence/message_store.py
Last updated: 2026-10-19

Purpose
- Persists the newest bus messages and finalized cost reports across process restarts.

What should be included in this file
- Store protocol the message bus and cost ledger depend on.
- In-memory store for tests and ephemeral sessions.
- SQLite store with short-lived connections and a schema version pragma.

Functional requirements
- Appending a message trims the stored tail to the newest `limit` rows.
- Saving the message tail replaces the previous tail atomically.
- Cost history is bounded; oldest reports are evicted first.

Non-functional requirements
- Must avoid long-lived locks; every call opens and closes its own connection.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from agent_team.constants import (
    DEFAULT_COST_HISTORY_LIMIT,
    DEFAULT_MESSAGE_PERSIST_LIMIT,
    MESSAGE_STORE_SCHEMA_VERSION,
)

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

_SCHEMA: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        position INTEGER PRIMARY KEY,
        record TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cost_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        report TEXT NOT NULL
    )
    """,
)


class MessageStoreError(RuntimeError):
    """Raised when persisted records cannot be read or written."""


@runtime_checkable
class MessageStore(Protocol):
    def save_messages(self, records: Sequence[Mapping[str, Any]]) -> None: ...

    def append_message(
        self, record: Mapping[str, Any], *, limit: int = DEFAULT_MESSAGE_PERSIST_LIMIT
    ) -> None: ...

    def load_messages(self) -> list[dict[str, Any]]: ...

    def append_cost_report(
        self, report: Mapping[str, Any], *, limit: int = DEFAULT_COST_HISTORY_LIMIT
    ) -> None: ...

    def load_cost_history(self) -> list[dict[str, Any]]: ...


@dataclass(slots=True)
class InMemoryMessageStore:
    """Process-local store; records are copied on the way in and out."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    cost_history: list[dict[str, Any]] = field(default_factory=list)

    def save_messages(self, records: Sequence[Mapping[str, Any]]) -> None:
        self.messages = [dict(record) for record in records]

    def append_message(
        self, record: Mapping[str, Any], *, limit: int = DEFAULT_MESSAGE_PERSIST_LIMIT
    ) -> None:
        self.messages.append(dict(record))
        if limit > 0 and len(self.messages) > limit:
            del self.messages[: len(self.messages) - limit]

    def load_messages(self) -> list[dict[str, Any]]:
        return [dict(record) for record in self.messages]

    def append_cost_report(
        self, report: Mapping[str, Any], *, limit: int = DEFAULT_COST_HISTORY_LIMIT
    ) -> None:
        self.cost_history.append(dict(report))
        if limit > 0 and len(self.cost_history) > limit:
            del self.cost_history[: len(self.cost_history) - limit]

    def load_cost_history(self) -> list[dict[str, Any]]:
        return [dict(report) for report in self.cost_history]


class SQLiteMessageStore:
    """SQLite-backed store; schema is created on first use."""

    def __init__(self, path: str | Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, isolation_level=None)
        try:
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            if not self._initialized:
                self._ensure_schema(conn)
            yield conn
        except sqlite3.Error as exc:
            raise MessageStoreError(f"message store failure at {self._path}: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    def schema_version(self) -> int:
        with self.connection() as conn:
            row = conn.execute("PRAGMA user_version").fetchone()
        return int(row[0]) if row is not None else 0

    def save_messages(self, records: Sequence[Mapping[str, Any]]) -> None:
        rows = [(index, _dumps(record)) for index, record in enumerate(records)]
        with self.transaction() as conn:
            conn.execute("DELETE FROM messages")
            conn.executemany("INSERT INTO messages (position, record) VALUES (?, ?)", rows)

    def append_message(
        self, record: Mapping[str, Any], *, limit: int = DEFAULT_MESSAGE_PERSIST_LIMIT
    ) -> None:
        with self.transaction() as conn:
            cursor = conn.execute("INSERT INTO messages (record) VALUES (?)", (_dumps(record),))
            if limit > 0 and cursor.lastrowid is not None:
                conn.execute(
                    "DELETE FROM messages WHERE position <= ?", (cursor.lastrowid - limit,)
                )

    def load_messages(self) -> list[dict[str, Any]]:
        with self.connection() as conn:
            rows = conn.execute("SELECT record FROM messages ORDER BY position").fetchall()
        return [_loads(row[0]) for row in rows]

    def append_cost_report(
        self, report: Mapping[str, Any], *, limit: int = DEFAULT_COST_HISTORY_LIMIT
    ) -> None:
        with self.transaction() as conn:
            conn.execute("INSERT INTO cost_history (report) VALUES (?)", (_dumps(report),))
            if limit > 0:
                conn.execute(
                    """
                    DELETE FROM cost_history
                    WHERE id NOT IN (SELECT id FROM cost_history ORDER BY id DESC LIMIT ?)
                    """,
                    (limit,),
                )

    def load_cost_history(self) -> list[dict[str, Any]]:
        with self.connection() as conn:
            rows = conn.execute("SELECT report FROM cost_history ORDER BY id").fetchall()
        return [_loads(row[0]) for row in rows]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA user_version").fetchone()
        current = int(row[0]) if row is not None else 0
        if current > MESSAGE_STORE_SCHEMA_VERSION:
            raise MessageStoreError(
                f"message store schema v{current} is newer than supported "
                f"v{MESSAGE_STORE_SCHEMA_VERSION}"
            )
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.execute(f"PRAGMA user_version={MESSAGE_STORE_SCHEMA_VERSION}")
        self._initialized = True


def _dumps(record: Mapping[str, Any]) -> str:
    return json.dumps(dict(record), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _loads(raw: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MessageStoreError(f"corrupt persisted record: {exc}") from exc
    if not isinstance(value, dict):
        raise MessageStoreError("persisted record must be a JSON object")
    return value


__all__ = [
    "InMemoryMessageStore",
    "MessageStore",
    "MessageStoreError",
    "SQLiteMessageStore",
]
