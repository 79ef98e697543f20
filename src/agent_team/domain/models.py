"""Dataclass domain models shared by every orchestration plane."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

if TYPE_CHECKING:
    from enum import StrEnum
else:
    try:
        from enum import StrEnum
    except ImportError:

        class StrEnum(str, Enum):
            """Compatibility fallback for Python < 3.11."""


JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MESSAGE_TYPE_RE = re.compile(r"^[a-z][a-z0-9_-]*$")


class Tier(StrEnum):
    """Cost/capability class governing context budget and model price."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    DEEP = "deep"


class MessageType(StrEnum):
    """Message kinds exchanged on the team bus."""

    TASK = "task"
    RESPONSE = "response"
    REPORT = "report"
    QUESTION = "question"
    STATUS = "status"
    ESCALATION = "escalation"
    APPROVAL = "approval"
    BROADCAST = "broadcast"


class AgentState(StrEnum):
    """Per-agent execution lifecycle."""

    IDLE = "idle"
    THINKING = "thinking"
    RESPONDING = "responding"
    DONE = "done"
    ERROR = "error"


class EngineState(StrEnum):
    """Execution engine lifecycle."""

    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    REVIEWING = "reviewing"
    AWAITING_APPROVAL = "awaiting-approval"
    PHASE_COMPLETE = "phase-complete"
    SESSION_COMPLETE = "session-complete"
    ERROR = "error"
    PAUSED = "paused"


class ExternalState(StrEnum):
    """Narrow state vocabulary published to observers outside the engine."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    EXECUTING = "executing"
    MONITORING = "monitoring"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(StrEnum):
    """Outcome of one task within a round."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


def as_tier(value: Tier | str, field_name: str = "tier") -> Tier:
    if isinstance(value, Tier):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    try:
        return Tier(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Tier)
        raise ValueError(f"invalid {field_name} {value!r}; allowed: {allowed}") from exc


def normalize_message_type(value: MessageType | str) -> str:
    """Return a canonical message type; unknown lowercase types are kept verbatim."""

    if isinstance(value, MessageType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"message type must be a string, got {type(value).__name__}")
    normalized = value.strip().lower()
    try:
        return MessageType(normalized)
    except ValueError:
        if not _MESSAGE_TYPE_RE.fullmatch(normalized):
            raise ValueError(f"invalid message type {value!r}") from None
        return normalized


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _validate_non_empty_str(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{field_name} cannot be empty")
    return parsed


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Input/output token tally for one call or a running total."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.input_tokens, bool) or not isinstance(self.input_tokens, int):
            raise ValueError("input_tokens must be an integer")
        if isinstance(self.output_tokens, bool) or not isinstance(self.output_tokens, int):
            raise ValueError("output_tokens must be an integer")
        if self.input_tokens < 0:
            raise ValueError("input_tokens must be >= 0")
        if self.output_tokens < 0:
            raise ValueError("output_tokens must be >= 0")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def plus(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {"input": self.input_tokens, "output": self.output_tokens}


@dataclass(frozen=True, slots=True)
class ProjectContext:
    """Project facts shared by every agent prompt and context block."""

    name: str = ""
    stack: str = ""
    description: str = ""
    features: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    integrations: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for attr in ("name", "stack", "description"):
            value = getattr(self, attr)
            if not isinstance(value, str):
                raise ValueError(f"ProjectContext.{attr} must be a string")
            object.__setattr__(self, attr, value.strip())
        for attr in ("features", "constraints", "integrations"):
            object.__setattr__(self, attr, _labels(getattr(self, attr), f"ProjectContext.{attr}"))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object] | None) -> ProjectContext:
        """Build from a loose mapping; list items may be strings or ``{label: ...}`` objects."""

        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise ValueError("project context must be a mapping")
        return cls(
            name=str(payload.get("name") or ""),
            stack=str(payload.get("stack") or ""),
            description=str(payload.get("description") or ""),
            features=_labels(payload.get("features"), "features"),
            constraints=_labels(payload.get("constraints"), "constraints"),
            integrations=_labels(payload.get("integrations"), "integrations"),
        )

    def merged(self, updates: Mapping[str, object]) -> ProjectContext:
        current: dict[str, object] = dict(self.to_dict())
        for key, value in updates.items():
            if key not in current:
                raise ValueError(f"unknown project context field: {key}")
            current[key] = value
        return ProjectContext.from_mapping(current)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "stack": self.stack,
            "description": self.description,
            "features": list(self.features),
            "constraints": list(self.constraints),
            "integrations": list(self.integrations),
        }


def _labels(raw: object, field_name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str) or not isinstance(raw, Sequence):
        raise ValueError(f"{field_name} must be a sequence")
    out: list[str] = []
    for item in raw:
        if isinstance(item, Mapping):
            item = item.get("label") or item.get("name") or ""
        if not isinstance(item, str):
            raise ValueError(f"{field_name} entries must be strings or labelled objects")
        stripped = item.strip()
        if stripped:
            out.append(stripped)
    return tuple(out)


@dataclass(frozen=True, slots=True)
class Message:
    """Append-only bus record; one thread membership per message."""

    message_id: str
    from_role: str
    to: str
    content: str
    type: str = MessageType.STATUS
    thread_id: str = ""
    data: Any = None
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "message_id", _validate_non_empty_str(self.message_id, "Message.message_id")
        )
        object.__setattr__(
            self, "from_role", _validate_non_empty_str(self.from_role, "Message.from_role")
        )
        object.__setattr__(self, "to", _validate_non_empty_str(self.to, "Message.to"))
        if not isinstance(self.content, str):
            raise ValueError("Message.content must be a string")
        object.__setattr__(self, "type", normalize_message_type(self.type))
        object.__setattr__(
            self, "thread_id", _validate_non_empty_str(self.thread_id, "Message.thread_id")
        )
        if self.timestamp.tzinfo is None:
            raise ValueError("Message.timestamp must be timezone-aware")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.message_id,
            "fromRole": self.from_role,
            "to": self.to,
            "content": self.content,
            "type": str(self.type),
            "threadId": self.thread_id,
            "data": self.data,
            "timestamp": _iso8601z(self.timestamp),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> Message:
        raw_timestamp = payload.get("timestamp")
        if isinstance(raw_timestamp, str):
            text = raw_timestamp[:-1] + "+00:00" if raw_timestamp.endswith("Z") else raw_timestamp
            timestamp = datetime.fromisoformat(text)
        else:
            timestamp = utc_now()
        return cls(
            message_id=_validate_non_empty_str(payload.get("id"), "id"),
            from_role=_validate_non_empty_str(payload.get("fromRole"), "fromRole"),
            to=_validate_non_empty_str(payload.get("to"), "to"),
            content=str(payload.get("content") or ""),
            type=str(payload.get("type") or MessageType.STATUS),
            thread_id=_validate_non_empty_str(payload.get("threadId"), "threadId"),
            data=payload.get("data"),
            timestamp=timestamp,
        )


@dataclass(frozen=True, slots=True)
class TaskResult:
    """One entry in a round's result log."""

    task_id: str
    title: str
    role: str
    status: TaskStatus
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "taskId": self.task_id,
            "title": self.title,
            "role": self.role,
            "status": self.status.value,
        }
        if self.result is not None:
            payload["result"] = self.result
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = [
    "AgentState",
    "EngineState",
    "ExternalState",
    "JSONScalar",
    "JSONValue",
    "Message",
    "MessageType",
    "ProjectContext",
    "TaskResult",
    "TaskStatus",
    "Tier",
    "TokenUsage",
    "as_tier",
    "normalize_message_type",
    "utc_now",
]
