"""In-process lifecycle event bus for observers outside the engine."""

from __future__ import annotations

import asyncio
import inspect
import math
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, cast

from agent_team.domain.ids import generate_event_id
from agent_team.domain.models import JSONValue, utc_now

if TYPE_CHECKING:
    from enum import StrEnum
else:
    try:
        from enum import StrEnum
    except ImportError:

        class StrEnum(str, Enum):
            """Compatibility fallback for Python < 3.11."""


_MAX_JSON_DEPTH: Final[int] = 16
_DEFAULT_ERROR_BUFFER: Final[int] = 1024


class EngineEventType(StrEnum):
    """Lifecycle events published by the execution engine and cost ledger."""

    STATE_CHANGE = "state-change"
    PLAN_READY = "plan-ready"
    ROUND_STARTED = "round-started"
    ROUND_COMPLETE = "round-complete"
    PHASE_STARTED = "phase-started"
    PHASE_COMPLETE = "phase-complete"
    APPROVAL_NEEDED = "approval-needed"
    SESSION_COMPLETE = "session-complete"
    COST_UPDATE = "cost-update"
    COST_ALERT = "cost-alert"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    event_id: str
    event_type: EngineEventType
    payload: dict[str, JSONValue]
    session_id: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.event_id,
            "type": self.event_type.value,
            "sessionId": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
        }


Subscriber = Callable[[EngineEvent], object]


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting publishers."""

    event_id: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: str | None
    callback: Subscriber


class EventBus:
    """Resilient event bus with sync+async subscribers and bounded replay."""

    def __init__(self, *, buffer_size: int = 512) -> None:
        if not isinstance(buffer_size, int):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._buffer = deque[EngineEvent](maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1

    def subscribe(self, event_type: str | EngineEventType | None, callback: Subscriber) -> int:
        """Subscribe callback to an event type or all events when ``event_type`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        token = self._next_token
        self._next_token += 1
        self._subscriptions[token] = _Subscription(
            token=token,
            event_type=None if event_type is None else _as_event_type(event_type).value,
            callback=callback,
        )
        return token

    def unsubscribe(self, token: int) -> bool:
        """Unsubscribe callback token. Returns ``True`` when token existed."""

        if not isinstance(token, int):
            raise ValueError(f"token must be an integer, got {type(token).__name__}")
        return self._subscriptions.pop(token, None) is not None

    def publish(self, event: EngineEvent) -> tuple[DispatchError, ...]:
        """Publish from synchronous code; awaitable results are run to completion."""

        self._buffer.append(event)
        errors: list[DispatchError] = []
        for subscription in self._matching(event):
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    _run_awaitable_sync(cast("Awaitable[Any]", result))
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        self._dispatch_errors.extend(errors)
        return tuple(errors)

    async def publish_async(self, event: EngineEvent) -> tuple[DispatchError, ...]:
        """Publish from async code and await async subscribers in subscription order."""

        self._buffer.append(event)
        errors: list[DispatchError] = []
        for subscription in self._matching(event):
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        self._dispatch_errors.extend(errors)
        return tuple(errors)

    def emit(
        self,
        event_type: str | EngineEventType,
        payload: Mapping[str, object],
        *,
        session_id: str | None = None,
    ) -> tuple[EngineEvent, tuple[DispatchError, ...]]:
        event = build_event(event_type, payload, session_id=session_id)
        return event, self.publish(event)

    async def emit_async(
        self,
        event_type: str | EngineEventType,
        payload: Mapping[str, object],
        *,
        session_id: str | None = None,
    ) -> tuple[EngineEvent, tuple[DispatchError, ...]]:
        event = build_event(event_type, payload, session_id=session_id)
        return event, await self.publish_async(event)

    def replay(
        self,
        *,
        event_type: str | EngineEventType | None = None,
        limit: int | None = None,
    ) -> tuple[EngineEvent, ...]:
        """Replay buffered events in publish order."""

        wanted = None if event_type is None else _as_event_type(event_type)
        events = [e for e in self._buffer if wanted is None or e.event_type is wanted]
        if limit is not None:
            if limit <= 0:
                return ()
            events = events[-limit:]
        return tuple(events)

    def history(
        self,
        *,
        event_type: str | EngineEventType | None = None,
        limit: int | None = None,
    ) -> tuple[EngineEvent, ...]:
        """Alias for ``replay``."""

        return self.replay(event_type=event_type, limit=limit)

    def dispatch_errors(self, *, limit: int | None = None) -> tuple[DispatchError, ...]:
        errors = tuple(self._dispatch_errors)
        if limit is None:
            return errors
        return errors[-limit:] if limit > 0 else ()

    def _matching(self, event: EngineEvent) -> tuple[_Subscription, ...]:
        return tuple(
            subscription
            for subscription in self._subscriptions.values()
            if subscription.event_type is None
            or subscription.event_type == event.event_type.value
        )


def build_event(
    event_type: str | EngineEventType,
    payload: Mapping[str, object],
    *,
    session_id: str | None = None,
) -> EngineEvent:
    return EngineEvent(
        event_id=generate_event_id(),
        event_type=_as_event_type(event_type),
        payload=_as_json_object(payload, "payload"),
        session_id=session_id,
    )


def _as_event_type(value: str | EngineEventType) -> EngineEventType:
    if isinstance(value, EngineEventType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"event_type must be string/EngineEventType, got {type(value).__name__}")
    try:
        return EngineEventType(value.strip())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in EngineEventType)
        raise ValueError(f"invalid event_type {value!r}; allowed: {allowed}") from exc


def _run_awaitable_sync(awaitable: Awaitable[Any]) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_await(awaitable))
        return
    raise RuntimeError("async subscriber published from a running loop; use publish_async")


async def _await(awaitable: Awaitable[Any]) -> None:
    await awaitable


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _dispatch_error(event: EngineEvent, callback: object, exc: Exception) -> DispatchError:
    return DispatchError(
        event_id=event.event_id,
        target=_callback_name(callback),
        error_type=exc.__class__.__name__,
        message=str(exc),
    )


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path)
    if not isinstance(parsed, dict):
        raise ValueError(f"{path}: expected object")
    return parsed


def _as_json_value(value: object, path: str, *, depth: int = 0) -> JSONValue:
    if depth > _MAX_JSON_DEPTH:
        raise ValueError(f"{path}: JSON nesting too deep")

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path}: float value must be finite")
        return value
    if isinstance(value, Enum):
        return _as_json_value(value.value, path, depth=depth + 1)
    if isinstance(value, (list, tuple)):
        return [
            _as_json_value(item, f"{path}[{index}]", depth=depth + 1)
            for index, item in enumerate(value)
        ]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{path}: object keys must be strings")
            out[key] = _as_json_value(item, f"{path}.{key}", depth=depth + 1)
        return out
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _as_json_value(to_dict(), path, depth=depth + 1)

    raise ValueError(f"{path}: value is not JSON-serializable ({type(value).__name__})")


__all__ = [
    "DispatchError",
    "EngineEvent",
    "EngineEventType",
    "EventBus",
    "Subscriber",
    "build_event",
]
