"""
agent-team-orchestrator — addressed team message bus

File: src/agent_team/messaging/bus.py
Last updated: 2026-10-19

Purpose
- Append-only, thread-indexed log of role-to-role messages with synchronous delivery.

What should be included in this file
- Direct (``@role``) and broadcast (``@all``) addressing.
- Role, type, and observe-all subscriptions returning unsubscribe callables.
- Query helpers over the in-session log and a bounded persisted tail.

Functional requirements
- A subscriber never receives the same message twice.
- A failing subscriber never prevents delivery to the others.

Non-functional requirements
- The in-session log is unbounded; only the persisted tail is capped.
"""

from __future__ import annotations

from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import structlog

from agent_team.constants import (
    ADDRESS_PREFIX,
    BROADCAST_ADDRESS,
    DEFAULT_MESSAGE_PERSIST_LIMIT,
)
from agent_team.domain.ids import generate_message_id, generate_thread_id
from agent_team.domain.models import JSONValue, Message, MessageType, normalize_message_type
from agent_team.persistence.message_store import MessageStore, MessageStoreError

MessageCallback = Callable[[Message], object]
Unsubscribe = Callable[[], bool]

_OBSERVE_ALL: Final[str] = "__all__"
_DEFAULT_ERROR_BUFFER: Final[int] = 256


@dataclass(frozen=True, slots=True)
class DeliveryError:
    """Subscriber failure captured without interrupting the sender."""

    message_id: str
    target: str
    error_type: str
    message: str


class MessageBus:
    """In-process team bus; delivery is synchronous and in subscription order."""

    def __init__(
        self,
        *,
        store: MessageStore | None = None,
        persist_limit: int = DEFAULT_MESSAGE_PERSIST_LIMIT,
        logger: Any | None = None,
    ) -> None:
        if persist_limit <= 0:
            raise ValueError("persist_limit must be > 0")
        self._store = store
        self._persist_limit = persist_limit
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._messages: list[Message] = []
        self._threads: dict[str, list[Message]] = {}
        self._role_subscribers: dict[str, list[MessageCallback]] = {}
        self._type_subscribers: dict[str, list[MessageCallback]] = {}
        self._delivery_errors = deque[DeliveryError](maxlen=_DEFAULT_ERROR_BUFFER)

    def send(
        self,
        from_role: str,
        to: str,
        content: str,
        *,
        type: MessageType | str = MessageType.STATUS,
        thread_id: str | None = None,
        data: Any = None,
    ) -> Message:
        """Record, deliver, and persist one message."""

        message = Message(
            message_id=generate_message_id(),
            from_role=from_role,
            to=to,
            content=content,
            type=type,
            thread_id=thread_id or generate_thread_id(),
            data=data,
        )
        self._messages.append(message)
        self._threads.setdefault(message.thread_id, []).append(message)

        errors = self._route(message)
        if errors:
            self._delivery_errors.extend(errors)
        self._persist(message)
        return message

    def broadcast(
        self,
        from_role: str,
        content: str,
        *,
        type: MessageType | str = MessageType.BROADCAST,
        thread_id: str | None = None,
        data: Any = None,
    ) -> Message:
        return self.send(
            from_role, BROADCAST_ADDRESS, content, type=type, thread_id=thread_id, data=data
        )

    def subscribe(self, role_id: str, callback: MessageCallback) -> Unsubscribe:
        """Receive messages sent to ``@role_id`` and every broadcast."""

        return self._add(self._role_subscribers, role_id, callback)

    def subscribe_type(
        self, message_type: MessageType | str, callback: MessageCallback
    ) -> Unsubscribe:
        return self._add(
            self._type_subscribers, str(normalize_message_type(message_type)), callback
        )

    def subscribe_all(self, callback: MessageCallback) -> Unsubscribe:
        """Observe every message regardless of address."""

        return self._add(self._role_subscribers, _OBSERVE_ALL, callback)

    def all(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def for_role(self, role_id: str, limit: int | None = None) -> tuple[Message, ...]:
        direct = f"{ADDRESS_PREFIX}{role_id}"
        matched = [m for m in self._messages if m.to in (direct, BROADCAST_ADDRESS)]
        if limit is not None:
            matched = matched[-limit:] if limit > 0 else []
        return tuple(matched)

    def from_role(self, role_id: str) -> tuple[Message, ...]:
        return tuple(m for m in self._messages if m.from_role == role_id)

    def thread(self, thread_id: str) -> tuple[Message, ...]:
        return tuple(self._threads.get(thread_id, ()))

    def by_type(self, message_type: MessageType | str) -> tuple[Message, ...]:
        wanted = str(normalize_message_type(message_type))
        return tuple(m for m in self._messages if str(m.type) == wanted)

    def recent(self, n: int = 20) -> tuple[Message, ...]:
        if n <= 0:
            return ()
        return tuple(self._messages[-n:])

    @property
    def count(self) -> int:
        return len(self._messages)

    @property
    def thread_count(self) -> int:
        return len(self._threads)

    def delivery_errors(self, *, limit: int | None = None) -> tuple[DeliveryError, ...]:
        errors = tuple(self._delivery_errors)
        if limit is None:
            return errors
        return errors[-limit:] if limit > 0 else ()

    def clear(self) -> None:
        self._messages.clear()
        self._threads.clear()
        self._persist()

    def restore(self) -> int:
        """Reload the persisted tail into the log; returns the number of messages loaded."""

        if self._store is None:
            return 0
        records = self._store.load_messages()
        self._messages = [Message.from_dict(record) for record in records]
        self._threads = {}
        for message in self._messages:
            self._threads.setdefault(message.thread_id, []).append(message)
        return len(self._messages)

    def export(self) -> dict[str, JSONValue]:
        return {
            "messages": [m.to_dict() for m in self._messages],
            "threads": {
                thread_id: [m.message_id for m in messages]
                for thread_id, messages in self._threads.items()
            },
            "stats": {
                "total": len(self._messages),
                "threads": len(self._threads),
                "by_type": dict(Counter(str(m.type) for m in self._messages)),
            },
        }

    def _add(
        self,
        table: dict[str, list[MessageCallback]],
        key: str,
        callback: MessageCallback,
    ) -> Unsubscribe:
        if not callable(callback):
            raise ValueError("callback must be callable")
        callbacks = table.setdefault(key, [])
        if callback not in callbacks:
            callbacks.append(callback)

        def unsubscribe() -> bool:
            current = table.get(key)
            if current is None or callback not in current:
                return False
            current.remove(callback)
            return True

        return unsubscribe

    def _recipients(self, message: Message) -> list[MessageCallback]:
        ordered: list[MessageCallback] = []

        def add(callbacks: list[MessageCallback] | None) -> None:
            for callback in callbacks or ():
                if callback not in ordered:
                    ordered.append(callback)

        if message.to == BROADCAST_ADDRESS:
            for key, callbacks in self._role_subscribers.items():
                if key != _OBSERVE_ALL:
                    add(callbacks)
        elif message.to.startswith(ADDRESS_PREFIX):
            add(self._role_subscribers.get(message.to[len(ADDRESS_PREFIX) :]))
        add(self._role_subscribers.get(_OBSERVE_ALL))
        add(self._type_subscribers.get(str(message.type)))
        return ordered

    def _route(self, message: Message) -> list[DeliveryError]:
        errors: list[DeliveryError] = []
        for callback in self._recipients(message):
            try:
                callback(message)
            except Exception as exc:  # noqa: BLE001
                error = DeliveryError(
                    message_id=message.message_id,
                    target=_callback_name(callback),
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
                errors.append(error)
                self._logger.warning(
                    "message_bus_delivery_failed",
                    message_id=error.message_id,
                    target=error.target,
                    error_type=error.error_type,
                    error=error.message,
                )
        return errors

    def _persist(self, message: Message | None = None) -> None:
        """Append ``message`` to the stored tail, or rewrite the tail when none is given."""

        if self._store is None:
            return
        try:
            if message is not None:
                self._store.append_message(message.to_dict(), limit=self._persist_limit)
            else:
                tail = self._messages[-self._persist_limit :]
                self._store.save_messages([m.to_dict() for m in tail])
        except (MessageStoreError, OSError, TypeError, ValueError) as exc:
            self._logger.warning(
                "message_bus_persist_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def role_address(role_id: str) -> str:
    return f"{ADDRESS_PREFIX}{role_id}"


__all__ = [
    "DeliveryError",
    "MessageBus",
    "MessageCallback",
    "Unsubscribe",
    "role_address",
]
