"""Deterministic offline provider that replays scripted responses per role."""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field

from agent_team.domain.models import TokenUsage
from agent_team.synthesis_plane.providers.base import (
    CompletionRequest,
    ProviderEvent,
    ProviderEventKind,
)

DEFAULT_CHUNK_CHARS = 48


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


@dataclass(slots=True)
class ScriptedProvider:
    """Streams canned text keyed by the requesting role.

    A sequence of responses is consumed in order and its last entry repeats.
    Roles listed in ``failures`` stream a ``failed`` event with the given message.
    """

    responses: Mapping[str, str | Sequence[str]] = field(default_factory=dict)
    default_response: str | None = None
    failures: Mapping[str, str] = field(default_factory=dict)
    chunk_chars: int = DEFAULT_CHUNK_CHARS
    name: str = "scripted"
    calls: list[CompletionRequest] = field(default_factory=list)
    _cursor: dict[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if self.chunk_chars <= 0:
            raise ValueError("chunk_chars must be > 0")

    async def stream(self, request: CompletionRequest) -> AsyncIterator[ProviderEvent]:
        self.calls.append(request)
        role = request.role or ""
        session_id = request.session_id
        yield ProviderEvent(kind=ProviderEventKind.STARTED, session_id=session_id)

        if role in self.failures:
            yield ProviderEvent(
                kind=ProviderEventKind.FAILED,
                session_id=session_id,
                error=self.failures[role],
            )
            return

        text = self._next_response(role)
        for start in range(0, len(text), self.chunk_chars):
            await asyncio.sleep(0)
            yield ProviderEvent(
                kind=ProviderEventKind.PROGRESS,
                session_id=session_id,
                text=text[start : start + self.chunk_chars],
            )
        usage = TokenUsage(
            input_tokens=estimate_tokens(request.prompt),
            output_tokens=estimate_tokens(text),
        )
        yield ProviderEvent(kind=ProviderEventKind.USAGE, session_id=session_id, usage=usage)
        yield ProviderEvent(kind=ProviderEventKind.COMPLETED, session_id=session_id)

    def calls_for(self, role: str) -> tuple[CompletionRequest, ...]:
        return tuple(call for call in self.calls if call.role == role)

    def _next_response(self, role: str) -> str:
        scripted = self.responses.get(role)
        if scripted is None:
            if self.default_response is not None:
                return self.default_response
            return f"## Summary\n\nScripted response from {role or 'agent'}.\n"
        if isinstance(scripted, str):
            return scripted
        if not scripted:
            return ""
        index = self._cursor.get(role, 0)
        self._cursor[role] = index + 1
        return scripted[min(index, len(scripted) - 1)]


__all__ = ["DEFAULT_CHUNK_CHARS", "ScriptedProvider", "estimate_tokens"]
