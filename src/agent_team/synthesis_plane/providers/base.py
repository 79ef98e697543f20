"""
agent-team-orchestrator — completion provider contract

File: src/agent_team/synthesis_plane/providers/base.py
Last updated: 2026-10-19

Purpose
- Streaming completion contract between agents and whatever talks to an LLM vendor.

What should be included in this file
- Request/event models for one streamed completion.
- Normalized provider error with machine-readable fields.
- A collector that folds one session's stream into text plus token usage.
- Registry of provider factories keyed by name.

Functional requirements
- Events belonging to another session must never leak into a collected completion.

Non-functional requirements
- Must make it easy to add new providers without touching core logic.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, TypeAlias, runtime_checkable

from agent_team.domain.models import TokenUsage

if TYPE_CHECKING:
    from enum import StrEnum
else:
    try:
        from enum import StrEnum
    except ImportError:

        class StrEnum(str, Enum):
            """Compatibility fallback for Python < 3.11."""


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


class ProviderEventKind(StrEnum):
    STARTED = "started"
    PROGRESS = "progress"
    USAGE = "usage"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """One combined prompt routed to a concrete model."""

    prompt: str
    model: str
    session_id: str
    role: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.prompt, str):
            raise TypeError("CompletionRequest.prompt must be a string")
        object.__setattr__(self, "model", _validate_non_empty_str(self.model, "model"))
        object.__setattr__(
            self, "session_id", _validate_non_empty_str(self.session_id, "session_id")
        )


@dataclass(frozen=True, slots=True)
class ProviderEvent:
    """Single item of a provider stream."""

    kind: ProviderEventKind
    session_id: str
    text: str | None = None
    usage: TokenUsage | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    usage: TokenUsage


@runtime_checkable
class CompletionProvider(Protocol):
    """Async stream of events for one completion request."""

    name: str

    def stream(self, request: CompletionRequest) -> AsyncIterator[ProviderEvent]: ...


class ProviderError(RuntimeError):
    """Normalized provider failure with deterministic machine-readable fields."""

    def __init__(self, *, provider: str, code: str, detail: str) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        super().__init__(f"provider={self.provider} code={self.code} detail={self.detail}")


class ProviderUnavailableError(ProviderError):
    """Raised when a provider name is not registered."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail)


async def collect_completion(
    provider: CompletionProvider,
    request: CompletionRequest,
) -> CompletionResult:
    """Drain one session's stream: concatenate progress text, keep the last usage tally."""

    provider_name = getattr(provider, "name", "provider") or "provider"
    chunks: list[str] = []
    usage = TokenUsage()
    completed = False
    async for event in provider.stream(request):
        if event.session_id != request.session_id:
            continue
        if event.kind is ProviderEventKind.PROGRESS and event.text:
            chunks.append(event.text)
        elif event.kind is ProviderEventKind.USAGE and event.usage is not None:
            usage = event.usage
        elif event.kind is ProviderEventKind.FAILED:
            raise ProviderError(
                provider=provider_name,
                code="stream_failed",
                detail=event.error or "agent call failed",
            )
        elif event.kind is ProviderEventKind.COMPLETED:
            if event.usage is not None:
                usage = event.usage
            completed = True
            break
    if not completed:
        raise ProviderError(
            provider=provider_name,
            code="stream_incomplete",
            detail="stream ended without a completed event",
        )
    return CompletionResult(text="".join(chunks), usage=usage)


ProviderFactory: TypeAlias = Callable[[], CompletionProvider]


class ProviderRegistry:
    """Registry for provider factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory, *, overwrite: bool = False) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        if normalized in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._factories[normalized] = factory

    def is_registered(self, name: str) -> bool:
        return _validate_non_empty_str(name, "name").lower() in self._factories

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def create(self, name: str) -> CompletionProvider:
        normalized = _validate_non_empty_str(name, "name").lower()
        factory = self._factories.get(normalized)
        if factory is None:
            raise ProviderUnavailableError("provider is not registered", provider=normalized)
        provider = factory()
        if not isinstance(provider, CompletionProvider):
            raise TypeError(f"provider factory returned invalid provider for {normalized}")
        return provider


__all__ = [
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResult",
    "ProviderError",
    "ProviderEvent",
    "ProviderEventKind",
    "ProviderFactory",
    "ProviderRegistry",
    "ProviderUnavailableError",
    "collect_completion",
]
