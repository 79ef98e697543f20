"""
agent-team-orchestrator — completion providers

File: src/agent_team/synthesis_plane/providers/__init__.py
Last updated: 2026-10-19

Purpose
- Completion provider contract and the offline scripted provider.

Functional requirements
- Must normalize streamed output (text, usage, failure) into a common format.
"""

from agent_team.synthesis_plane.providers.base import (
    CompletionProvider,
    CompletionRequest,
    CompletionResult,
    ProviderError,
    ProviderEvent,
    ProviderEventKind,
    ProviderFactory,
    ProviderRegistry,
    ProviderUnavailableError,
    collect_completion,
)
from agent_team.synthesis_plane.providers.scripted import ScriptedProvider, estimate_tokens


def default_provider_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("scripted", ScriptedProvider)
    return registry


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
    "ScriptedProvider",
    "collect_completion",
    "default_provider_registry",
    "estimate_tokens",
]
