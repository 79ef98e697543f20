"""
agent-team-orchestrator — model tiers and price table.

File: src/agent_team/synthesis_plane/model_catalog.py
Last updated: 2026-10-19

Purpose
- Map cost/capability tiers to concrete model ids and price them per million tokens.

What should be included in this file
- Default tier → model routing per provider.
- Per-million-token input/output prices with a ``_default`` fallback entry.
- Keyword-based tier recommendation for free-form task descriptions.

Functional requirements
- Unknown model ids must price against the fallback entry, never raise.

Non-functional requirements
- Deterministic, offline-safe, and auditable.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final

from agent_team.domain.models import Tier, as_tier

DEFAULT_PRICE_KEY: Final[str] = "_default"
DEFAULT_PROVIDER: Final[str] = "anthropic"

_MINIMAL_KEYWORDS: Final[tuple[str, ...]] = (
    "heartbeat",
    "ping",
    "status",
    "idle",
    "format",
    "template",
    "scaffold",
    "boilerplate",
    "list",
    "scan",
    "validate",
    "schema",
    "log",
    "timestamp",
    "metadata",
    "layout",
    "render",
)
_DEEP_KEYWORDS: Final[tuple[str, ...]] = (
    "architect",
    "design",
    "debug",
    "security",
    "audit",
    "performance",
    "optimize",
    "creative",
    "integration",
    "critical",
    "algorithm",
    "refactor",
    "complex",
    "novel",
    "trade-off",
    "vulnerability",
)


@dataclass(frozen=True, slots=True)
class ModelPrice:
    """USD price per one million input/output tokens."""

    input_per_million_usd: float
    output_per_million_usd: float

    def __post_init__(self) -> None:
        if self.input_per_million_usd < 0 or self.output_per_million_usd < 0:
            raise ValueError("model prices must be >= 0")

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_per_million_usd + output_tokens * self.output_per_million_usd
        ) / 1_000_000


DEFAULT_PRICING: Final[Mapping[str, ModelPrice]] = MappingProxyType(
    {
        "claude-sonnet-4-5": ModelPrice(3.0, 15.0),
        "claude-opus-4-6": ModelPrice(15.0, 75.0),
        "claude-haiku-4-5": ModelPrice(0.8, 4.0),
        "claude-opus-4-20250514": ModelPrice(15.0, 75.0),
        "claude-sonnet-4-20250514": ModelPrice(3.0, 15.0),
        "claude-3-5-sonnet-20241022": ModelPrice(3.0, 15.0),
        "claude-3-5-haiku-20241022": ModelPrice(0.8, 4.0),
        "claude-3-haiku-20240307": ModelPrice(0.25, 1.25),
        "gpt-4o": ModelPrice(2.5, 10.0),
        "gpt-4o-mini": ModelPrice(0.15, 0.6),
        "gpt-4-turbo": ModelPrice(10.0, 30.0),
        DEFAULT_PRICE_KEY: ModelPrice(3.0, 15.0),
    }
)

DEFAULT_TIER_MODELS: Final[Mapping[str, Mapping[Tier, str]]] = MappingProxyType(
    {
        "anthropic": MappingProxyType(
            {
                Tier.MINIMAL: "claude-3-haiku-20240307",
                Tier.STANDARD: "claude-sonnet-4-20250514",
                Tier.DEEP: "claude-opus-4-20250514",
            }
        ),
        "openai": MappingProxyType(
            {
                Tier.MINIMAL: "gpt-4o-mini",
                Tier.STANDARD: "gpt-4o",
                Tier.DEEP: "o3",
            }
        ),
    }
)


@dataclass(frozen=True, slots=True)
class ModelCatalog:
    """Tier routing and price lookup with fallback pricing."""

    pricing: Mapping[str, ModelPrice] = field(default_factory=lambda: dict(DEFAULT_PRICING))
    tier_models: Mapping[str, Mapping[Tier, str]] = field(
        default_factory=lambda: {name: dict(models) for name, models in DEFAULT_TIER_MODELS.items()}
    )
    provider: str = DEFAULT_PROVIDER

    def __post_init__(self) -> None:
        if DEFAULT_PRICE_KEY not in self.pricing:
            raise ValueError(f"pricing must include a {DEFAULT_PRICE_KEY!r} entry")
        if self.provider not in self.tier_models:
            raise ValueError(f"no tier models configured for provider {self.provider!r}")
        object.__setattr__(self, "pricing", MappingProxyType(dict(self.pricing)))

    @classmethod
    def from_config(cls, config: Mapping[str, object] | None) -> ModelCatalog:
        """Apply the ``[models]`` config section over the built-in routing."""

        section = config.get("models") if isinstance(config, Mapping) else None
        if not isinstance(section, Mapping):
            return cls()
        provider = str(section.get("provider") or DEFAULT_PROVIDER)
        tier_models = {name: dict(models) for name, models in DEFAULT_TIER_MODELS.items()}
        routed = dict(tier_models.get(provider, {}))
        for tier in Tier:
            override = section.get(tier.value)
            if isinstance(override, str) and override.strip():
                routed[tier] = override.strip()
        tier_models[provider] = routed
        return cls(tier_models=tier_models, provider=provider)

    def model_for_tier(self, tier: Tier | str, provider: str | None = None) -> str:
        models = self.tier_models.get(provider or self.provider) or self.tier_models[self.provider]
        resolved = as_tier(tier)
        if resolved in models:
            return models[resolved]
        return next(iter(models.values()))

    def price_for(self, model_id: str) -> ModelPrice:
        return self.pricing.get(model_id, self.pricing[DEFAULT_PRICE_KEY])

    def estimate_cost(self, *, model_id: str, input_tokens: int, output_tokens: int) -> float:
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must be >= 0")
        return self.price_for(model_id).cost(input_tokens, output_tokens)


def recommend_tier(task_type: str | None) -> Tier:
    """Pick a tier from keywords in a task description; defaults to standard."""

    lowered = (task_type or "").lower()
    if any(keyword in lowered for keyword in _MINIMAL_KEYWORDS):
        return Tier.MINIMAL
    if any(keyword in lowered for keyword in _DEEP_KEYWORDS):
        return Tier.DEEP
    return Tier.STANDARD


__all__ = [
    "DEFAULT_PRICE_KEY",
    "DEFAULT_PRICING",
    "DEFAULT_TIER_MODELS",
    "ModelCatalog",
    "ModelPrice",
    "recommend_tier",
]
