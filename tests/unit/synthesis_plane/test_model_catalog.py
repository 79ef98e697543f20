from __future__ import annotations

import pytest

from agent_team.domain.models import Tier
from agent_team.synthesis_plane.model_catalog import (
    DEFAULT_PRICE_KEY,
    ModelCatalog,
    ModelPrice,
    recommend_tier,
)


def test_default_routing_per_tier() -> None:
    catalog = ModelCatalog()
    assert catalog.model_for_tier(Tier.MINIMAL) == "claude-3-haiku-20240307"
    assert catalog.model_for_tier("deep") == "claude-opus-4-20250514"
    assert catalog.model_for_tier(Tier.STANDARD, provider="openai") == "gpt-4o"


def test_unknown_model_prices_against_fallback() -> None:
    catalog = ModelCatalog()
    assert catalog.price_for("mystery-model") == catalog.pricing[DEFAULT_PRICE_KEY]
    cost = catalog.estimate_cost(
        model_id="mystery-model", input_tokens=1_000_000, output_tokens=1_000_000
    )
    assert cost == pytest.approx(18.0)


def test_estimate_cost_uses_per_million_prices() -> None:
    catalog = ModelCatalog()
    cost = catalog.estimate_cost(
        model_id="claude-3-haiku-20240307", input_tokens=4_000, output_tokens=1_000
    )
    assert cost == pytest.approx((4_000 * 0.25 + 1_000 * 1.25) / 1_000_000)
    with pytest.raises(ValueError, match=">= 0"):
        catalog.estimate_cost(model_id="gpt-4o", input_tokens=-1, output_tokens=0)


def test_model_price_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        ModelPrice(-1.0, 0.0)


def test_catalog_requires_fallback_price_and_known_provider() -> None:
    with pytest.raises(ValueError, match="_default"):
        ModelCatalog(pricing={"gpt-4o": ModelPrice(1.0, 1.0)})
    with pytest.raises(ValueError, match="no tier models"):
        ModelCatalog(provider="nobody")


def test_from_config_overrides_tier_models() -> None:
    catalog = ModelCatalog.from_config(
        {"models": {"provider": "openai", "deep": " o3-pro ", "minimal": ""}}
    )
    assert catalog.provider == "openai"
    assert catalog.model_for_tier(Tier.DEEP) == "o3-pro"
    assert catalog.model_for_tier(Tier.MINIMAL) == "gpt-4o-mini"
    assert ModelCatalog.from_config(None).provider == "anthropic"


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("Format the changelog", Tier.MINIMAL),
        ("Debug the race in the worker pool", Tier.DEEP),
        ("Design the log schema", Tier.MINIMAL),
        ("Implement the checkout page", Tier.STANDARD),
        ("", Tier.STANDARD),
        (None, Tier.STANDARD),
    ],
)
def test_recommend_tier(description: str | None, expected: Tier) -> None:
    assert recommend_tier(description) is expected
