from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agent_team.control_plane.budgets import BudgetAlert, BudgetLimits, CostLedger
from agent_team.domain.models import Tier, TokenUsage
from agent_team.persistence import InMemoryMessageStore
from agent_team.synthesis_plane.model_catalog import DEFAULT_PRICE_KEY, ModelCatalog, ModelPrice

# One tenth of a cent per token keeps the arithmetic exact.
FLAT_CATALOG = ModelCatalog(pricing={DEFAULT_PRICE_KEY: ModelPrice(1000.0, 1000.0)})


@dataclass
class RecordingLogger:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def warning(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _ledger(**kwargs: Any) -> CostLedger:
    kwargs.setdefault("logger", RecordingLogger())
    return CostLedger(catalog=FLAT_CATALOG, **kwargs)


def test_budget_limits_validation_and_mapping() -> None:
    with pytest.raises(ValueError, match="session_usd"):
        BudgetLimits(session_usd=0)
    with pytest.raises(ValueError, match="agent_usd"):
        BudgetLimits(agent_usd=-1)
    with pytest.raises(ValueError, match="tier budget"):
        BudgetLimits(tier_usd={Tier.DEEP: 0})

    limits = BudgetLimits.from_mapping({"session_usd": 2, "tier_deep_usd": 9.5})
    assert limits.session_usd == 2.0
    assert limits.agent_usd == 1.5
    assert limits.for_tier("deep") == 9.5
    assert limits.for_tier("minimal") == 0.5
    assert limits.for_tier("unknown") == 3.0


def test_record_accumulates_per_scope() -> None:
    ledger = _ledger()
    cost = ledger.record("backend", "standard", "any-model", TokenUsage(1000, 500))
    ledger.record("documenter", Tier.MINIMAL, "any-model", TokenUsage(100, 0))

    assert cost == pytest.approx(1.5)
    assert ledger.total_cost == pytest.approx(1.6)
    assert ledger.total_tokens == 1600
    assert ledger.agent_cost("backend").calls == 1
    assert ledger.tier_cost("minimal").cost_usd == pytest.approx(0.1)
    assert ledger.agent_cost("nobody").calls == 0
    snapshot = ledger.snapshot()
    assert snapshot["session"] == {
        "input": 1100,
        "output": 500,
        "cost": pytest.approx(1.6),
        "calls": 2,
    }
    assert set(snapshot["tiers"]) == {"standard", "minimal"}


def test_record_cost_is_linear() -> None:
    catalog = ModelCatalog(pricing={DEFAULT_PRICE_KEY: ModelPrice(3.0, 15.0)})
    once = CostLedger(catalog=catalog, logger=RecordingLogger())
    twice = CostLedger(catalog=catalog, logger=RecordingLogger())
    usage = TokenUsage(100, 50)

    single = once.record("backend", Tier.STANDARD, "priced-model", usage)
    twice.record("backend", Tier.STANDARD, "priced-model", usage)
    twice.record("backend", Tier.STANDARD, "priced-model", usage)

    assert single == pytest.approx(0.00105)
    assert twice.total_cost == pytest.approx(2 * single)
    assert twice.agent_cost("backend").calls == 2


def test_alerts_fire_once_per_key_in_order() -> None:
    ledger = _ledger(limits=BudgetLimits(session_usd=5.0, agent_usd=1.5))
    received: list[BudgetAlert] = []
    ledger.on_alert(received.append)

    ledger.record("backend", "standard", "m", TokenUsage(1000, 0))
    assert received == []
    ledger.record("backend", "standard", "m", TokenUsage(1000, 0))
    ledger.record("frontend", "standard", "m", TokenUsage(2000, 0))
    ledger.record("frontend", "standard", "m", TokenUsage(2000, 0))

    assert [alert.key for alert in received] == [
        "agent-backend",
        "session-warn",
        "agent-frontend",
        "tier-standard",
        "session",
    ]
    assert received[-1].message == "Session budget exceeded: $6.0000 / $5.00"
    assert ledger.alerts() == tuple(received)


def test_listener_failures_are_logged() -> None:
    logger = RecordingLogger()
    ledger = _ledger(logger=logger)

    def broken(snapshot: object) -> None:
        raise RuntimeError("listener down")

    ledger.on_update(broken)
    ledger.record("cto", "deep", "m", TokenUsage(10, 10))
    assert logger.events[0][0] == "cost_ledger_listener_failed"
    assert logger.events[0][1]["stage"] == "update"


def test_unsubscribe_update_listener() -> None:
    ledger = _ledger()
    seen: list[object] = []
    unsubscribe = ledger.on_update(seen.append)
    ledger.record("cto", "deep", "m", TokenUsage(1, 1))
    assert unsubscribe() is True
    assert unsubscribe() is False
    ledger.record("cto", "deep", "m", TokenUsage(1, 1))
    assert len(seen) == 1


def test_report_and_utilization() -> None:
    ledger = _ledger()
    ledger.record("backend", "standard", "m", TokenUsage(1500, 0))
    report = ledger.generate_report()
    assert report.startswith("## Cost Report\n")
    assert "| backend | standard | 1,500 | 0 | $1.5000 | 1 |" in report
    assert "| standard | $1.5000 | $3.00 | 50% |" in report

    utilization = ledger.budget_utilization()
    assert utilization["session"] == 30
    assert utilization["agents"] == {"backend": 100}
    assert utilization["tiers"] == {"minimal": 0, "standard": 50, "deep": 0}


def test_finalize_persists_bounded_history_and_reset_keeps_it() -> None:
    store = InMemoryMessageStore()
    clock = FakeClock()
    ledger = _ledger(store=store, history_limit=2, clock=clock)
    for index in range(3):
        ledger.record("qa-tester", "standard", "m", TokenUsage(index + 1, 0))
        clock.now += 1.5
        record = ledger.finalize()
        ledger.reset()

    assert record["duration_ms"] == 1500
    assert len(ledger.history()) == 2
    assert len(store.load_cost_history()) == 2
    assert ledger.total_cost == 0.0
    assert ledger.alerts() == ()

    reloaded = _ledger(store=store, history_limit=1)
    assert len(reloaded.history()) == 1


@given(
    st.lists(
        st.tuples(
            st.sampled_from(["backend", "frontend", "cto"]),
            st.sampled_from(list(Tier)),
            st.integers(min_value=0, max_value=5_000),
            st.integers(min_value=0, max_value=5_000),
        ),
        max_size=25,
    )
)
def test_totals_never_decrease(calls: list[tuple[str, Tier, int, int]]) -> None:
    ledger = _ledger()
    previous_cost = 0.0
    previous_tokens = 0
    for role, tier, tokens_in, tokens_out in calls:
        ledger.record(role, tier, "m", TokenUsage(tokens_in, tokens_out))
        assert ledger.total_cost >= previous_cost
        assert ledger.total_tokens >= previous_tokens
        previous_cost = ledger.total_cost
        previous_tokens = ledger.total_tokens
    keys = [alert.key for alert in ledger.alerts()]
    assert len(keys) == len(set(keys))
