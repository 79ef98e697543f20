"""
Cost ledger with advisory budget alerting.

This module accounts for every agent call in a session:
- per-agent, per-tier, and session token/cost totals
- once-per-session budget alerts (`session`, `session-warn`, `agent-<role>`, `tier-<tier>`)
- markdown reporting and bounded cross-session history

Budgets are advisory: alerts are published to listeners and logged, work never halts.

It integrates with:
- `ModelCatalog` for per-million-token pricing with `_default` fallback
- `MessageStore` for persisted cost history
- `structlog` for machine-parseable alert logs
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final

import structlog

from agent_team.constants import DEFAULT_COST_HISTORY_LIMIT
from agent_team.domain.models import JSONValue, Tier, TokenUsage, as_tier, utc_now
from agent_team.persistence.message_store import MessageStore, MessageStoreError
from agent_team.synthesis_plane.model_catalog import ModelCatalog

SESSION_WARN_RATIO: Final[float] = 0.8

DEFAULT_TIER_LIMITS_USD: Final[Mapping[Tier, float]] = MappingProxyType(
    {Tier.MINIMAL: 0.50, Tier.STANDARD: 3.00, Tier.DEEP: 5.00}
)


@dataclass(frozen=True, slots=True)
class BudgetLimits:
    """Advisory USD ceilings per session, per agent, and per tier."""

    session_usd: float = 5.00
    agent_usd: float = 1.50
    tier_usd: Mapping[Tier, float] = field(default_factory=lambda: dict(DEFAULT_TIER_LIMITS_USD))

    def __post_init__(self) -> None:
        if self.session_usd <= 0:
            raise ValueError("session_usd must be > 0")
        if self.agent_usd <= 0:
            raise ValueError("agent_usd must be > 0")
        merged = dict(DEFAULT_TIER_LIMITS_USD)
        for tier, value in self.tier_usd.items():
            if value <= 0:
                raise ValueError(f"tier budget for {tier} must be > 0")
            merged[as_tier(tier)] = float(value)
        object.__setattr__(self, "tier_usd", MappingProxyType(merged))

    def for_tier(self, tier: Tier | str) -> float:
        try:
            return self.tier_usd[as_tier(tier)]
        except ValueError:
            return self.tier_usd[Tier.STANDARD]

    @classmethod
    def from_mapping(cls, section: Mapping[str, object] | None) -> BudgetLimits:
        """Build from the ``[budgets]`` config section; absent keys keep defaults."""

        cfg = dict(section or {})
        tiers: dict[Tier, float] = {}
        for tier in Tier:
            raw = cfg.get(f"tier_{tier.value}_usd")
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                tiers[tier] = float(raw)
        return cls(
            session_usd=float(cfg.get("session_usd", 5.00)),  # type: ignore[arg-type]
            agent_usd=float(cfg.get("agent_usd", 1.50)),  # type: ignore[arg-type]
            tier_usd=tiers,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "session": self.session_usd,
            "agent": self.agent_usd,
            "tier": {tier.value: value for tier, value in self.tier_usd.items()},
        }


@dataclass(frozen=True, slots=True)
class UsageTotals:
    """Accumulated token/cost tally for one scope."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    calls: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def plus(self, tokens: TokenUsage, cost_usd: float) -> UsageTotals:
        return UsageTotals(
            input_tokens=self.input_tokens + tokens.input_tokens,
            output_tokens=self.output_tokens + tokens.output_tokens,
            cost_usd=self.cost_usd + cost_usd,
            calls=self.calls + 1,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "input": self.input_tokens,
            "output": self.output_tokens,
            "cost": self.cost_usd,
            "calls": self.calls,
        }


@dataclass(frozen=True, slots=True)
class BudgetAlert:
    key: str
    message: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {"key": self.key, "message": self.message}


UpdateListener = Callable[[dict[str, JSONValue]], object]
AlertListener = Callable[[BudgetAlert], object]


class CostLedger:
    """Per-session cost accounting; totals only ever grow until ``reset``."""

    def __init__(
        self,
        *,
        catalog: ModelCatalog | None = None,
        limits: BudgetLimits | None = None,
        store: MessageStore | None = None,
        history_limit: int = DEFAULT_COST_HISTORY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
        logger: Any | None = None,
    ) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be > 0")
        self._catalog = catalog if catalog is not None else ModelCatalog()
        self._limits = limits if limits is not None else BudgetLimits()
        self._store = store
        self._history_limit = history_limit
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._agents: dict[str, UsageTotals] = {}
        self._agent_tiers: dict[str, Tier] = {}
        self._tiers: dict[Tier, UsageTotals] = {}
        self._session = UsageTotals()
        self._fired: dict[str, BudgetAlert] = {}
        self._started_at = clock()
        self._update_listeners: list[UpdateListener] = []
        self._alert_listeners: list[AlertListener] = []
        self._history: list[dict[str, Any]] = self._load_history()

    @property
    def limits(self) -> BudgetLimits:
        return self._limits

    @property
    def total_cost(self) -> float:
        return self._session.cost_usd

    @property
    def total_tokens(self) -> int:
        return self._session.total_tokens

    def record(
        self,
        role_id: str,
        tier: Tier | str,
        model_id: str,
        tokens: TokenUsage,
    ) -> float:
        """Account one call and return its USD cost."""

        resolved_tier = as_tier(tier)
        cost = self._catalog.estimate_cost(
            model_id=model_id,
            input_tokens=tokens.input_tokens,
            output_tokens=tokens.output_tokens,
        )
        self._agents[role_id] = self._agents.get(role_id, UsageTotals()).plus(tokens, cost)
        self._agent_tiers[role_id] = resolved_tier
        self._tiers[resolved_tier] = self._tiers.get(resolved_tier, UsageTotals()).plus(
            tokens, cost
        )
        self._session = self._session.plus(tokens, cost)

        snapshot = self.snapshot()
        for listener in tuple(self._update_listeners):
            self._notify(listener, snapshot, "update")
        self._check_budgets(role_id, resolved_tier)
        return cost

    def on_update(self, listener: UpdateListener) -> Callable[[], bool]:
        return _register(self._update_listeners, listener)

    def on_alert(self, listener: AlertListener) -> Callable[[], bool]:
        return _register(self._alert_listeners, listener)

    def alerts(self) -> tuple[BudgetAlert, ...]:
        return tuple(self._fired.values())

    def agent_cost(self, role_id: str) -> UsageTotals:
        return self._agents.get(role_id, UsageTotals())

    def tier_cost(self, tier: Tier | str) -> UsageTotals:
        return self._tiers.get(as_tier(tier), UsageTotals())

    def snapshot(self) -> dict[str, JSONValue]:
        return {
            "session": self._session.to_dict(),
            "agents": {role: usage.to_dict() for role, usage in self._agents.items()},
            "tiers": {tier.value: usage.to_dict() for tier, usage in self._tiers.items()},
            "elapsed_ms": self._elapsed_ms(),
            "budgets": self._limits.to_dict(),
        }

    def budget_utilization(self) -> dict[str, JSONValue]:
        return {
            "session": _pct(self._session.cost_usd, self._limits.session_usd),
            "agents": {
                role: _pct(usage.cost_usd, self._limits.agent_usd)
                for role, usage in self._agents.items()
            },
            "tiers": {
                tier.value: _pct(self.tier_cost(tier).cost_usd, self._limits.for_tier(tier))
                for tier in Tier
            },
        }

    def generate_report(self) -> str:
        """Render session totals, per-role usage, and tier utilization as markdown."""

        lines = [
            "## Cost Report",
            "",
            f"**Session Total:** ${self._session.cost_usd:.4f} | "
            f"{self.total_tokens:,} tokens | {self._session.calls} API calls",
            "",
            "| Role | Tier | Tokens In | Tokens Out | Cost | Calls |",
            "|------|------|-----------|------------|------|-------|",
        ]
        for role, usage in self._agents.items():
            tier = self._agent_tiers.get(role)
            lines.append(
                f"| {role} | {tier.value if tier else '-'} | {usage.input_tokens:,} | "
                f"{usage.output_tokens:,} | ${usage.cost_usd:.4f} | {usage.calls} |"
            )
        lines += [
            "",
            "### Tier Breakdown",
            "",
            "| Tier | Cost | Budget | Utilization |",
            "|------|------|--------|-------------|",
        ]
        for tier in Tier:
            cost = self.tier_cost(tier).cost_usd
            budget = self._limits.for_tier(tier)
            lines.append(f"| {tier.value} | ${cost:.4f} | ${budget:.2f} | {_pct(cost, budget)}% |")
        return "\n".join(lines) + "\n"

    def finalize(self) -> dict[str, Any]:
        """Append the session record to bounded history and persist it."""

        record: dict[str, Any] = {
            "timestamp": utc_now().isoformat(),
            "duration_ms": self._elapsed_ms(),
            **self.snapshot(),
        }
        self._history.append(record)
        if len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]
        if self._store is not None:
            try:
                self._store.append_cost_report(record, limit=self._history_limit)
            except (MessageStoreError, OSError, TypeError, ValueError) as exc:
                self._logger.warning(
                    "cost_ledger_persist_failed", error_type=type(exc).__name__, error=str(exc)
                )
        return record

    def reset(self) -> None:
        """Start a new session; history survives."""

        self._agents.clear()
        self._agent_tiers.clear()
        self._tiers.clear()
        self._session = UsageTotals()
        self._fired.clear()
        self._started_at = self._clock()

    def history(self) -> list[dict[str, Any]]:
        return [dict(record) for record in self._history]

    def _check_budgets(self, role_id: str, tier: Tier) -> None:
        session_cost = self._session.cost_usd
        session_limit = self._limits.session_usd
        if session_cost >= session_limit:
            self._alert(
                "session",
                f"Session budget exceeded: ${session_cost:.4f} / ${session_limit:.2f}",
            )
        elif session_cost >= session_limit * SESSION_WARN_RATIO:
            self._alert(
                "session-warn",
                f"Session budget 80% used: ${session_cost:.4f} / ${session_limit:.2f}",
            )

        agent_cost = self.agent_cost(role_id).cost_usd
        if agent_cost >= self._limits.agent_usd:
            self._alert(
                f"agent-{role_id}",
                f"Agent {role_id} budget exceeded: "
                f"${agent_cost:.4f} / ${self._limits.agent_usd:.2f}",
            )

        tier_cost = self.tier_cost(tier).cost_usd
        tier_limit = self._limits.for_tier(tier)
        if tier_cost >= tier_limit:
            self._alert(
                f"tier-{tier.value}",
                f"{tier.value} tier budget exceeded: ${tier_cost:.4f} / ${tier_limit:.2f}",
            )

    def _alert(self, key: str, message: str) -> None:
        if key in self._fired:
            return
        alert = BudgetAlert(key=key, message=message)
        self._fired[key] = alert
        self._logger.warning("cost_ledger_alert", key=key, message=message)
        for listener in tuple(self._alert_listeners):
            self._notify(listener, alert, "alert")

    def _notify(self, listener: Callable[[Any], object], payload: object, stage: str) -> None:
        try:
            listener(payload)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "cost_ledger_listener_failed",
                stage=stage,
                error_type=type(exc).__name__,
                error=str(exc),
            )

    def _elapsed_ms(self) -> int:
        return int((self._clock() - self._started_at) * 1000)

    def _load_history(self) -> list[dict[str, Any]]:
        if self._store is None:
            return []
        try:
            return self._store.load_cost_history()[-self._history_limit :]
        except (MessageStoreError, OSError) as exc:
            self._logger.warning(
                "cost_ledger_history_unavailable", error_type=type(exc).__name__, error=str(exc)
            )
            return []


def _register(listeners: list[Any], listener: Callable[..., object]) -> Callable[[], bool]:
    if not callable(listener):
        raise ValueError("listener must be callable")
    listeners.append(listener)

    def unsubscribe() -> bool:
        if listener not in listeners:
            return False
        listeners.remove(listener)
        return True

    return unsubscribe


def _pct(value: float, maximum: float) -> int:
    if not maximum:
        return 0
    return math.floor(value / maximum * 100 + 0.5)


__all__ = [
    "DEFAULT_TIER_LIMITS_USD",
    "SESSION_WARN_RATIO",
    "AlertListener",
    "BudgetAlert",
    "BudgetLimits",
    "CostLedger",
    "UpdateListener",
    "UsageTotals",
]
