"""Unit tests for the role registry."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from agent_team.domain.models import Tier
from agent_team.synthesis_plane.roles import (
    DEFAULT_ROLES,
    ROLE_CEO,
    ROLE_COO,
    ROLE_DOCUMENTER,
    Role,
    RoleRegistry,
)


@dataclass
class RecordingLogger:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        self.events.append((event, kwargs))


def test_default_catalog_shape() -> None:
    registry = RoleRegistry.default()
    assert len(registry.all()) == 15
    assert registry.role_ids()[0] == ROLE_CEO
    stats = registry.stats()
    assert stats["total"] == 15
    assert stats["executable"] == 14
    assert stats["byTier"] == {"minimal": 4, "standard": 9, "deep": 2}
    assert stats["active"] == 0


def test_human_role_is_not_executable() -> None:
    registry = RoleRegistry.default()
    executable_ids = {entry.role.role_id for entry in registry.executable()}
    assert ROLE_CEO not in executable_ids
    assert ROLE_COO in executable_ids


def test_queries_by_tier_capability_and_reports() -> None:
    registry = RoleRegistry.default()
    deep_ids = {entry.role.role_id for entry in registry.by_tier("deep")}
    assert deep_ids == {"cto", "sentinel"}
    assert {entry.role.role_id for entry in registry.by_capability("veto")} == {"sentinel"}
    ceo_reports = {entry.role.role_id for entry in registry.direct_reports(ROLE_CEO)}
    assert ceo_reports == {"coo", "cto"}
    assert registry.default_tier(ROLE_DOCUMENTER) is Tier.MINIMAL
    assert registry.default_tier("nobody") is None


def test_org_chart_derives_direct_reports() -> None:
    chart = RoleRegistry.default().org_chart()
    assert chart["cfo"]["reportsTo"] == "cto"
    assert set(chart["cfo"]["directReports"]) == {"token-auditor", "api-cost-auditor"}
    assert chart["ceo"]["reportsTo"] is None


def test_fresh_registry_is_unbound_and_org_chart_is_acyclic() -> None:
    registry = RoleRegistry.default()
    assert all(registry.get(role.role_id).instance is None for role in DEFAULT_ROLES)

    chart = registry.org_chart()
    for role_id, node in chart.items():
        seen = {role_id}
        parent = node["reportsTo"]
        while parent is not None:
            assert parent in chart
            assert parent not in seen
            seen.add(parent)
            parent = chart[parent]["reportsTo"]


def test_register_instance_unknown_role_is_logged_and_ignored() -> None:
    logger = RecordingLogger()
    registry = RoleRegistry.default(logger=logger)
    assert registry.register_instance("ghost", object()) is False
    assert logger.events == [("role_registry_unknown_role", {"role_id": "ghost"})]

    marker = object()
    assert registry.register_instance(ROLE_COO, marker) is True
    assert registry.get_instance(ROLE_COO) is marker
    assert registry.stats()["active"] == 1
    registry.clear_instances()
    assert registry.get_instance(ROLE_COO) is None


def test_constructor_rejects_duplicates_and_dangling_parents() -> None:
    solo = Role("solo", "Solo", "*", Tier.MINIMAL)
    with pytest.raises(ValueError, match="duplicate role id"):
        RoleRegistry((solo, solo))
    with pytest.raises(ValueError, match="unknown role"):
        RoleRegistry((Role("child", "Child", "*", Tier.MINIMAL, reports_to="missing"),))
    with pytest.raises(ValueError, match="at least one role"):
        RoleRegistry(())


def test_from_config_applies_tier_overrides() -> None:
    registry = RoleRegistry.from_config({"roles": {"tier_overrides": {"documenter": "deep"}}})
    assert registry.default_tier("documenter") is Tier.DEEP
    assert registry.default_tier("cto") is Tier.DEEP

    with pytest.raises(ValueError, match="unknown roles"):
        RoleRegistry.from_config({"roles": {"tier_overrides": {"ghost": "deep"}}})

    assert len(RoleRegistry.from_config(None).all()) == len(DEFAULT_ROLES)


def test_to_json_lists_roles_in_catalog_order() -> None:
    payload = json.loads(RoleRegistry.default().to_json())
    assert [role["id"] for role in payload["roles"]] == [role.role_id for role in DEFAULT_ROLES]
    assert payload["roles"][0]["human"] is True
