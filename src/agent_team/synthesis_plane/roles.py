"""
agent-team-orchestrator — role registry

File: src/agent_team/synthesis_plane/roles.py
Last updated: 2026-10-19

Purpose
- Static directory of team roles (tier, capabilities, reporting edges) plus live agent bindings.

What should be included in this file
- Immutable role catalog and lookup/filter helpers.
- Instance binding owned exclusively by the registry; cleared between sessions.
- Org-chart adjacency and aggregate stats for observers.

Functional requirements
- Lookup of an unknown id returns ``None`` rather than raising.
- Binding an unknown id is a logged no-op, never fatal.
- Tier overrides are configurable via ``[roles]`` in agent_team.toml.

Non-functional requirements
- Roles must be explicit and auditable; no implicit reporting edges.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Final

import structlog

from agent_team.domain.models import JSONValue, Tier, as_tier

ROLE_CEO: Final[str] = "ceo"
ROLE_COO: Final[str] = "coo"
ROLE_CTO: Final[str] = "cto"
ROLE_CFO: Final[str] = "cfo"
ROLE_FRONTEND: Final[str] = "frontend"
ROLE_BACKEND: Final[str] = "backend"
ROLE_DEVOPS: Final[str] = "devops"
ROLE_QA_TESTER: Final[str] = "qa-tester"
ROLE_DEEP_RESEARCHER: Final[str] = "deep-researcher"
ROLE_DEVILS_ADVOCATE: Final[str] = "devils-advocate"
ROLE_SENTINEL: Final[str] = "sentinel"
ROLE_DOCUMENTER: Final[str] = "documenter"
ROLE_TOKEN_AUDITOR: Final[str] = "token-auditor"
ROLE_API_COST_AUDITOR: Final[str] = "api-cost-auditor"
ROLE_PROJECT_AUDITOR: Final[str] = "project-auditor"


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{field_name} cannot be empty")
    return parsed


@dataclass(frozen=True, slots=True)
class Role:
    """Immutable role metadata."""

    role_id: str
    label: str
    icon: str
    tier: Tier
    capabilities: tuple[str, ...] = ()
    reports_to: str | None = None
    human: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "role_id", _validate_non_empty_str(self.role_id, "Role.role_id"))
        object.__setattr__(self, "label", _validate_non_empty_str(self.label, "Role.label"))
        object.__setattr__(self, "tier", as_tier(self.tier, "Role.tier"))
        caps = tuple(
            _validate_non_empty_str(item, "Role.capabilities") for item in self.capabilities
        )
        if len(set(caps)) != len(caps):
            raise ValueError("Role.capabilities contains duplicates")
        object.__setattr__(self, "capabilities", caps)
        if self.reports_to is not None:
            object.__setattr__(
                self, "reports_to", _validate_non_empty_str(self.reports_to, "Role.reports_to")
            )
        object.__setattr__(self, "human", bool(self.human))

    @property
    def executable(self) -> bool:
        return not self.human

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.role_id,
            "label": self.label,
            "icon": self.icon,
            "tier": self.tier.value,
            "capabilities": list(self.capabilities),
            "reportsTo": self.reports_to,
            "human": self.human,
        }


@dataclass(slots=True)
class RegistryEntry:
    """Role plus its live agent binding for the current session."""

    role: Role
    instance: Any = None


DEFAULT_ROLES: Final[tuple[Role, ...]] = (
    Role(ROLE_CEO, "CEO", "👑", Tier.STANDARD, ("approve", "reject", "escalate"), human=True),
    Role(
        ROLE_COO, "COO", "👔", Tier.STANDARD, ("plan", "assign", "sequence", "report"), ROLE_CEO
    ),
    Role(
        ROLE_CTO,
        "CTO",
        "🏗️",
        Tier.DEEP,
        ("architecture", "review", "approve", "techDecision"),
        ROLE_CEO,
    ),
    Role(
        ROLE_CFO, "CFO", "💰", Tier.STANDARD, ("budget", "costAnalysis", "tierRecommend"), ROLE_CTO
    ),
    Role(
        ROLE_FRONTEND,
        "Frontend",
        "🖥️",
        Tier.STANDARD,
        ("code", "ui", "design", "test", "brandGuard"),
        ROLE_COO,
    ),
    Role(
        ROLE_BACKEND,
        "Backend",
        "⚙️",
        Tier.STANDARD,
        ("code", "api", "data", "auth", "test"),
        ROLE_CTO,
    ),
    Role(
        ROLE_DEVOPS, "DevOps", "🚀", Tier.STANDARD, ("cicd", "deploy", "infra", "monitor"), ROLE_COO
    ),
    Role(
        ROLE_QA_TESTER,
        "QA Tester",
        "🧪",
        Tier.STANDARD,
        ("test", "coverage", "automation"),
        ROLE_COO,
    ),
    Role(
        ROLE_DEEP_RESEARCHER,
        "Deep Researcher",
        "🔬",
        Tier.STANDARD,
        ("research", "document", "brief"),
        ROLE_CTO,
    ),
    Role(
        ROLE_DEVILS_ADVOCATE,
        "Devil's Advocate",
        "😈",
        Tier.STANDARD,
        ("review", "challenge", "qualityGate"),
        ROLE_COO,
    ),
    Role(
        ROLE_SENTINEL,
        "Sentinel",
        "🛡️",
        Tier.DEEP,
        ("securityAudit", "veto", "complianceCheck"),
        ROLE_CTO,
    ),
    Role(
        ROLE_DOCUMENTER,
        "Documenter",
        "📝",
        Tier.MINIMAL,
        ("document", "changelog", "retrospective"),
        ROLE_COO,
    ),
    Role(
        ROLE_TOKEN_AUDITOR,
        "Token Auditor",
        "🔢",
        Tier.MINIMAL,
        ("tokenTrack", "budgetAlert"),
        ROLE_CFO,
    ),
    Role(
        ROLE_API_COST_AUDITOR,
        "API Cost Auditor",
        "💵",
        Tier.MINIMAL,
        ("costTrack", "anomalyDetect"),
        ROLE_CFO,
    ),
    Role(
        ROLE_PROJECT_AUDITOR,
        "Project Auditor",
        "📊",
        Tier.MINIMAL,
        ("retrospective", "healthCheck", "actionTrack"),
        ROLE_COO,
    ),
)


class RoleRegistry:
    """Role directory with per-session live instance bindings."""

    def __init__(
        self,
        roles: tuple[Role, ...] = DEFAULT_ROLES,
        *,
        logger: Any | None = None,
    ) -> None:
        entries: dict[str, RegistryEntry] = {}
        for role in roles:
            if not isinstance(role, Role):
                raise ValueError("RoleRegistry roles must be Role instances")
            if role.role_id in entries:
                raise ValueError(f"duplicate role id: {role.role_id}")
            entries[role.role_id] = RegistryEntry(role=role)
        if not entries:
            raise ValueError("RoleRegistry requires at least one role")
        for entry in entries.values():
            parent = entry.role.reports_to
            if parent is not None and parent not in entries:
                raise ValueError(f"role {entry.role.role_id!r} reports to unknown role {parent!r}")

        self._entries = entries
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def default(cls, *, logger: Any | None = None) -> RoleRegistry:
        return cls(DEFAULT_ROLES, logger=logger)

    @classmethod
    def from_config(
        cls, config: Mapping[str, object] | None, *, logger: Any | None = None
    ) -> RoleRegistry:
        """Build the default catalog with ``[roles].tier_overrides`` applied."""

        section = config.get("roles") if isinstance(config, Mapping) else None
        overrides = section.get("tier_overrides") if isinstance(section, Mapping) else None
        if overrides is None:
            return cls.default(logger=logger)
        if not isinstance(overrides, Mapping):
            raise ValueError("roles.tier_overrides must be a mapping")

        known = {role.role_id for role in DEFAULT_ROLES}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"roles.tier_overrides references unknown roles: {unknown}")
        roles = tuple(
            replace(role, tier=as_tier(overrides[role.role_id]))
            if role.role_id in overrides
            else role
            for role in DEFAULT_ROLES
        )
        return cls(roles, logger=logger)

    def get(self, role_id: str) -> RegistryEntry | None:
        return self._entries.get(role_id)

    def role(self, role_id: str) -> Role | None:
        entry = self._entries.get(role_id)
        return entry.role if entry is not None else None

    def all(self) -> tuple[RegistryEntry, ...]:
        return tuple(self._entries.values())

    def role_ids(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def by_tier(self, tier: Tier | str) -> tuple[RegistryEntry, ...]:
        resolved = as_tier(tier)
        return tuple(entry for entry in self._entries.values() if entry.role.tier is resolved)

    def direct_reports(self, parent_id: str) -> tuple[RegistryEntry, ...]:
        return tuple(
            entry for entry in self._entries.values() if entry.role.reports_to == parent_id
        )

    def executable(self) -> tuple[RegistryEntry, ...]:
        return tuple(entry for entry in self._entries.values() if entry.role.executable)

    def by_capability(self, capability: str) -> tuple[RegistryEntry, ...]:
        return tuple(
            entry for entry in self._entries.values() if capability in entry.role.capabilities
        )

    def register_instance(self, role_id: str, instance: object) -> bool:
        """Bind a live agent; unknown ids are logged and ignored."""

        entry = self._entries.get(role_id)
        if entry is None:
            self._logger.warning("role_registry_unknown_role", role_id=role_id)
            return False
        entry.instance = instance
        return True

    def get_instance(self, role_id: str) -> Any:
        entry = self._entries.get(role_id)
        return entry.instance if entry is not None else None

    def clear_instances(self) -> None:
        for entry in self._entries.values():
            entry.instance = None

    def org_chart(self) -> dict[str, dict[str, JSONValue]]:
        chart: dict[str, dict[str, JSONValue]] = {}
        for role_id, entry in self._entries.items():
            chart[role_id] = {
                "label": entry.role.label,
                "icon": entry.role.icon,
                "tier": entry.role.tier.value,
                "reportsTo": entry.role.reports_to,
                "directReports": [],
            }
        for role_id, entry in self._entries.items():
            parent = entry.role.reports_to
            if parent is not None and parent in chart:
                reports = chart[parent]["directReports"]
                assert isinstance(reports, list)
                reports.append(role_id)
        return chart

    def stats(self) -> dict[str, JSONValue]:
        by_tier: dict[str, JSONValue] = {tier.value: 0 for tier in Tier}
        for entry in self._entries.values():
            current = by_tier[entry.role.tier.value]
            assert isinstance(current, int)
            by_tier[entry.role.tier.value] = current + 1
        return {
            "total": len(self._entries),
            "executable": len(self.executable()),
            "byTier": by_tier,
            "active": sum(1 for entry in self._entries.values() if entry.instance is not None),
        }

    def default_tier(self, role_id: str) -> Tier | None:
        role = self.role(role_id)
        return role.tier if role is not None else None

    def to_dict(self) -> dict[str, JSONValue]:
        return {"roles": [entry.role.to_dict() for entry in self._entries.values()]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_ROLES",
    "ROLE_API_COST_AUDITOR",
    "ROLE_BACKEND",
    "ROLE_CEO",
    "ROLE_CFO",
    "ROLE_COO",
    "ROLE_CTO",
    "ROLE_DEEP_RESEARCHER",
    "ROLE_DEVILS_ADVOCATE",
    "ROLE_DEVOPS",
    "ROLE_DOCUMENTER",
    "ROLE_FRONTEND",
    "ROLE_PROJECT_AUDITOR",
    "ROLE_QA_TESTER",
    "ROLE_SENTINEL",
    "ROLE_TOKEN_AUDITOR",
    "RegistryEntry",
    "Role",
    "RoleRegistry",
]
