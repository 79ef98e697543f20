"""
agent-team-orchestrator — configuration schema and validation.

File: src/agent_team/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays including the built-in frugal/generous profiles.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from agent_team.constants import CONFIG_SCHEMA_VERSION, DEFAULT_MESSAGE_PERSIST_LIMIT

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("frugal", "generous")
TIER_NAMES: Final[tuple[str, ...]] = ("minimal", "standard", "deep")
PROVIDER_NAMES: Final[tuple[str, ...]] = ("anthropic", "openai")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_ROLE_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "apikey",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

# Sections a profile overlay may touch.
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = (
    "budgets",
    "context",
    "engine",
    "messages",
    "models",
    "observability",
    "roles",
)


class MetaConfig(TypedDict):
    schema_version: int


class BudgetsConfig(TypedDict):
    session_usd: float
    agent_usd: float
    tier_minimal_usd: float
    tier_standard_usd: float
    tier_deep_usd: float


class ContextConfig(TypedDict):
    minimal: int
    standard: int
    deep: int


class MessagesConfig(TypedDict):
    persist_limit: int
    store_path: str | None


class EngineConfig(TypedDict):
    hands_off: bool
    use_planner: bool


class ModelsConfig(TypedDict, total=False):
    provider: Literal["anthropic", "openai"]
    minimal: str
    standard: str
    deep: str


class RolesConfig(TypedDict):
    tier_overrides: dict[str, str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str | None
    log_to_stderr: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    budgets: dict[str, object]
    context: dict[str, object]
    engine: dict[str, object]
    messages: dict[str, object]
    models: dict[str, object]
    observability: dict[str, object]
    roles: dict[str, object]


class AgentTeamConfig(TypedDict):
    meta: MetaConfig
    budgets: BudgetsConfig
    context: ContextConfig
    messages: MessagesConfig
    engine: EngineConfig
    models: ModelsConfig
    roles: RolesConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[AgentTeamConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "budgets": {
        "session_usd": 5.00,
        "agent_usd": 1.50,
        "tier_minimal_usd": 0.50,
        "tier_standard_usd": 3.00,
        "tier_deep_usd": 5.00,
    },
    "context": {
        "minimal": 4000,
        "standard": 12000,
        "deep": 32000,
    },
    "messages": {
        "persist_limit": DEFAULT_MESSAGE_PERSIST_LIMIT,
        "store_path": None,
    },
    "engine": {
        "hands_off": False,
        "use_planner": True,
    },
    "models": {
        "provider": "anthropic",
    },
    "roles": {
        "tier_overrides": {},
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": None,
        "log_to_stderr": False,
        "redact_secrets": True,
    },
    "profiles": {
        "frugal": {
            "budgets": {"session_usd": 1.00, "agent_usd": 0.30},
            "context": {"standard": 8000, "deep": 16000},
        },
        "generous": {
            "budgets": {"session_usd": 25.00, "agent_usd": 8.00},
            "engine": {"hands_off": True},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def default_config() -> AgentTeamConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade agent_team.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the agent-team-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay_raw))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs and display."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    return redact_config(config)


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(_SECTION_VALIDATORS) | {"meta", "profiles"}
    required = set(_SECTION_VALIDATORS) | {"meta"}
    _reject_unknown_keys(payload, allowed, "", issues)
    _require_keys(payload, required, "", issues)

    out: dict[str, Any] = {}
    meta = _section_object(payload, "meta", issues)
    if meta is not None:
        out["meta"] = _validate_meta(meta, "meta", issues)

    for key in sorted(_SECTION_VALIDATORS):
        section = _section_object(payload, key, issues)
        if section is not None:
            out[key] = _SECTION_VALIDATORS[key](section, key, issues, False)

    profiles = _section_object(payload, "profiles", issues)
    if profiles is not None:
        out["profiles"] = _validate_profiles(profiles, "profiles", issues)
    return out


def _section_object(
    payload: Mapping[str, object], key: str, issues: _IssueCollector
) -> dict[str, object] | None:
    raw = payload.get(key)
    if raw is None:
        return None
    return _as_object(raw, key, issues)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        field_path = _join(path, "schema_version")
        parsed = _as_int(payload["schema_version"], field_path, issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(field_path, migration_guidance(parsed))
    return out


def _validate_budgets(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"session_usd", "agent_usd"} | {f"tier_{tier}_usd" for tier in TIER_NAMES}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key not in payload:
            continue
        parsed = _as_float(payload[key], _join(path, key), issues, minimum=0.0)
        if parsed is None:
            continue
        if parsed == 0.0:
            issues.add(_join(path, key), "must be > 0")
            continue
        out[key] = parsed
    return out


def _validate_context(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = set(TIER_NAMES)
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in TIER_NAMES:
        if key not in payload:
            continue
        parsed = _as_int(payload[key], _join(path, key), issues, minimum=1)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_messages(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"persist_limit", "store_path"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"persist_limit"}, path, issues)

    out: dict[str, Any] = {}
    if "persist_limit" in payload:
        parsed_limit = _as_int(
            payload["persist_limit"], _join(path, "persist_limit"), issues, minimum=1
        )
        if parsed_limit is not None:
            out["persist_limit"] = parsed_limit

    if "store_path" in payload:
        raw = payload["store_path"]
        if raw is None:
            out["store_path"] = None
        else:
            parsed_path = _as_path_text(raw, _join(path, "store_path"), issues)
            if parsed_path is not None:
                out["store_path"] = parsed_path
    return out


def _validate_engine(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"hands_off", "use_planner"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key not in payload:
            continue
        parsed = _as_bool(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_models(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"provider", *TIER_NAMES}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"provider"}, path, issues)

    out: dict[str, Any] = {}
    if "provider" in payload:
        parsed_provider = _as_enum(
            payload["provider"],
            _join(path, "provider"),
            issues,
            allowed_values=PROVIDER_NAMES,
        )
        if parsed_provider is not None:
            out["provider"] = parsed_provider

    for tier in TIER_NAMES:
        if tier not in payload:
            continue
        parsed_model = _as_str(payload[tier], _join(path, tier), issues)
        if parsed_model is not None:
            out[tier] = parsed_model
    return out


def _validate_roles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"tier_overrides"}, path, issues)

    out: dict[str, Any] = {}
    raw = payload.get("tier_overrides")
    if raw is None:
        if not partial:
            out["tier_overrides"] = {}
        return out

    overrides_path = _join(path, "tier_overrides")
    overrides = _as_object(raw, overrides_path, issues)
    if overrides is None:
        return out

    parsed_overrides: dict[str, str] = {}
    for role_id in sorted(overrides):
        role_path = _join(overrides_path, role_id)
        if not _ROLE_ID_PATTERN.fullmatch(role_id):
            issues.add(role_path, "role id must match ^[a-z][a-z0-9-]*$")
            continue
        parsed_tier = _as_enum(overrides[role_id], role_path, issues, allowed_values=TIER_NAMES)
        if parsed_tier is not None:
            parsed_overrides[role_id] = parsed_tier
    out["tier_overrides"] = parsed_overrides
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stderr", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"log_level", "log_to_stderr", "redact_secrets"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=LOG_LEVELS,
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_dir" in payload:
        raw = payload["log_dir"]
        if raw is None:
            out["log_dir"] = None
        else:
            parsed_log_dir = _as_path_text(raw, _join(path, "log_dir"), issues)
            if parsed_log_dir is not None:
                out["log_dir"] = parsed_log_dir

    for key in ("log_to_stderr", "redact_secrets"):
        if key not in payload:
            continue
        parsed_flag = _as_bool(payload[key], _join(path, key), issues)
        if parsed_flag is not None:
            out[key] = parsed_flag
    return out


_SECTION_VALIDATORS: Final[dict[str, _SectionValidator]] = {
    "budgets": _validate_budgets,
    "context": _validate_context,
    "engine": _validate_engine,
    "messages": _validate_messages,
    "models": _validate_models,
    "observability": _validate_observability,
    "roles": _validate_roles,
}


def _validate_profiles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_profile_overlay(profile_obj, profile_path, issues)
    return out


def _validate_profile_overlay(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_OVERLAY_SECTIONS), path, issues)

    out: dict[str, Any] = {}
    for section in _OVERLAY_SECTIONS:
        raw = payload.get(section)
        if raw is None:
            continue
        section_path = _join(path, section)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[section] = _SECTION_VALIDATORS[section](section_obj, section_path, issues, True)
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            elif isinstance(existing, Mapping):
                nested = _deep_copy_mapping(existing)
                _merge_into(nested, value)
                target[key] = nested
            else:
                nested_new: dict[str, Any] = {}
                _merge_into(nested_new, value)
                target[key] = nested_new
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            if _key_is_sensitive_for_redaction(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(value[key], key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


def _key_is_sensitive_for_redaction(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return True
    return _looks_sensitive_key(normalized)


__all__ = [
    "AgentTeamConfig",
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PROVIDER_NAMES",
    "ProfileOverlay",
    "TIER_NAMES",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
