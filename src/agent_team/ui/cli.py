"""Command-line interface router for agent-team-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from agent_team import __version__
from agent_team.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from agent_team.constants import PLANNER_ROLE
from agent_team.control_plane import BudgetLimits, CostLedger, ExecutionEngine
from agent_team.domain.models import EngineState, ProjectContext, TaskResult, TaskStatus
from agent_team.messaging import MessageBus
from agent_team.observability import (
    LoggingConfig,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from agent_team.persistence import SQLiteMessageStore
from agent_team.planning import build_local_plan
from agent_team.synthesis_plane import ContextAssembler, ModelCatalog, RoleRegistry
from agent_team.synthesis_plane.providers import (
    CompletionProvider,
    ProviderError,
    ScriptedProvider,
    default_provider_registry,
)
from agent_team.ui.render import (
    CLIRenderer,
    create_renderer,
    render_cost_summary,
    render_plan,
    role_rows,
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="agent-team",
        description=(
            "agent-team-orchestrator — run a simulated team of role agents through a plan.\n\n"
            "Common workflows:\n"
            "  agent-team roles                 List the org chart\n"
            "  agent-team plan -p project.yaml  Preview the fallback plan\n"
            "  agent-team run --scripted        Run a full session offline\n"
            "  agent-team config                Show effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./agent_team.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Dotted config override, e.g. --set budgets.session_usd=2.5 (repeatable).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    project = argparse.ArgumentParser(add_help=False)
    project.add_argument(
        "--project",
        "-p",
        dest="project_path",
        default=None,
        help="YAML or JSON file describing the project (name, stack, features, ...).",
    )
    project.add_argument("--name", default=None, help="Project name.")
    project.add_argument("--stack", default=None, help="Technology stack.")
    project.add_argument(
        "--feature", dest="features", action="append", default=[], help="Feature (repeatable)."
    )
    project.add_argument(
        "--integration",
        dest="integrations",
        action="append",
        default=[],
        help="External integration (repeatable).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # roles ---------------------------------------------------------------
    roles_parser = subparsers.add_parser(
        "roles",
        parents=[common],
        help="List team roles and reporting lines",
    )
    roles_parser.add_argument(
        "--tier",
        choices=("minimal", "standard", "deep"),
        default=None,
        help="Only show roles on this tier.",
    )
    roles_parser.set_defaults(handler=_cmd_roles)

    # plan ----------------------------------------------------------------
    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common, project],
        help="Build the deterministic fallback plan for a project",
        description=(
            "Build a plan from project facts alone, without calling a model.\n\n"
            "Examples:\n"
            "  agent-team plan --name shop --feature 'Checkout page' --integration Stripe\n"
            "  agent-team plan -p project.yaml --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    plan_parser.set_defaults(handler=_cmd_plan)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, project],
        help="Execute a session",
        description=(
            "Run a full session: plan, then execute each phase round by round.\n\n"
            "Examples:\n"
            "  agent-team run --scripted --hands-off\n"
            "  agent-team run --scripted --auto-approve -p project.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument(
        "--scripted",
        action="store_true",
        help="Use the deterministic offline provider",
    )
    run_parser.add_argument(
        "--hands-off",
        dest="hands_off",
        action="store_true",
        default=None,
        help="Skip approval gates between phases (default: engine.hands_off).",
    )
    run_parser.add_argument(
        "--auto-approve",
        action="store_true",
        help="Approve every phase gate automatically instead of stopping at the first one.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  agent-team config\n"
            "  agent-team config --json --profile frugal\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_roles(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    registry = _build_registry(config)
    tier = getattr(args, "tier", None)
    entries = registry.by_tier(tier) if tier else registry.all()
    wanted = {entry.role.role_id for entry in entries}

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "roles",
                "roles": [entry.role.to_dict() for entry in entries],
                "stats": registry.stats(),
            }
        )
        return 0

    renderer = _get_renderer(args)
    rows = [row for row in role_rows(registry) if row[0] in wanted]
    renderer.table(("ID", "Label", "Tier", "Reports to", "Kind"), rows, title="Team roles")
    stats = registry.stats()
    renderer.blank()
    renderer.kv("Total", stats["total"])
    renderer.kv("Executable", stats["executable"])
    return 0


def _cmd_plan(args: argparse.Namespace) -> int:
    project = _load_project(args)
    plan = build_local_plan(project)

    if _flag(args, "json"):
        _emit_json({"command": "plan", "project": project.to_dict(), "plan": plan.to_dict()})
        return 0

    render_plan(_get_renderer(args), plan)
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    project = _load_project(args)
    engine_section = _section(config, "engine")
    hands_off_flag = getattr(args, "hands_off", None)
    hands_off = bool(engine_section.get("hands_off")) if hands_off_flag is None else True

    provider = _build_provider(config, project, scripted=_flag(args, "scripted"))
    logging_config = LoggingConfig.from_mapping(_section(config, "observability"))
    setup_logging(logging_config)
    engine = _build_engine(config, provider)
    try:
        payload = asyncio.run(
            _drive_session(
                engine,
                project,
                hands_off=hands_off,
                use_planner=bool(engine_section.get("use_planner", True)),
                auto_approve=_flag(args, "auto_approve"),
            )
        )
    except ProviderError as exc:
        raise CLIError(str(exc), exit_code=3) from exc
    finally:
        engine.close()
        shutdown_logging(logging_config.logger_name)

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Session", payload["session_id"])
    renderer.kv("State", payload["state"])
    renderer.kv("Phases run", payload["phases_run"])
    renderer.kv("Tasks", payload["task_counts"])
    render_cost_summary(renderer, payload["cost"])
    alerts = payload["alerts"]
    if alerts:
        renderer.section("Budget alerts:")
        renderer.items([str(alert["message"]) for alert in alerts])
    if payload["state"] == EngineState.AWAITING_APPROVAL.value:
        renderer.next_steps(["agent-team run --scripted --auto-approve"])
    if renderer.verbose and payload.get("report"):
        renderer.section("Cost report:")
        renderer.text(str(payload["report"]))
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))
    redacted = effective_config(config)

    if _flag(args, "json"):
        _emit_json({"command": "config", "active_profile": profile, "config": redacted})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Session driving
# ---------------------------------------------------------------------------


async def _drive_session(
    engine: ExecutionEngine,
    project: ProjectContext,
    *,
    hands_off: bool,
    use_planner: bool,
    auto_approve: bool,
) -> dict[str, Any]:
    handle = await engine.start_session(project, hands_off=hands_off, use_planner=use_planner)
    phases_run = 0
    results: list[TaskResult] = []
    report: Mapping[str, Any] | None = None
    with correlation_scope(session_id=handle.session_id):
        while True:
            outcome = await engine.execute_next_phase()
            if outcome.complete:
                report = outcome.report
                break
            phases_run += 1
            results.extend(outcome.results)
            if engine.state is EngineState.AWAITING_APPROVAL:
                if not auto_approve:
                    break
                engine.approve_current()

    counts = {status.value: 0 for status in TaskStatus}
    for result in results:
        counts[result.status.value] += 1
    return {
        "command": "run",
        "session_id": handle.session_id,
        "state": engine.state.value,
        "external_state": engine.external_state.value,
        "phases_run": phases_run,
        "total_phases": len(handle.plan.phases),
        "task_counts": counts,
        "messages": engine.bus.count,
        "cost": engine.ledger.snapshot(),
        "alerts": [alert.to_dict() for alert in engine.ledger.alerts()],
        "report": engine.ledger.generate_report() if report is not None else None,
    }


# ---------------------------------------------------------------------------
# Helpers: config, wiring, project input
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    overrides = _parse_overrides(getattr(args, "overrides", None) or [])

    try:
        return load_config(config_path, profile=profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _parse_overrides(raw_items: Sequence[str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for item in raw_items:
        key, sep, raw_value = item.partition("=")
        if not sep or not key.strip():
            raise CLIError(f"override must look like KEY=VALUE: {item!r}", exit_code=2)
        try:
            overrides[key.strip()] = yaml.safe_load(raw_value) if raw_value.strip() else ""
        except yaml.YAMLError as exc:
            raise CLIError(f"override {key!r} has an unparseable value", exit_code=2) from exc
    return overrides


def _build_registry(config: Mapping[str, object]) -> RoleRegistry:
    try:
        return RoleRegistry.from_config(config)
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _build_engine(config: Mapping[str, Any], provider: CompletionProvider) -> ExecutionEngine:
    catalog = ModelCatalog.from_config(config)
    messages = _section(config, "messages")
    store_path = messages.get("store_path")
    store = SQLiteMessageStore(store_path) if isinstance(store_path, str) else None
    bus = MessageBus(store=store, persist_limit=int(messages.get("persist_limit", 500)))
    assembler = ContextAssembler(tier_budgets=_section(config, "context"))
    ledger = CostLedger(
        catalog=catalog,
        limits=BudgetLimits.from_mapping(_section(config, "budgets")),
        store=store,
    )
    return ExecutionEngine(
        provider=provider,
        registry=_build_registry(config),
        bus=bus,
        assembler=assembler,
        ledger=ledger,
        catalog=catalog,
    )


def _build_provider(
    config: Mapping[str, Any], project: ProjectContext, *, scripted: bool
) -> CompletionProvider:
    registry = default_provider_registry()
    if scripted:
        plan_json = build_local_plan(project).to_json()
        registry.register(
            "scripted",
            lambda: ScriptedProvider(responses={PLANNER_ROLE: plan_json}),
            overwrite=True,
        )
        name = "scripted"
    else:
        name = str(_section(config, "models").get("provider", "anthropic"))
    try:
        return registry.create(name)
    except ProviderError as exc:
        raise CLIError(
            f"{exc}\n  No network provider ships with this build; use --scripted for offline mode.",
            exit_code=3,
        ) from exc


def _load_project(args: argparse.Namespace) -> ProjectContext:
    payload: dict[str, object] = {}
    project_path = _optional_str(getattr(args, "project_path", None))
    if project_path is not None:
        path = Path(project_path).expanduser()
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise CLIError(f"project file not found: {path}", exit_code=2) from exc
        except (OSError, yaml.YAMLError) as exc:
            raise CLIError(f"unable to read project file {path}: {exc}", exit_code=2) from exc
        if loaded is not None and not isinstance(loaded, Mapping):
            raise CLIError(f"project file must contain a mapping: {path}", exit_code=2)
        payload.update(loaded or {})

    for key in ("name", "stack"):
        value = _optional_str(getattr(args, key, None))
        if value is not None:
            payload[key] = value
    for key in ("features", "integrations"):
        extra = list(getattr(args, key, None) or [])
        if extra:
            existing = payload.get(key) or []
            payload[key] = [*existing, *extra] if isinstance(existing, list) else extra

    try:
        return ProjectContext.from_mapping(payload)
    except ValueError as exc:
        raise CLIError(f"invalid project description: {exc}", exit_code=2) from exc


def _section(config: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = config.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
