"""
agent-team-orchestrator — end-to-end smoke test

File: tests/smoke/test_end_to_end.py
Last updated: 2026-10-19

Purpose
- Run the packaged entrypoint in-process through a full scripted session.
- Validate the exit-code contract and JSON-lines log output of a run.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from agent_team.main import ExitCode, cli_entrypoint


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for key in list(os.environ):
        if key.startswith("AGENT_TEAM_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.mark.smoke
def test_scripted_session_end_to_end(workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (workdir / "agent_team.toml").write_text(
        '[observability]\nlog_dir = "logs"\nlog_level = "DEBUG"\n',
        encoding="utf-8",
    )
    (workdir / "project.yaml").write_text(
        "name: ledger\n"
        "stack: Flask\n"
        "features:\n"
        "  - label: Reports page\n"
        "  - CSV import\n"
        "integrations:\n"
        "  - Plaid\n",
        encoding="utf-8",
    )

    code = cli_entrypoint(["run", "--scripted", "--auto-approve", "-p", "project.yaml", "--json"])

    assert code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["state"] == "session-complete"
    assert payload["phases_run"] == payload["total_phases"] == 4
    assert payload["task_counts"]["completed"] == 11
    assert payload["task_counts"]["failed"] == 0

    log_lines = (workdir / "logs" / "agent_team.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in log_lines]
    events = [record["message"] for record in records]
    assert "engine_plan_ready" in events
    assert "engine_state_change" in events
    plan_ready = next(record for record in records if record["message"] == "engine_plan_ready")
    assert plan_ready["fields"]["session_id"] == payload["session_id"]
    assert plan_ready["fields"]["tasks"] == 11


@pytest.mark.smoke
def test_human_readable_run_summary(workdir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli_entrypoint(["run", "--scripted", "--name", "tiny"])

    assert code == ExitCode.SUCCESS
    out = capsys.readouterr().out
    assert "State: awaiting-approval" in out
    assert "Phases run: 1" in out
    assert "$ agent-team run --scripted --auto-approve" in out


@pytest.mark.smoke
@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        (["roles", "--json"], ExitCode.SUCCESS),
        (["config", "--profile", "nope"], ExitCode.CONFIG_ERROR),
        (["run"], ExitCode.PROVIDER_ERROR),
    ],
)
def test_entrypoint_exit_codes(workdir: Path, argv: list[str], expected: ExitCode) -> None:
    assert cli_entrypoint(argv) == expected


@pytest.mark.smoke
def test_argparse_usage_errors_map_to_config_code(
    workdir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli_entrypoint(["roles", "--tier", "enormous"]) == ExitCode.CONFIG_ERROR
    assert "invalid choice" in capsys.readouterr().err
