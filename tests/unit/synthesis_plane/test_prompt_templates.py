from __future__ import annotations

import pytest

from agent_team.domain.models import Message, ProjectContext
from agent_team.domain.plan import Task
from agent_team.synthesis_plane.prompt_templates import (
    TASK_SECTIONS,
    PromptTemplateEngine,
    PromptTemplateError,
    combine_prompts,
    role_tag,
)

PROJECT = ProjectContext(
    name="Storefront",
    stack="FastAPI + React",
    features=("cart", "checkout"),
    constraints=("no vendor lock-in",),
)


def _message(index: int, to: str) -> Message:
    return Message(
        message_id=f"msg-{index}",
        from_role="backend",
        to=to,
        content=f"update {index}",
        thread_id="thr-1",
    )


def test_system_prompt_is_deterministic_and_tagged() -> None:
    engine = PromptTemplateEngine()
    first = engine.system_prompt("sentinel", PROJECT)
    second = engine.system_prompt("sentinel", PROJECT)
    assert first == second
    assert "[Sentinel (Security)]" in first.prompt
    assert '"Storefront"' in first.prompt
    assert "Stack: FastAPI + React." in first.prompt
    assert len(first.prompt_hash) == 64


def test_planner_system_prompt_lists_features_and_constraints() -> None:
    prompt = PromptTemplateEngine().system_prompt("coo", PROJECT).prompt
    assert "FEATURES TO PLAN:\n1. cart\n2. checkout" in prompt
    assert "CONSTRAINTS:\n1. no vendor lock-in" in prompt


def test_unknown_role_gets_generic_system_prompt() -> None:
    engine = PromptTemplateEngine()
    assert not engine.has_role("intern")
    rendered = engine.system_prompt("intern", ProjectContext())
    assert rendered.prompt.startswith('You are an AI assistant working on "a project"')
    assert role_tag("intern") == "intern"


def test_sectioned_task_prompt_for_specialists() -> None:
    task = Task(task_id="t1", title="Build login API", assigned_to="backend", description="JWT")
    prompt = PromptTemplateEngine().task_prompt("backend", task, display_name="Backend")
    assert prompt.startswith("## Backend Task: Build login API\n\nJWT\n\n### Instructions\n")
    for line in TASK_SECTIONS["backend"].expected:
        assert f"- {line}" in prompt


def test_generic_task_prompt_includes_context_when_present() -> None:
    engine = PromptTemplateEngine()
    task = Task(
        task_id="t2",
        title="Weekly retro",
        assigned_to="project-auditor",
        context="Sprint 3 slipped",
    )
    prompt = engine.task_prompt("project-auditor", task, display_name="Project Auditor")
    assert "### Additional Context\nSprint 3 slipped" in prompt
    assert prompt.endswith("Tag your response with [Project Auditor].")

    bare = Task(task_id="t3", title="Weekly retro", assigned_to="project-auditor")
    assert "Additional Context" not in engine.task_prompt(
        "project-auditor", bare, display_name="Project Auditor"
    )


def test_planner_task_prompt_renders_roster() -> None:
    task = Task(task_id="plan", title="Plan the build", assigned_to="coo")
    prompt = PromptTemplateEngine().task_prompt(
        "coo",
        task,
        display_name="COO",
        roster=[
            {"label": "Backend", "tier": "standard", "reports_to": "cto"},
            {"label": "Documenter", "tier": "minimal", "reports_to": None},
        ],
    )
    assert "- **Backend** (standard tier) — reports to cto" in prompt
    assert "- **Documenter** (minimal tier)\n" in prompt
    assert "Return ONLY the JSON plan" in prompt


def test_history_block_filters_and_limits() -> None:
    engine = PromptTemplateEngine()
    history = [_message(i, "@all" if i % 2 else "@qa-tester") for i in range(30)]
    history.append(_message(99, "@frontend"))
    block = engine.history_block("backend", history, limit=3)
    assert block.startswith("## Recent Team Messages")
    assert block.count("**[backend]**") == 3
    assert "update 29" in block
    assert "update 99" not in block
    assert engine.history_block("backend", [], limit=3) == ""


def test_missing_variable_raises_template_error() -> None:
    engine = PromptTemplateEngine()
    with pytest.raises(PromptTemplateError, match="failed to render"):
        engine._render("backend", "{{ nowhere }}", {})


def test_combine_prompts_frames_system_section() -> None:
    assert combine_prompts("sys", "user") == "<system>\nsys\n</system>\n\nuser"
