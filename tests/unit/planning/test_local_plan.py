from __future__ import annotations

from agent_team.domain.models import ProjectContext, Tier
from agent_team.planning.local_plan import build_local_plan, feature_owner


def test_minimal_project_gets_two_phases() -> None:
    plan = build_local_plan()
    assert [phase.name for phase in plan.phases] == [
        "Architecture & Research",
        "Testing & Security Review",
    ]
    assert plan.estimated_rounds == 2
    first = next(plan.phases[0].iter_tasks())
    assert first.description == "Design architecture for the project using optimal stack."
    assert first.tier is Tier.DEEP


def test_features_and_integrations_add_phases_with_sequential_ids() -> None:
    project = ProjectContext(
        name="Shop",
        stack="Go",
        features=("Checkout page", "Inventory sync"),
        integrations=("Stripe",),
    )
    plan = build_local_plan(project)
    assert [phase.phase_id for phase in plan.phases] == [
        "phase-1",
        "phase-2",
        "phase-3",
        "phase-4",
    ]
    features = list(plan.phases[1].iter_tasks())
    assert [(task.task_id, task.assigned_to) for task in features] == [
        ("t2_1", "frontend"),
        ("t2_2", "backend"),
    ]
    assert plan.phases[2].milestones[0].tasks[0].title == "Integrate: Stripe"
    assert plan.summary == "4-phase plan covering 2 features and 1 integrations."
    assert plan.task_count == 4 + 2 + 1 + 4


def test_plan_is_deterministic() -> None:
    project = ProjectContext(name="Shop", features=("Search",))
    assert build_local_plan(project).to_json() == build_local_plan(project).to_json()


def test_feature_owner_routes_ui_work_to_frontend() -> None:
    assert feature_owner("Landing page") == "frontend"
    assert feature_owner("Admin UI") == "frontend"
    assert feature_owner("Payments") == "backend"
