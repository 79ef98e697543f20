"""Planning helpers that do not require a model call."""

from agent_team.planning.local_plan import build_local_plan, feature_owner

__all__ = ["build_local_plan", "feature_owner"]
