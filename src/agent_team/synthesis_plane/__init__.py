"""
agent-team-orchestrator — synthesis plane

File: src/agent_team/synthesis_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Synthesis plane: role catalog, agent runtime, prompt/context assembly, output parsing,
  and completion-provider contracts.

What should be included in this file
- Top-level interfaces for constructing and executing a role agent.

Functional requirements
- Must be provider-agnostic through the completion provider contract.
"""

from agent_team.synthesis_plane.agents import (
    Agent,
    AgentExecutionError,
    AgentResult,
    PlannerAgent,
    create_agent,
    manual_review_plan,
    planning_task,
    team_roster,
)
from agent_team.synthesis_plane.context_assembler import (
    AssembledContext,
    ContextAssembler,
    ContextNote,
    VisibilityRule,
)
from agent_team.synthesis_plane.model_catalog import ModelCatalog, ModelPrice, recommend_tier
from agent_team.synthesis_plane.parsing import ParseAttempt, parse_response
from agent_team.synthesis_plane.prompt_templates import PromptTemplateEngine, PromptTemplateError
from agent_team.synthesis_plane.roles import RegistryEntry, Role, RoleRegistry

__all__ = [
    "Agent",
    "AgentExecutionError",
    "AgentResult",
    "AssembledContext",
    "ContextAssembler",
    "ContextNote",
    "ModelCatalog",
    "ModelPrice",
    "ParseAttempt",
    "PlannerAgent",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "RegistryEntry",
    "Role",
    "RoleRegistry",
    "VisibilityRule",
    "create_agent",
    "manual_review_plan",
    "parse_response",
    "planning_task",
    "recommend_tier",
    "team_roster",
]
