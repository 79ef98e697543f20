"""
agent-team-orchestrator — package root

File: src/agent_team/__init__.py
Last updated: 2026-10-19

Purpose
- Coordinate a simulated team of role-specific LLM agents through a phased build plan.

What should be included in this file
- Package version only; public APIs live in their plane packages.

Functional requirements
- Importing the package must not configure logging or touch the filesystem.

Non-functional requirements
- Keep import-time surface small and deterministic.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
