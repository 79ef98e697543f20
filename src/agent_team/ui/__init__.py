"""UI package exports for the command line surface."""

from agent_team.ui.cli import CLIError, build_parser, main, run_cli
from agent_team.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "main", "run_cli"]
