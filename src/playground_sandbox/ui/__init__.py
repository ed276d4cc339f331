"""Command-line surface: argparse router and rich renderer."""

from playground_sandbox.ui.cli import CLIError, build_parser, run_cli
from playground_sandbox.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
