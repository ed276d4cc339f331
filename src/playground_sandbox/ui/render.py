"""Output rendering for the playground-sandbox CLI.

Purpose
- Thin rendering layer over a ``rich`` console.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.
- Never interpret user text as markup: compiler output is full of ``[...]``.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class CLIRenderer:
    """CLI output renderer.

    Styled when stdout is a terminal and color is allowed; otherwise plain,
    deterministic text.
    """

    def __init__(self, *, no_color: bool = False) -> None:
        self._color = _color_allowed(no_color)
        self._console = Console(
            color_system="auto" if self._color else None,
            no_color=not self._color,
            highlight=False,
            soft_wrap=True,
        )

    @property
    def color(self) -> bool:
        return self._color

    def heading(self, text: str) -> None:
        self._console.print(Text(text, style="bold"))

    def kv(self, key: str, value: object) -> None:
        line = Text(f"{key}: ", style="bold")
        line.append(str(value))
        self._console.print(line)

    def text(self, line: str) -> None:
        self._console.print(Text(line))

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._console.print()
        self._console.print(Text(title, style="bold cyan"))

    def block(self, title: str, body: str) -> None:
        """Print a titled block of verbatim program text; empty bodies are skipped."""

        if not body:
            return
        self.section(title)
        self._console.print(Text(body.rstrip("\n")))

    def warning(self, text: str) -> None:
        self._console.print(Text(f"  Warning: {text}", style="yellow"))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        table = Table(title=title, show_edge=False, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(Text(str(cell)) for cell in row))
        self._console.print(table)

    def ok(self, label: str) -> None:
        """Print a passing diagnostic check."""

        line = Text("  OK    ", style="green")
        line.append(label)
        self._console.print(line)

    def fail(self, label: str) -> None:
        """Print a failing diagnostic check."""

        line = Text("  FAIL  ", style="red")
        line.append(label)
        self._console.print(line)


def create_renderer(*, no_color: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color)


__all__ = ["CLIRenderer", "create_renderer"]
