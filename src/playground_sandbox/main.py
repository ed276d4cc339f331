"""Executable CLI entrypoint for ``playground_sandbox``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit-code contract."""

    SUCCESS = 0
    PROGRAM_FAILED = 1
    CONFIG_ERROR = 2
    SANDBOX_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and map whatever escapes it onto :class:`ExitCode`.

    Config and usage problems print a one-line ``error:`` message; anything
    unrecognized prints its traceback and exits with ``INTERNAL_ERROR``.
    """

    try:
        from playground_sandbox.ui.cli import run_cli

        return _exit_status(run_cli(argv))
    except SystemExit as exc:
        return _exit_status(exc.code)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return ExitCode.INTERNAL_ERROR
    except Exception as exc:  # noqa: BLE001
        code = _classify(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return code


def main() -> None:
    raise SystemExit(cli_entrypoint())


def _exit_status(code: object) -> int:
    if code is None:
        return ExitCode.SUCCESS
    if isinstance(code, int):
        try:
            return ExitCode(code)
        except ValueError:
            return ExitCode.INTERNAL_ERROR
    if isinstance(code, str) and code.strip():
        print(code.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def _classify(exc: BaseException) -> ExitCode:
    from playground_sandbox.config import ConfigLoadError, ConfigValidationError
    from playground_sandbox.sandbox import SandboxError

    for link in _causes(exc):
        if isinstance(link, SandboxError):
            return ExitCode.SANDBOX_ERROR
        if isinstance(link, (ConfigLoadError, ConfigValidationError, ValueError)):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and the exceptions it was raised from, without looping."""

    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        current = current.__cause__ or (
            None if current.__suppress_context__ else current.__context__
        )


__all__ = ["ExitCode", "cli_entrypoint", "main"]
