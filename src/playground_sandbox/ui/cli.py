"""Command-line interface router for playground-sandbox."""

from __future__ import annotations

import argparse
import json
import shutil
import subprocess
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from playground_sandbox import __version__
from playground_sandbox.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    isolation_config_from,
    load_config,
    redact_config,
    temp_root_from,
)
from playground_sandbox.constants import FORMAT_IMAGE, LINT_IMAGE
from playground_sandbox.observability import (
    correlation_scope,
    logging_config_from,
    setup_structured_logging,
    shutdown_logging,
)
from playground_sandbox.sandbox import (
    Channel,
    CompileRequest,
    CompileTarget,
    ExecuteRequest,
    FormatRequest,
    LintRequest,
    Mode,
    SandboxError,
    SandboxRequest,
    SandboxResponse,
    SubprocessRunner,
    run_request,
    sweep_stale_workspaces,
)
from playground_sandbox.ui.render import CLIRenderer, create_renderer

STDIN_SOURCE: Final[str] = "-"
DEFAULT_GC_MAX_AGE_HOURS: Final[float] = 24.0
IMAGE_CHECK_TIMEOUT_SECONDS: Final[int] = 30


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="playground-sandbox",
        description=(
            "playground-sandbox: run Rust snippets inside resource-limited containers.\n\n"
            "Common workflows:\n"
            "  playground-sandbox execute main.rs           Build and run a program\n"
            "  playground-sandbox compile --target asm -    Emit assembly for stdin\n"
            "  playground-sandbox format main.rs            Print rustfmt output\n"
            "  playground-sandbox doctor                    Check environment health\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to playground TOML config (default: ./playground.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (hardening, permissive, ...).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit deterministic JSON output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    toolchain = argparse.ArgumentParser(add_help=False)
    toolchain.add_argument(
        "--channel",
        choices=[item.value for item in Channel],
        default=Channel.STABLE.value,
        help="Toolchain release channel (default: stable).",
    )
    toolchain.add_argument(
        "--mode",
        choices=[item.value for item in Mode],
        default=Mode.DEBUG.value,
        help="Build profile (default: debug).",
    )
    toolchain.add_argument(
        "--tests",
        action="store_true",
        default=False,
        help="Build the test harness instead of the binary.",
    )

    source_help = f"Rust source file, or {STDIN_SOURCE!r} to read from stdin"
    subparsers = parser.add_subparsers(dest="command", required=True)

    # compile -------------------------------------------------------------
    compile_parser = subparsers.add_parser(
        "compile",
        parents=[common, toolchain],
        help="Compile a program and print the emitted assembly or LLVM IR",
        description=(
            "Compile a single-file program and print the requested compiler output.\n\n"
            "Examples:\n"
            "  playground-sandbox compile --target asm main.rs\n"
            "  playground-sandbox compile --target llvm-ir --mode release main.rs\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    compile_parser.add_argument("source", help=source_help)
    compile_parser.add_argument(
        "--target",
        required=True,
        choices=[item.value for item in CompileTarget],
        help="Compiler emission target.",
    )
    compile_parser.set_defaults(handler=_cmd_compile)

    # execute -------------------------------------------------------------
    execute_parser = subparsers.add_parser(
        "execute",
        parents=[common, toolchain],
        help="Build and run a program (or its tests)",
        description=(
            "Build and run a single-file program with network disabled and\n"
            "memory/time limits applied.\n\n"
            "Examples:\n"
            "  playground-sandbox execute main.rs\n"
            "  playground-sandbox execute --channel nightly --tests main.rs\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    execute_parser.add_argument("source", help=source_help)
    execute_parser.set_defaults(handler=_cmd_execute)

    # format --------------------------------------------------------------
    format_parser = subparsers.add_parser(
        "format",
        parents=[common],
        help="Format a program with rustfmt",
        description=(
            "Run rustfmt on a program and print the formatted source.\n\n"
            "Examples:\n"
            "  playground-sandbox format main.rs\n"
            "  cat main.rs | playground-sandbox format -\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    format_parser.add_argument("source", help=source_help)
    format_parser.set_defaults(handler=_cmd_format)

    # lint ----------------------------------------------------------------
    lint_parser = subparsers.add_parser(
        "lint",
        parents=[common],
        help="Run clippy lints on a program",
        description=(
            "Run cargo clippy on a program and print its diagnostics.\n\n"
            "Examples:\n"
            "  playground-sandbox lint main.rs\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    lint_parser.add_argument("source", help=source_help)
    lint_parser.set_defaults(handler=_cmd_lint)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  playground-sandbox config\n"
            "  playground-sandbox config --profile hardening --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check container engine and workspace health",
        description=(
            "Check config, container engine availability, and the workspace root.\n"
            "With --images, also confirm every toolchain image is present locally.\n\n"
            "Examples:\n"
            "  playground-sandbox doctor\n"
            "  playground-sandbox doctor --images --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    doctor_parser.add_argument(
        "--images",
        action="store_true",
        default=False,
        help="Inspect each toolchain image with the container engine.",
    )
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # gc ------------------------------------------------------------------
    gc_parser = subparsers.add_parser(
        "gc",
        parents=[common],
        help="Remove stale workspace leftovers",
        description=(
            "Delete workspace files and directories left behind by crashed sessions.\n\n"
            "Examples:\n"
            "  playground-sandbox gc --dry-run\n"
            "  playground-sandbox gc --max-age-hours 1\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    gc_parser.add_argument(
        "--max-age-hours",
        type=float,
        default=DEFAULT_GC_MAX_AGE_HOURS,
        help=f"Only remove entries older than this (default: {DEFAULT_GC_MAX_AGE_HOURS:g}).",
    )
    gc_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="List what would be removed without deleting anything.",
    )
    gc_parser.set_defaults(handler=_cmd_gc)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_compile(args: argparse.Namespace) -> int:
    request = CompileRequest(
        code=_read_source(args.source),
        target=args.target,
        channel=args.channel,
        mode=args.mode,
        tests=args.tests,
    )
    return _run_sandbox_command(args, "compile", request, code_title="Compiler output")


def _cmd_execute(args: argparse.Namespace) -> int:
    request = ExecuteRequest(
        code=_read_source(args.source),
        channel=args.channel,
        mode=args.mode,
        tests=args.tests,
    )
    return _run_sandbox_command(args, "execute", request)


def _cmd_format(args: argparse.Namespace) -> int:
    request = FormatRequest(code=_read_source(args.source))
    return _run_sandbox_command(args, "format", request, code_title="Formatted source")


def _cmd_lint(args: argparse.Namespace) -> int:
    request = LintRequest(code=_read_source(args.source))
    return _run_sandbox_command(args, "lint", request)


def _run_sandbox_command(
    args: argparse.Namespace,
    command: str,
    request: SandboxRequest,
    *,
    code_title: str | None = None,
) -> int:
    config = _load_effective_config(args)
    session_id = uuid.uuid4().hex
    setup_structured_logging(
        logging_config_from(config["observability"], session_id=session_id)
    )
    try:
        with correlation_scope(request_id=uuid.uuid4().hex, operation=command):
            response = run_request(
                request,
                isolation=isolation_config_from(config),
                runner=SubprocessRunner(),
                temp_root=temp_root_from(config),
            )
    except SandboxError as exc:
        raise CLIError(f"{exc.stage}: {exc}", exit_code=3) from exc
    finally:
        shutdown_logging()

    exit_code = 0 if response.success else 1
    if _flag(args, "json"):
        _emit_json({"command": command, **response.to_dict()})
        return exit_code

    _render_response(_get_renderer(args), command, response, code_title=code_title)
    return exit_code


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))

    if _flag(args, "json"):
        _emit_json(
            {"command": "config", "active_profile": profile, "config": redact_config(config)}
        )
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    config: dict[str, Any] | None = None
    try:
        config = _load_effective_config(args)
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    engine_path: str | None = None
    if config is not None:
        engine = config["sandbox"]["engine"]
        engine_path = shutil.which(engine)
        if engine_path is not None:
            checks.append(("engine", True, f"{engine} found at {engine_path}"))
        else:
            checks.append(("engine", False, f"{engine} not found in PATH"))

        temp_root = temp_root_from(config)
        if temp_root is None:
            checks.append(("temp_root", True, "platform temp directory"))
        elif temp_root.is_dir():
            checks.append(("temp_root", True, f"{temp_root} exists"))
        else:
            checks.append(("temp_root", False, f"{temp_root} is not a directory"))
    else:
        checks.append(("engine", False, "skipped (config failed)"))

    if _flag(args, "images"):
        images = [item.container_name for item in Channel] + [FORMAT_IMAGE, LINT_IMAGE]
        for image in images:
            label = f"image:{image}"
            if engine_path is None:
                checks.append((label, False, "skipped (engine unavailable)"))
                continue
            checks.append((label, *_inspect_image(engine_path, image)))

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "doctor",
                "checks": [
                    {"name": name, "status": "ok" if passed else "fail", "detail": detail}
                    for name, passed, detail in checks
                ],
            }
        )
    else:
        renderer = _get_renderer(args)
        renderer.heading("playground-sandbox doctor")
        for name, passed, detail in checks:
            if passed:
                renderer.ok(f"{name}: {detail}")
            else:
                renderer.fail(f"{name}: {detail}")

    return 0 if all(passed for _, passed, _ in checks) else 1


def _cmd_gc(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    max_age_hours = float(args.max_age_hours)
    if max_age_hours < 0:
        raise CLIError("--max-age-hours must be >= 0")

    dry_run = _flag(args, "dry_run")
    entries = sweep_stale_workspaces(
        temp_root_from(config),
        max_age_seconds=max_age_hours * 3600.0,
        dry_run=dry_run,
    )

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "gc",
                "dry_run": dry_run,
                "entries": [
                    {
                        "path": entry.path.as_posix(),
                        "age_seconds": round(entry.age_seconds, 3),
                        "removed": entry.removed,
                    }
                    for entry in entries
                ],
            }
        )
        return 0

    renderer = _get_renderer(args)
    if not entries:
        renderer.text("No stale workspace entries found.")
        return 0
    renderer.table(
        ("path", "age (h)", "action"),
        [
            (
                entry.path.as_posix(),
                f"{entry.age_seconds / 3600.0:.1f}",
                "removed" if entry.removed else "would remove",
            )
            for entry in entries
        ],
        title="Stale workspace entries",
    )
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render_response(
    renderer: CLIRenderer,
    command: str,
    response: SandboxResponse,
    *,
    code_title: str | None,
) -> None:
    code = getattr(response, "code", "")
    if code_title is not None:
        renderer.block(code_title, code)
    renderer.block("Standard output", response.stdout)
    renderer.block("Standard error", response.stderr)
    renderer.section("Result")
    renderer.kv("operation", command)
    renderer.kv("success", "yes" if response.success else "no")
    if response.exit_code is not None:
        renderer.kv("exit code", response.exit_code)


def _inspect_image(engine_path: str, image: str) -> tuple[bool, str]:
    try:
        completed = subprocess.run(
            [engine_path, "image", "inspect", image],
            check=False,
            capture_output=True,
            stdin=subprocess.DEVNULL,
            timeout=IMAGE_CHECK_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        return False, str(exc)
    if completed.returncode == 0:
        return True, "present"
    return False, "missing (build or pull the image)"


def _read_source(source: str) -> str:
    if source == STDIN_SOURCE:
        return sys.stdin.read()
    path = Path(source).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CLIError(f"source file not found: {path}") from exc
    except UnicodeDecodeError as exc:
        raise CLIError(f"source file is not valid UTF-8: {path}") from exc
    except OSError as exc:
        raise CLIError(f"unable to read source file {path}: {exc}") from exc


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_config(config_path, profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
