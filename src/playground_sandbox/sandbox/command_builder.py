"""Pure construction of isolated toolchain invocations.

Nothing here touches the filesystem or spawns processes. The argv layout is
load-bearing: mounts, network, memory and pids flags are what keep submitted
code contained, so every builder returns a fully materialized tuple that
tests can compare verbatim.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Final

from playground_sandbox.constants import (
    DEFAULT_ENGINE,
    DEFAULT_EXTRA_ENV,
    DEFAULT_MEMORY_LIMIT,
    DEFAULT_MEMORY_SWAP_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    FORMAT_IMAGE,
    LINT_IMAGE,
    SANDBOX_ARTIFACT_STEM,
    SANDBOX_OUTPUT_DIR,
    SANDBOX_SOURCE_PATH,
    SANDBOX_WORKDIR,
    TIMEOUT_ENV_VAR,
)
from playground_sandbox.sandbox.models import Channel, CompileTarget, Mode

_BYTE_SIZE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?P<count>[0-9]+)(?P<unit>[bkmg]?)$")
_ENV_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UNIT_MULTIPLIERS: Final[Mapping[str, int]] = MappingProxyType(
    {"": 1, "b": 1, "k": 1024, "m": 1024**2, "g": 1024**3}
)

FORMAT_COMMAND: Final[tuple[str, ...]] = (
    "rustfmt",
    "--emit",
    "files",
    SANDBOX_SOURCE_PATH.relative_to(SANDBOX_WORKDIR).as_posix(),
)
LINT_COMMAND: Final[tuple[str, ...]] = ("cargo", "clippy")


@dataclass(frozen=True, slots=True)
class IsolationConfig:
    """Resource and isolation settings applied to every container invocation.

    ``pids_limit`` caps processes/threads inside the container; ``None``
    leaves it unset. ``memory_swap_limit`` must exceed ``memory_limit`` so a
    program that thrashes swap is still distinguishable from an outright
    OOM kill.
    """

    engine: str = DEFAULT_ENGINE
    memory_limit: str = DEFAULT_MEMORY_LIMIT
    memory_swap_limit: str = DEFAULT_MEMORY_SWAP_LIMIT
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    pids_limit: int | None = None
    extra_env: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_EXTRA_ENV))

    def __post_init__(self) -> None:
        engine = self.engine.strip() if isinstance(self.engine, str) else ""
        if not engine:
            raise ValueError("engine must be a non-empty string")
        object.__setattr__(self, "engine", engine)

        memory = parse_byte_size(self.memory_limit, "memory_limit")
        memory_swap = parse_byte_size(self.memory_swap_limit, "memory_swap_limit")
        if memory_swap <= memory:
            raise ValueError("memory_swap_limit must be greater than memory_limit")
        object.__setattr__(self, "memory_limit", self.memory_limit.strip().lower())
        object.__setattr__(self, "memory_swap_limit", self.memory_swap_limit.strip().lower())

        if isinstance(self.timeout_seconds, bool) or not isinstance(self.timeout_seconds, int):
            raise ValueError("timeout_seconds must be an integer")
        if self.timeout_seconds < 1:
            raise ValueError("timeout_seconds must be >= 1")

        if self.pids_limit is not None:
            if isinstance(self.pids_limit, bool) or not isinstance(self.pids_limit, int):
                raise ValueError("pids_limit must be an integer or None")
            if self.pids_limit < 1:
                raise ValueError("pids_limit must be >= 1")

        if not isinstance(self.extra_env, Mapping):
            raise ValueError("extra_env must be a mapping of names to values")
        for key, value in self.extra_env.items():
            if not isinstance(key, str) or not _ENV_NAME_PATTERN.fullmatch(key):
                raise ValueError(f"invalid environment variable name {key!r}")
            if key == TIMEOUT_ENV_VAR:
                raise ValueError(f"{TIMEOUT_ENV_VAR} is controlled by timeout_seconds")
            if not isinstance(value, str):
                raise ValueError(f"environment value for {key} must be a string")
        normalized_env = dict(sorted(self.extra_env.items()))
        object.__setattr__(self, "extra_env", MappingProxyType(normalized_env))

    @property
    def memory_limit_bytes(self) -> int:
        return parse_byte_size(self.memory_limit, "memory_limit")

    @property
    def memory_swap_limit_bytes(self) -> int:
        return parse_byte_size(self.memory_swap_limit, "memory_swap_limit")


def build_execution_command(
    target: CompileTarget | None,
    mode: Mode,
    tests: bool,
) -> tuple[str, ...]:
    """Return the cargo invocation run inside the container.

    A compile target always means ``cargo rustc`` (never a test run); without
    one, ``tests`` selects ``cargo test`` over ``cargo run``.
    """

    command = ["cargo"]
    if target is not None:
        command.append("rustc")
    elif tests:
        command.append("test")
    else:
        command.append("run")

    if mode is Mode.RELEASE:
        command.append("--release")

    if target is not None:
        command.extend(("--", "-o", SANDBOX_ARTIFACT_STEM.as_posix(), target.emit_flag))

    return tuple(command)


class CommandBuilder:
    """Builds container argv for one workspace's input file and output directory."""

    def __init__(
        self,
        input_file: Path | str,
        output_dir: Path | str,
        isolation: IsolationConfig | None = None,
    ) -> None:
        self._input_file = Path(input_file)
        self._output_dir = Path(output_dir)
        self._isolation = isolation or IsolationConfig()

    @property
    def isolation(self) -> IsolationConfig:
        return self._isolation

    def compile_command(
        self,
        target: CompileTarget,
        channel: Channel,
        mode: Mode,
        tests: bool,
    ) -> tuple[str, ...]:
        return (
            *self.isolation_prefix(),
            channel.container_name,
            *build_execution_command(target, mode, tests),
        )

    def execute_command(self, channel: Channel, mode: Mode, tests: bool) -> tuple[str, ...]:
        return (
            *self.isolation_prefix(),
            channel.container_name,
            *build_execution_command(None, mode, tests),
        )

    def format_command(self) -> tuple[str, ...]:
        return (*self.isolation_prefix(), FORMAT_IMAGE, *FORMAT_COMMAND)

    def lint_command(self) -> tuple[str, ...]:
        return (*self.isolation_prefix(), LINT_IMAGE, *LINT_COMMAND)

    def isolation_prefix(self) -> tuple[str, ...]:
        """Engine arguments shared by every invocation, up to the image name."""

        isolation = self._isolation
        prefix = [
            isolation.engine,
            "run",
            "--rm",
            "--volume",
            f"{self._input_file}:{SANDBOX_SOURCE_PATH.as_posix()}",
            "--volume",
            f"{self._output_dir}:{SANDBOX_OUTPUT_DIR.as_posix()}",
            "--workdir",
            SANDBOX_WORKDIR.as_posix(),
            "--net",
            "none",
            "--memory",
            isolation.memory_limit,
            "--memory-swap",
            isolation.memory_swap_limit,
            "--env",
            f"{TIMEOUT_ENV_VAR}={isolation.timeout_seconds}",
        ]
        for key, value in isolation.extra_env.items():
            prefix.extend(("--env", f"{key}={value}"))
        if isolation.pids_limit is not None:
            prefix.extend(("--pids-limit", str(isolation.pids_limit)))
        return tuple(prefix)


def parse_byte_size(value: object, field_name: str) -> int:
    """Parse a container-engine byte size such as ``256m`` into bytes."""

    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string like '256m'")
    match = _BYTE_SIZE_PATTERN.fullmatch(value.strip().lower())
    if match is None:
        raise ValueError(f"{field_name} must look like <number>[b|k|m|g], got {value!r}")
    size = int(match.group("count")) * _UNIT_MULTIPLIERS[match.group("unit")]
    if size <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return size


__all__ = [
    "FORMAT_COMMAND",
    "LINT_COMMAND",
    "CommandBuilder",
    "IsolationConfig",
    "build_execution_command",
    "parse_byte_size",
]
