"""Unit tests for container argv construction and isolation settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from playground_sandbox.sandbox.command_builder import (
    FORMAT_COMMAND,
    LINT_COMMAND,
    CommandBuilder,
    IsolationConfig,
    build_execution_command,
    parse_byte_size,
)
from playground_sandbox.sandbox.models import Channel, CompileTarget, Mode

INPUT = Path("/tmp/playground-src-abc.rs")
OUTPUT = Path("/tmp/playground-out-xyz")

DEFAULT_PREFIX = (
    "docker",
    "run",
    "--rm",
    "--volume",
    "/tmp/playground-src-abc.rs:/playground/src/main.rs",
    "--volume",
    "/tmp/playground-out-xyz:/playground-result",
    "--workdir",
    "/playground",
    "--net",
    "none",
    "--memory",
    "256m",
    "--memory-swap",
    "320m",
    "--env",
    "PLAYGROUND_TIMEOUT=10",
    "--env",
    "RUST_BACKTRACE=1",
)


def test_build_execution_command_table() -> None:
    assert build_execution_command(None, Mode.DEBUG, False) == ("cargo", "run")
    assert build_execution_command(None, Mode.DEBUG, True) == ("cargo", "test")
    assert build_execution_command(None, Mode.RELEASE, False) == ("cargo", "run", "--release")
    assert build_execution_command(CompileTarget.ASSEMBLY, Mode.DEBUG, False) == (
        "cargo",
        "rustc",
        "--",
        "-o",
        "/playground-result/compilation",
        "--emit=asm",
    )
    assert build_execution_command(CompileTarget.LLVM_IR, Mode.RELEASE, False) == (
        "cargo",
        "rustc",
        "--release",
        "--",
        "-o",
        "/playground-result/compilation",
        "--emit=llvm-ir",
    )


def test_compile_target_wins_over_tests_flag() -> None:
    command = build_execution_command(CompileTarget.ASSEMBLY, Mode.DEBUG, True)

    assert command[:2] == ("cargo", "rustc")
    assert "test" not in command


def test_default_execute_command_is_exact() -> None:
    builder = CommandBuilder(INPUT, OUTPUT)

    assert builder.execute_command(Channel.STABLE, Mode.DEBUG, False) == (
        *DEFAULT_PREFIX,
        "rust-stable",
        "cargo",
        "run",
    )


def test_format_and_lint_commands_use_tool_images() -> None:
    builder = CommandBuilder(INPUT, OUTPUT)

    assert builder.format_command() == (*DEFAULT_PREFIX, "rustfmt", *FORMAT_COMMAND)
    assert builder.lint_command() == (*DEFAULT_PREFIX, "clippy", *LINT_COMMAND)
    assert FORMAT_COMMAND == ("rustfmt", "--emit", "files", "src/main.rs")


def test_pids_limit_is_appended_after_environment() -> None:
    builder = CommandBuilder(INPUT, OUTPUT, IsolationConfig(pids_limit=512))

    prefix = builder.isolation_prefix()

    assert prefix[: len(DEFAULT_PREFIX)] == DEFAULT_PREFIX
    assert prefix[len(DEFAULT_PREFIX) :] == ("--pids-limit", "512")


def test_extra_env_is_sorted_and_read_only() -> None:
    isolation = IsolationConfig(extra_env={"ZED": "1", "ALPHA": "2"})

    assert list(isolation.extra_env) == ["ALPHA", "ZED"]
    with pytest.raises(TypeError):
        isolation.extra_env["NEW"] = "x"  # type: ignore[index]

    prefix = CommandBuilder(INPUT, OUTPUT, isolation).isolation_prefix()
    assert prefix[-4:] == ("--env", "ALPHA=2", "--env", "ZED=1")


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"engine": "  "}, "engine"),
        ({"memory_limit": "320m", "memory_swap_limit": "256m"}, "greater than"),
        ({"memory_limit": "lots"}, "memory_limit"),
        ({"timeout_seconds": 0}, "timeout_seconds"),
        ({"timeout_seconds": True}, "timeout_seconds"),
        ({"pids_limit": 0}, "pids_limit"),
        ({"extra_env": {"BAD-NAME": "1"}}, "invalid environment"),
        ({"extra_env": {"PLAYGROUND_TIMEOUT": "99"}}, "PLAYGROUND_TIMEOUT"),
        ({"extra_env": {1: "x", "ALPHA": "y"}}, "invalid environment variable name 1"),
        ({"extra_env": {"ALPHA": "y", None: "x"}}, "invalid environment variable name None"),
        ({"extra_env": {"ALPHA": 1}}, "must be a string"),
        ({"extra_env": [("ALPHA", "1")]}, "extra_env must be a mapping"),
    ],
)
def test_isolation_config_rejects_invalid_settings(
    kwargs: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        IsolationConfig(**kwargs)  # type: ignore[arg-type]


def test_isolation_config_normalizes_sizes() -> None:
    isolation = IsolationConfig(memory_limit=" 1G ", memory_swap_limit="2g")

    assert isolation.memory_limit == "1g"
    assert isolation.memory_limit_bytes == 1024**3
    assert isolation.memory_swap_limit_bytes == 2 * 1024**3


@pytest.mark.parametrize(
    ("value", "expected"),
    [("512", 512), ("4b", 4), ("2k", 2048), ("256m", 256 * 1024**2), ("1g", 1024**3)],
)
def test_parse_byte_size(value: str, expected: int) -> None:
    assert parse_byte_size(value, "size") == expected


@pytest.mark.parametrize("value", ["", "0", "12q", "m", "-1m", "1.5g"])
def test_parse_byte_size_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_byte_size(value, "size")


@given(
    channel=st.sampled_from(list(Channel)),
    mode=st.sampled_from(list(Mode)),
    tests=st.booleans(),
    target=st.one_of(st.none(), st.sampled_from(list(CompileTarget))),
    pids_limit=st.one_of(st.none(), st.integers(min_value=1, max_value=4096)),
)
@settings(max_examples=60, derandomize=True, deadline=None)
def test_property_every_command_keeps_isolation_flags(
    channel: Channel,
    mode: Mode,
    tests: bool,
    target: CompileTarget | None,
    pids_limit: int | None,
) -> None:
    builder = CommandBuilder(INPUT, OUTPUT, IsolationConfig(pids_limit=pids_limit))
    if target is None:
        argv = builder.execute_command(channel, mode, tests)
    else:
        argv = builder.compile_command(target, channel, mode, tests)

    assert argv[argv.index("--net") + 1] == "none"
    assert argv.count("--volume") == 2
    assert argv[argv.index("--memory") + 1] == "256m"
    assert argv[argv.index("--memory-swap") + 1] == "320m"
    assert ("--pids-limit" in argv) is (pids_limit is not None)

    image_index = argv.index(channel.container_name)
    assert argv[image_index + 1] == "cargo"
    assert ("--release" in argv) is (mode is Mode.RELEASE)
    if target is not None:
        assert argv[-1] == target.emit_flag
    else:
        assert argv[image_index + 2] == ("test" if tests else "run")
