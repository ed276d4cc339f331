"""
playground-sandbox: unit tests for config loader

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.
- Check profile selection and the translation into sandbox isolation settings.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from playground_sandbox.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    isolation_config_from,
    load_config,
    temp_root_from,
)
from playground_sandbox.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _sha256_json(data: dict[str, object]) -> str:
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[sandbox]
timeout_seconds = 4
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"PLAYGROUND_SANDBOX_TIMEOUT_SECONDS": "6"})
    cli_loaded = load_config(
        config_path,
        environ={"PLAYGROUND_SANDBOX_TIMEOUT_SECONDS": "6"},
        cli_overrides={"sandbox.timeout_seconds": 7},
    )

    assert default_loaded["sandbox"]["timeout_seconds"] == 10
    assert file_loaded["sandbox"]["timeout_seconds"] == 4
    assert env_loaded["sandbox"]["timeout_seconds"] == 6
    assert cli_loaded["sandbox"]["timeout_seconds"] == 7


def test_defaults_reproduce_standard_isolation(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    isolation = isolation_config_from(load_config(config_path, environ={}))

    assert isolation.engine == "docker"
    assert isolation.memory_limit == "256m"
    assert isolation.memory_swap_limit == "320m"
    assert isolation.timeout_seconds == 10
    assert isolation.pids_limit is None
    assert dict(isolation.extra_env) == {"RUST_BACKTRACE": "1"}


def test_hardening_profile_enables_pids_limit(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    by_argument = load_config(config_path, profile="hardening", environ={})
    by_env = load_config(config_path, environ={"PLAYGROUND_PROFILE": "hardening"})

    assert isolation_config_from(by_argument).pids_limit == 512
    assert isolation_config_from(by_env).pids_limit == 512


def test_env_overrides_beat_profile_overlay(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        profile="hardening",
        environ={"PLAYGROUND_SANDBOX_PIDS_LIMIT_ENABLED": "off"},
    )

    assert isolation_config_from(loaded).pids_limit is None


def test_file_defined_profile_and_extra_env(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(
        config_path,
        """
[sandbox.extra_env]
RUST_BACKTRACE = "full"
CARGO_TERM_COLOR = "never"

[profiles.tight.sandbox]
memory_limit = "128m"
memory_swap_limit = "160m"
""".strip(),
    )

    loaded = load_config(config_path, profile="tight", environ={})
    isolation = isolation_config_from(loaded)

    assert isolation.memory_limit == "128m"
    assert dict(isolation.extra_env) == {"CARGO_TERM_COLOR": "never", "RUST_BACKTRACE": "full"}


def test_unknown_profile_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="profile 'nope' is not defined"):
        load_config(config_path, profile="nope", environ={})


def test_invalid_env_coercion_raises_actionable_error(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="PLAYGROUND_SANDBOX_TIMEOUT_SECONDS"):
        load_config(config_path, environ={"PLAYGROUND_SANDBOX_TIMEOUT_SECONDS": "soon"})


def test_env_overrides_reach_scalars_but_not_tables(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "PLAYGROUND_OBSERVABILITY_LOG_TO_CONSOLE": "yes",
            "PLAYGROUND_SANDBOX_PIDS_LIMIT": " 64 ",
            "PLAYGROUND_SANDBOX_EXTRA_ENV": "RUST_BACKTRACE=0",
            "PLAYGROUND_PROFILES_HARDENING_SANDBOX_PIDS_LIMIT_ENABLED": "false",
            "PLAYGROUND_TIMEOUT": "1",
        },
    )

    assert loaded["observability"]["log_to_console"] is True
    assert loaded["sandbox"]["pids_limit"] == 64
    assert loaded["sandbox"]["extra_env"] == {"RUST_BACKTRACE": "1"}
    assert loaded["sandbox"]["timeout_seconds"] == 10
    assert loaded["profiles"]["hardening"]["sandbox"]["pids_limit_enabled"] is True


def test_cli_override_sets_nested_table_key(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={},
        cli_overrides={"sandbox.extra_env.CARGO_TERM_COLOR": "never", "profile": "hardening"},
    )

    assert loaded["sandbox"]["extra_env"] == {"CARGO_TERM_COLOR": "never", "RUST_BACKTRACE": "1"}
    assert isolation_config_from(loaded).pids_limit == 512


def test_missing_explicit_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_raises_load_error(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "[sandbox\nengine = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_invalid_values_surface_validation_paths(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(
        config_path,
        """
[sandbox]
memory_limit = "512m"
timeout_seconds = 0
""".strip(),
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    paths = {issue.path for issue in excinfo.value.issues}
    assert paths == {"sandbox.memory_swap_limit", "sandbox.timeout_seconds"}


def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "playground.toml"
    _write_config(
        config_path,
        """
[sandbox]
temp_root = "scratch"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert loaded["sandbox"]["temp_root"] == (config_path.parent / "scratch").as_posix()
    assert loaded["observability"]["log_dir"] == (config_path.parent / "logs").as_posix()
    assert temp_root_from(loaded) == config_path.parent / "scratch"


def test_empty_temp_root_means_platform_default(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={})

    assert loaded["sandbox"]["temp_root"] == ""
    assert temp_root_from(loaded) is None


def test_loader_is_deterministic_for_same_inputs(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    env = {"PLAYGROUND_SANDBOX_ENGINE": "podman", "PLAYGROUND_OBSERVABILITY_LOG_LEVEL": "DEBUG"}
    cli = {"sandbox.memory_limit": "200m"}

    first = load_config(config_path, environ=env, cli_overrides=cli)
    second = load_config(config_path, environ=env, cli_overrides=cli)

    assert _sha256_json(first) == _sha256_json(second)
    assert first["sandbox"]["engine"] == "podman"


def test_dump_effective_config_is_sorted_json(tmp_path: Path) -> None:
    config_path = tmp_path / "playground.toml"
    _write_config(config_path, "")

    dumped = dump_effective_config(load_config(config_path, environ={}))
    parsed = json.loads(dumped)

    assert list(parsed) == sorted(parsed)
    assert parsed["meta"]["schema_version"] == 1
