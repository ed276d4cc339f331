"""
playground-sandbox: runtime config loader.

Purpose
- Layer defaults, ``playground.toml``, a profile, ``PLAYGROUND_`` env vars and CLI overrides.
- Precedence: CLI > env > profile overlay > file > defaults.
- Build the ``IsolationConfig`` the sandbox sessions run with.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from playground_sandbox.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from playground_sandbox.sandbox.command_builder import IsolationConfig

DEFAULT_CONFIG_FILE: Final[str] = "playground.toml"
ENV_PREFIX: Final[str] = "PLAYGROUND_"
PROFILE_ENV_VAR: Final[str] = f"{ENV_PREFIX}PROFILE"

# Sections whose scalar fields can be overridden from the environment.
_ENV_SECTIONS: Final[tuple[str, ...]] = ("sandbox", "observability")
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the effective config.

    ``config_path`` defaults to ``./playground.toml``; a missing default file
    is fine, a missing explicit one raises ``ConfigLoadError``. ``environ``
    defaults to ``os.environ``. Relative paths in the result are resolved
    against the config file's directory.
    """

    path = _config_file(config_path)
    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    selected = _selected_profile(profile, overrides, env)

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    if selected is not None:
        config = apply_profile_overlay(config, selected)
    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _cli_layer(overrides))
    config = assert_valid_config(config, active_profile=selected)
    return assert_valid_config(_resolve_paths(config, path.parent), active_profile=selected)


def isolation_config_from(config: Mapping[str, Any]) -> IsolationConfig:
    """Translate the validated ``sandbox`` section into an ``IsolationConfig``."""

    sandbox = config["sandbox"]
    return IsolationConfig(
        engine=sandbox["engine"],
        memory_limit=sandbox["memory_limit"],
        memory_swap_limit=sandbox["memory_swap_limit"],
        timeout_seconds=sandbox["timeout_seconds"],
        pids_limit=sandbox["pids_limit"] if sandbox["pids_limit_enabled"] else None,
        extra_env=sandbox["extra_env"],
    )


def temp_root_from(config: Mapping[str, Any]) -> Path | None:
    """Return the configured workspace root, or ``None`` for the platform default."""

    raw = config["sandbox"].get("temp_root", "")
    return Path(raw) if raw else None


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(redact_config(config), sort_keys=True, indent=2, ensure_ascii=False)


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _selected_profile(
    profile: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    if profile is not None:
        raw: object = profile
    elif "profile" in cli_overrides:
        raw = cli_overrides["profile"]
        if not isinstance(raw, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
    else:
        raw = environ.get(PROFILE_ENV_VAR, "")
    selected = str(raw).strip()
    return selected or None


def _env_layer(config: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``PLAYGROUND_<SECTION>_<KEY>`` overrides, typed like the current value.

    Only scalar fields are reachable; ``extra_env`` and profile tables are
    edited in the config file.
    """

    layer: dict[str, Any] = {}
    for section in _ENV_SECTIONS:
        for key, current in sorted(config[section].items()):
            if isinstance(current, Mapping):
                continue
            env_name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
            if env_name in environ:
                value = _coerce(environ[env_name], current, env_name)
                layer.setdefault(section, {})[key] = value
    return layer


def _coerce(raw: str, current: object, env_name: str) -> object:
    text = raw.strip()
    if isinstance(current, bool):
        lowered = text.lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
        raise ConfigLoadError(f"{env_name} must be a boolean (true/false/1/0/yes/no/on/off)")
    if isinstance(current, int):
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} must be an integer") from exc
    return text


def _cli_layer(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(cli_overrides.items()):
        if dotted == "profile":
            continue
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        node = layer
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
    return layer


def _resolve_paths(config: Mapping[str, Any], base_dir: Path) -> dict[str, Any]:
    resolved = merge_config({}, config)
    tables: list[dict[str, Any]] = [resolved]
    tables.extend(
        overlay for overlay in resolved.get("profiles", {}).values() if isinstance(overlay, dict)
    )
    for table in tables:
        for section, key in PATH_FIELDS:
            value = table.get(section, {}).get(key)
            # Empty temp_root keeps meaning "platform default".
            if isinstance(value, str) and value:
                table[section][key] = _absolute(value, base_dir)
    return resolved


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV_VAR",
    "dump_effective_config",
    "isolation_config_from",
    "load_config",
    "temp_root_from",
]
