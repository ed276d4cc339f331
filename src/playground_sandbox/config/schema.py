"""
playground-sandbox: configuration schema and validation.

Purpose
- Hold the built-in defaults every other config layer is merged onto.
- Check payloads field by field, reporting every problem with its dotted path.
- Apply named profile overlays (``hardening`` turns on the process-count limit).
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from playground_sandbox.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_ENGINE,
    DEFAULT_EXTRA_ENV,
    DEFAULT_MEMORY_LIMIT,
    DEFAULT_MEMORY_SWAP_LIMIT,
    DEFAULT_PIDS_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    TIMEOUT_ENV_VAR,
)
from playground_sandbox.sandbox.command_builder import parse_byte_size

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("hardening", "permissive")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Relative values are resolved against the directory holding playground.toml.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("sandbox", "temp_root"),
    ("observability", "log_dir"),
)

_ENV_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_PROFILE_NAME = re.compile(r"[a-z][a-z0-9_-]*")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SENSITIVE_KEY = re.compile(
    r"(?:^|_)(?:secret|token|password|passwd|api_?key|credentials?)(?:_|$)"
)
_REDACTED: Final[str] = "<redacted>"


class MetaConfig(TypedDict):
    schema_version: int


class SandboxConfig(TypedDict):
    engine: str
    memory_limit: str
    memory_swap_limit: str
    timeout_seconds: int
    pids_limit_enabled: bool
    pids_limit: int
    temp_root: str
    extra_env: dict[str, str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_console: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    sandbox: dict[str, object]
    observability: dict[str, object]


class PlaygroundConfig(TypedDict):
    meta: MetaConfig
    sandbox: SandboxConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[PlaygroundConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "sandbox": {
        "engine": DEFAULT_ENGINE,
        "memory_limit": DEFAULT_MEMORY_LIMIT,
        "memory_swap_limit": DEFAULT_MEMORY_SWAP_LIMIT,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
        "pids_limit_enabled": False,
        "pids_limit": DEFAULT_PIDS_LIMIT,
        # Empty means the platform temp directory.
        "temp_root": "",
        "extra_env": dict(DEFAULT_EXTRA_ENV),
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_console": False,
        "redact_secrets": True,
    },
    "profiles": {
        "hardening": {"sandbox": {"pids_limit_enabled": True}},
        "permissive": {},
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation outcome; ``config`` is only set when there were no issues."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _Rejected(Exception):
    """A field value failed its check; ``problems`` pairs a sub-key with a message."""

    def __init__(self, *problems: tuple[str, str]) -> None:
        super().__init__(problems)
        self.problems = problems


def _fail(message: str) -> _Rejected:
    return _Rejected(("", message))


def _type_name(value: object) -> str:
    return type(value).__name__


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _fail(f"expected string, got {_type_name(value)}")
    stripped = value.strip()
    if not stripped:
        raise _fail("must not be empty")
    return stripped


def _location(*, allow_empty: bool) -> Callable[[object], str]:
    def check(value: object) -> str:
        if not isinstance(value, str):
            raise _fail(f"expected string, got {_type_name(value)}")
        if "\x00" in value:
            raise _fail("must not contain NUL bytes")
        stripped = value.strip()
        if not stripped and not allow_empty:
            raise _fail("must not be empty")
        return stripped

    return check


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _fail(f"expected boolean, got {_type_name(value)}")
    return value


def _positive_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _fail(f"expected integer, got {_type_name(value)}")
    if value < 1:
        raise _fail("must be >= 1")
    return value


def _byte_size(value: object) -> str:
    text = _text(value)
    try:
        parse_byte_size(text, "byte size")
    except ValueError as exc:
        raise _fail(str(exc)) from exc
    return text.lower()


def _log_level(value: object) -> str:
    level = _text(value)
    if level not in LOG_LEVELS:
        raise _fail(f"invalid value {level!r}; expected one of: {', '.join(sorted(LOG_LEVELS))}")
    return level


def _schema_version(value: object) -> int:
    version = _positive_int(value)
    if version != ConfigSchemaVersion:
        raise _fail(migration_guidance(version))
    return version


def _env_table(value: object) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise _fail(f"expected object, got {_type_name(value)}")
    table: dict[str, str] = {}
    problems: list[tuple[str, str]] = []
    for name, item in value.items():
        if not isinstance(name, str) or not _ENV_NAME.fullmatch(name):
            problems.append((str(name), "must be an env var name (example: RUST_BACKTRACE)"))
        elif name == TIMEOUT_ENV_VAR:
            problems.append((name, f"{TIMEOUT_ENV_VAR} is set from sandbox.timeout_seconds"))
        elif not isinstance(item, str):
            problems.append((name, f"expected string, got {_type_name(item)}"))
        else:
            table[name] = item
    if problems:
        raise _Rejected(*sorted(problems))
    return dict(sorted(table.items()))


_SECTION_FIELDS: Final[dict[str, dict[str, Callable[[object], Any]]]] = {
    "meta": {"schema_version": _schema_version},
    "sandbox": {
        "engine": _text,
        "memory_limit": _byte_size,
        "memory_swap_limit": _byte_size,
        "timeout_seconds": _positive_int,
        "pids_limit_enabled": _flag,
        "pids_limit": _positive_int,
        "temp_root": _location(allow_empty=True),
        "extra_env": _env_table,
    },
    "observability": {
        "log_level": _log_level,
        "log_dir": _location(allow_empty=False),
        "log_to_console": _flag,
        "redact_secrets": _flag,
    },
}
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = ("sandbox", "observability")


def default_config() -> PlaygroundConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade playground.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the playground-sandbox runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` without touching either input.

    Nested tables merge key by key; any other value in ``overlay`` replaces
    the one in ``base``. Keys come out sorted.
    """

    merged = _copy_value(base)
    for key, value in sorted(overlay.items()):
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = _copy_value(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and validate the result."""

    selected = (profile or "").strip()
    if not selected:
        return _copy_value(config)

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate a full config payload.

    When ``active_profile`` is given the merged result of that profile is
    checked too, so cross-field rules (memory ordering) see the values the
    profile actually produces.
    """

    issues: list[ConfigValidationIssue] = []
    normalized = _check_root(config, issues)

    selected = (active_profile or "").strip()
    if selected and not issues:
        overlay = normalized.get("profiles", {}).get(selected)
        if overlay is None:
            issues.append(ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"))
        else:
            _check_root(merge_config(normalized, overlay), issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a copy with values under secret-looking keys masked."""

    if not isinstance(config, Mapping):
        return {}
    return {key: _redact(key, value) for key, value in sorted(config.items())}


def _check_root(payload: object, issues: list[ConfigValidationIssue]) -> dict[str, Any]:
    root = _as_table(payload, "<root>", issues)
    if root is None:
        return {}

    normalized: dict[str, Any] = {}
    for key in sorted(root):
        if key not in _SECTION_FIELDS and key != "profiles":
            issues.append(ConfigValidationIssue(key, "unknown field"))
    for section, fields in _SECTION_FIELDS.items():
        if section not in root:
            issues.append(ConfigValidationIssue(section, "missing required field"))
            continue
        table = _as_table(root[section], section, issues)
        if table is not None:
            normalized[section] = _check_section(table, fields, section, issues, partial=False)

    if "sandbox" in normalized:
        _check_memory_order(normalized["sandbox"], "sandbox", issues)
    if "profiles" in root:
        profiles = _as_table(root["profiles"], "profiles", issues)
        if profiles is not None:
            normalized["profiles"] = _check_profiles(profiles, issues)
    return normalized


def _check_section(
    table: Mapping[str, object],
    fields: Mapping[str, Callable[[object], Any]],
    path: str,
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(table):
        if key not in fields:
            issues.append(ConfigValidationIssue(f"{path}.{key}", "unknown field"))
    for key, check in sorted(fields.items()):
        if key not in table:
            if not partial:
                issues.append(ConfigValidationIssue(f"{path}.{key}", "missing required field"))
            continue
        try:
            out[key] = check(table[key])
        except _Rejected as rejected:
            for sub_key, message in rejected.problems:
                field_path = f"{path}.{key}.{sub_key}" if sub_key else f"{path}.{key}"
                issues.append(ConfigValidationIssue(field_path, message))
    return out


def _check_memory_order(
    sandbox: Mapping[str, Any], path: str, issues: list[ConfigValidationIssue]
) -> None:
    if "memory_limit" not in sandbox or "memory_swap_limit" not in sandbox:
        return
    memory = parse_byte_size(sandbox["memory_limit"], "memory_limit")
    memory_swap = parse_byte_size(sandbox["memory_swap_limit"], "memory_swap_limit")
    if memory_swap <= memory:
        issues.append(
            ConfigValidationIssue(
                f"{path}.memory_swap_limit", "must be greater than sandbox.memory_limit"
            )
        )


def _check_profiles(
    profiles: Mapping[str, object], issues: list[ConfigValidationIssue]
) -> dict[str, Any]:
    checked: dict[str, Any] = {}
    for name in sorted(profiles):
        profile_path = f"profiles.{name}"
        if not _PROFILE_NAME.fullmatch(name):
            issues.append(
                ConfigValidationIssue(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            )
            continue
        profile = _as_table(profiles[name], profile_path, issues)
        if profile is None:
            continue
        overlay: dict[str, Any] = {}
        for section in sorted(profile):
            section_path = f"{profile_path}.{section}"
            if section not in _OVERLAY_SECTIONS:
                issues.append(ConfigValidationIssue(section_path, "unknown field"))
                continue
            table = _as_table(profile[section], section_path, issues)
            if table is not None:
                overlay[section] = _check_section(
                    table, _SECTION_FIELDS[section], section_path, issues, partial=True
                )
        checked[name] = overlay
    return checked


def _as_table(
    value: object, path: str, issues: list[ConfigValidationIssue]
) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {_type_name(value)}"))
        return None
    table: dict[str, object] = {}
    for key, item in value.items():
        if isinstance(key, str):
            table[key] = item
        else:
            issues.append(
                ConfigValidationIssue(path, f"object key must be string, got {_type_name(key)}")
            )
    return table


def _copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy_value(item) for key, item in sorted(value.items())}
    return copy.deepcopy(value)


def _redact(key: str, value: object) -> object:
    if isinstance(value, Mapping):
        return redact_config(value)
    if _SENSITIVE_KEY.search(_NON_ALNUM.sub("_", key.lower())):
        return _REDACTED
    if isinstance(value, (list, tuple)):
        return [_redact(key, item) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "PlaygroundConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
