"""
playground-sandbox config package public API.

Purpose
- Export config loading/validation entrypoints and public error types.
- Support loading from ``playground.toml`` + ``PLAYGROUND_`` env overrides.
"""

from playground_sandbox.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    PROFILE_ENV_VAR,
    ConfigLoadError,
    dump_effective_config,
    isolation_config_from,
    load_config,
    temp_root_from,
)
from playground_sandbox.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    LOG_LEVELS,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    PlaygroundConfig,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PROFILE_ENV_VAR",
    "PlaygroundConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "isolation_config_from",
    "load_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "temp_root_from",
    "validate_config",
]
