"""Stable constants shared by the sandbox, config, and CLI layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema version for ``playground.toml``.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Fixed in-sandbox layout. The images expect a cargo project at SANDBOX_WORKDIR.
SANDBOX_WORKDIR: Final[PurePosixPath] = PurePosixPath("/playground")
SANDBOX_SOURCE_PATH: Final[PurePosixPath] = SANDBOX_WORKDIR / "src" / "main.rs"
SANDBOX_OUTPUT_DIR: Final[PurePosixPath] = PurePosixPath("/playground-result")
SANDBOX_ARTIFACT_STEM: Final[PurePosixPath] = SANDBOX_OUTPUT_DIR / "compilation"

# Consumed by the timeout wrapper inside the images.
TIMEOUT_ENV_VAR: Final[str] = "PLAYGROUND_TIMEOUT"

# Isolation defaults.
DEFAULT_ENGINE: Final[str] = "docker"
DEFAULT_MEMORY_LIMIT: Final[str] = "256m"
DEFAULT_MEMORY_SWAP_LIMIT: Final[str] = "320m"
DEFAULT_TIMEOUT_SECONDS: Final[int] = 10
DEFAULT_PIDS_LIMIT: Final[int] = 512
DEFAULT_EXTRA_ENV: Final[dict[str, str]] = {"RUST_BACKTRACE": "1"}

# Auxiliary tool images.
FORMAT_IMAGE: Final[str] = "rustfmt"
LINT_IMAGE: Final[str] = "clippy"

# Host-side workspace naming.
WORKSPACE_SOURCE_PREFIX: Final[str] = "playground-src-"
WORKSPACE_SOURCE_SUFFIX: Final[str] = ".rs"
WORKSPACE_OUTPUT_PREFIX: Final[str] = "playground-out-"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ENGINE",
    "DEFAULT_EXTRA_ENV",
    "DEFAULT_MEMORY_LIMIT",
    "DEFAULT_MEMORY_SWAP_LIMIT",
    "DEFAULT_PIDS_LIMIT",
    "DEFAULT_TIMEOUT_SECONDS",
    "FORMAT_IMAGE",
    "LINT_IMAGE",
    "SANDBOX_ARTIFACT_STEM",
    "SANDBOX_OUTPUT_DIR",
    "SANDBOX_SOURCE_PATH",
    "SANDBOX_WORKDIR",
    "TIMEOUT_ENV_VAR",
    "WORKSPACE_OUTPUT_PREFIX",
    "WORKSPACE_SOURCE_PREFIX",
    "WORKSPACE_SOURCE_SUFFIX",
]
