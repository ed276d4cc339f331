"""Typed failures surfaced by sandbox sessions.

Every error records the pipeline ``stage`` it came from and, where one is
involved, the host ``path``. Lower-level exceptions are chained as
``__cause__``. A non-zero exit status of the sandboxed program is not an
error and never appears here.
"""

from __future__ import annotations

from pathlib import Path


class SandboxError(RuntimeError):
    """Base error for sandbox session failures."""

    stage = "sandbox"

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        self.path = None if path is None else Path(path)
        detail = message if self.path is None else f"{message}: {self.path}"
        super().__init__(detail)


class ResourceError(SandboxError):
    """Raised when the workspace file or directory cannot be created."""

    stage = "workspace"


class SourceWriteError(SandboxError):
    """Raised when submitted source cannot be written into the workspace."""

    stage = "write_source"


class InvocationError(SandboxError):
    """Raised when the isolation engine process cannot be started."""

    stage = "invoke"


class ReadError(SandboxError):
    """Raised when an artifact exists but cannot be read."""

    stage = "read_artifact"


class EncodingError(SandboxError):
    """Raised when captured output or an artifact is not valid UTF-8."""

    stage = "decode"


class OutputMissingError(SandboxError):
    """Raised when a required artifact was not produced."""

    stage = "read_artifact"


__all__ = [
    "EncodingError",
    "InvocationError",
    "OutputMissingError",
    "ReadError",
    "ResourceError",
    "SandboxError",
    "SourceWriteError",
]
