"""Ephemeral host-side input/output footprint for one sandbox session."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from playground_sandbox.constants import (
    WORKSPACE_OUTPUT_PREFIX,
    WORKSPACE_SOURCE_PREFIX,
    WORKSPACE_SOURCE_SUFFIX,
)
from playground_sandbox.sandbox.errors import ResourceError, SourceWriteError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

# The container user is not the host user; it needs to read the source and
# traverse the output directory.
INPUT_FILE_MODE = 0o644
OUTPUT_DIR_MODE = 0o755


class Workspace:
    """One input file plus one output directory, removed on ``close()``.

    Paths come from ``tempfile`` so two live workspaces never share a name.
    Use as a context manager to guarantee release on both success and failure.
    """

    def __init__(self, input_file: Path, output_dir: Path) -> None:
        self._input_file = input_file
        self._output_dir = output_dir
        self._closed = False

    @classmethod
    def open(cls, temp_root: Path | str | None = None) -> Workspace:
        """Create a fresh workspace, raising ``ResourceError`` on failure."""

        root = None if temp_root is None else str(temp_root)
        try:
            fd, input_name = tempfile.mkstemp(
                prefix=WORKSPACE_SOURCE_PREFIX,
                suffix=WORKSPACE_SOURCE_SUFFIX,
                dir=root,
            )
        except OSError as exc:
            raise ResourceError("unable to create source file", path=temp_root) from exc

        input_file = Path(input_name)
        try:
            os.close(fd)
            os.chmod(input_file, INPUT_FILE_MODE)
            output_dir = Path(tempfile.mkdtemp(prefix=WORKSPACE_OUTPUT_PREFIX, dir=root))
        except OSError as exc:
            _remove_path(input_file)
            raise ResourceError("unable to create output directory", path=temp_root) from exc

        try:
            os.chmod(output_dir, OUTPUT_DIR_MODE)
        except OSError as exc:
            _remove_path(input_file)
            _remove_path(output_dir)
            raise ResourceError("unable to prepare output directory", path=output_dir) from exc

        logger.debug(
            "workspace_opened",
            extra={"input_file": str(input_file), "output_dir": str(output_dir)},
        )
        return cls(input_file, output_dir)

    @property
    def input_file(self) -> Path:
        return self._input_file

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def closed(self) -> bool:
        return self._closed

    def write_source(self, code: str) -> int:
        """Write ``code`` as UTF-8 into the input file and return the byte count."""

        if self._closed:
            raise SourceWriteError("workspace is closed", path=self._input_file)
        data = code.encode("utf-8")
        try:
            with self._input_file.open("wb") as handle:
                handle.write(data)
        except OSError as exc:
            raise SourceWriteError("unable to write source file", path=self._input_file) from exc

        logger.debug(
            "source_written",
            extra={"bytes": len(data), "input_file": str(self._input_file)},
        )
        return len(data)

    def reset_output(self) -> None:
        """Empty the output directory so no artifact outlives the call that wrote it."""

        if self._closed:
            raise ResourceError("workspace is closed", path=self._output_dir)
        try:
            children = list(self._output_dir.iterdir())
            for child in children:
                if child.is_symlink() or not child.is_dir():
                    child.unlink(missing_ok=True)
                else:
                    shutil.rmtree(child)
        except OSError as exc:
            raise ResourceError("unable to clear output directory", path=self._output_dir) from exc

    def close(self) -> None:
        """Remove both paths. Safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        _remove_path(self._input_file)
        _remove_path(self._output_dir)
        logger.debug(
            "workspace_closed",
            extra={"input_file": str(self._input_file), "output_dir": str(self._output_dir)},
        )

    def __enter__(self) -> Workspace:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Workspace(input_file={str(self._input_file)!r}, "
            f"output_dir={str(self._output_dir)!r}, closed={self._closed})"
        )


@dataclass(frozen=True, slots=True)
class StaleEntry:
    """One leftover workspace path found by :func:`sweep_stale_workspaces`."""

    path: Path
    age_seconds: float
    removed: bool


def sweep_stale_workspaces(
    temp_root: Path | str | None = None,
    *,
    max_age_seconds: float,
    dry_run: bool = False,
    now: float | None = None,
) -> tuple[StaleEntry, ...]:
    """Remove workspace leftovers older than ``max_age_seconds``.

    Only direct children of ``temp_root`` carrying the workspace prefixes are
    considered. Symlinks are unlinked, never followed.
    """

    if max_age_seconds < 0:
        raise ValueError("max_age_seconds must be >= 0")

    root = Path(tempfile.gettempdir() if temp_root is None else temp_root)
    if not root.is_dir():
        return ()

    current = time.time() if now is None else now
    entries: list[StaleEntry] = []
    for candidate in sorted(root.iterdir(), key=lambda path: path.name):
        if not _is_workspace_name(candidate.name):
            continue
        try:
            mtime = candidate.lstat().st_mtime
        except FileNotFoundError:
            continue
        age = current - mtime
        if age < max_age_seconds:
            continue
        if not dry_run:
            _remove_path(candidate)
        entries.append(StaleEntry(path=candidate, age_seconds=age, removed=not dry_run))
    return tuple(entries)


def _is_workspace_name(name: str) -> bool:
    if name.startswith(WORKSPACE_OUTPUT_PREFIX):
        return True
    return name.startswith(WORKSPACE_SOURCE_PREFIX) and name.endswith(WORKSPACE_SOURCE_SUFFIX)


def _remove_path(path: Path) -> None:
    try:
        if path.is_symlink() or not path.is_dir():
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
            return
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning(
            "workspace_cleanup_failed",
            extra={"path": str(path), "error": str(exc)},
        )


__all__ = [
    "INPUT_FILE_MODE",
    "OUTPUT_DIR_MODE",
    "StaleEntry",
    "Workspace",
    "sweep_stale_workspaces",
]
