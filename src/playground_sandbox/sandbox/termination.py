"""Advisory classification of how a sandboxed process ended.

The container engine removes the container on exit (``--rm``), so there is no
structured record of why it stopped. This module combines the exit code with
a few well-known stderr markers; process-limit markers win because a fork
bomb usually ends in a kill as well. The result is a hint for callers and
logs only; it never changes a response's ``success`` flag.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Final

# 128 + SIGKILL when reported through a shell or the engine; -9 when the
# direct child was signalled.
_SIGKILL_EXIT_CODES: Final[frozenset[int]] = frozenset({137, -9})
_KILLED_MARKERS: Final[tuple[str, ...]] = ("Killed",)

# EAGAIN alone also comes from non-blocking I/O, so it only counts next to a
# fork or spawn on the same line.
_PROCESS_LIMIT_LINE: Final[re.Pattern[str]] = re.compile(
    r"cannot fork|\b(?:fork|spawn)\b.*Resource temporarily unavailable",
    re.IGNORECASE,
)


class TerminationKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"
    PROCESS_LIMIT = "process_limit"


def classify_termination(exit_code: int | None, stderr: str) -> TerminationKind:
    """Best-effort label for a finished invocation."""

    if any(_PROCESS_LIMIT_LINE.search(line) for line in stderr.splitlines()):
        return TerminationKind.PROCESS_LIMIT
    if exit_code in _SIGKILL_EXIT_CODES:
        return TerminationKind.KILLED
    if exit_code == 0:
        return TerminationKind.COMPLETED
    if any(marker in stderr for marker in _KILLED_MARKERS):
        return TerminationKind.KILLED
    return TerminationKind.FAILED


__all__ = ["TerminationKind", "classify_termination"]
