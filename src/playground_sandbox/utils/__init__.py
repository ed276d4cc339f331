"""Utility exports for async cancellation helpers."""

from playground_sandbox.utils.concurrency import CancellationToken, await_cancellable

__all__ = ["CancellationToken", "await_cancellable"]
