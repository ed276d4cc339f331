"""Async cancellation primitives for the sandbox's awaitable boundary."""

from __future__ import annotations

import asyncio
import inspect
import threading
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


class CancellationToken:
    """Thread-safe cancellation flag that notifies registered callbacks once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Run ``callback`` on cancellation (now, if already cancelled).

        Returns a function that unregisters the callback.
        """

        with self._lock:
            fire_now = self._cancelled
            if not fire_now:
                self._callbacks.append(callback)
        if fire_now:
            callback()

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError("operation cancelled")


async def await_cancellable(
    awaitable: Awaitable[T],
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``awaitable`` unless ``cancel_token`` fires first.

    Cancellation cancels the wrapping task and raises ``asyncio.CancelledError``.
    Work already handed to a thread keeps running to completion in that
    thread; only the caller's wait ends.
    """

    if cancel_token is None:
        return await awaitable

    if cancel_token.is_cancelled:
        # A coroutine that is never scheduled must be closed explicitly.
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise asyncio.CancelledError("operation cancelled")

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)
    unregister = cancel_token.on_cancel(lambda: loop.call_soon_threadsafe(task.cancel))
    try:
        return await task
    finally:
        unregister()


__all__ = ["CancellationToken", "await_cancellable"]
