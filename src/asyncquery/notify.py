"""Notification batching."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

T = TypeVar("T")
P = ParamSpec("P")

NotifyCallback = Callable[[], None]
NotifyFunction = Callable[[NotifyCallback], None]
BatchNotifyFunction = Callable[[NotifyCallback], None]


def _call(callback: NotifyCallback) -> None:
    callback()


def _schedule_soon(callback: Callable[[], None]) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Outside of a loop there is no later tick to defer to.
        callback()
        return
    loop.call_soon(callback)


class NotifyManager:
    """Collects notifications so bulk operations flush once.

    Every state write happens inside :meth:`batch`; callbacks scheduled while
    a batch is open are queued and handed over together, on the next loop
    iteration, once the outermost batch closes.

    Usage:
        manager = NotifyManager()
        manager.batch(lambda: (query.invalidate(), other.invalidate()))
    """

    def __init__(self) -> None:
        self._queue: list[NotifyCallback] = []
        self._transactions = 0
        self._notify_fn: NotifyFunction = _call
        self._batch_notify_fn: BatchNotifyFunction = _call

    @property
    def is_batching(self) -> bool:
        return self._transactions > 0

    def batch(self, callback: Callable[[], T]) -> T:
        """Run ``callback`` with notifications held back until it returns."""
        self._transactions += 1
        try:
            return callback()
        finally:
            self._transactions -= 1
            if not self._transactions:
                self.flush()

    def schedule(self, callback: NotifyCallback) -> None:
        if self._transactions:
            self._queue.append(callback)
        else:
            _schedule_soon(lambda: self._notify_fn(callback))

    def batch_calls(self, callback: Callable[P, Any]) -> Callable[P, None]:
        """Wrap ``callback`` so that every call goes through :meth:`schedule`."""

        @wraps(callback)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> None:
            self.schedule(lambda: callback(*args, **kwargs))

        return wrapper

    def flush(self) -> None:
        queue, self._queue = self._queue, []
        if not queue:
            return

        def run_queue() -> None:
            for callback in queue:
                self._notify_fn(callback)

        _schedule_soon(lambda: self._batch_notify_fn(run_queue))

    def set_notify_function(self, fn: NotifyFunction) -> None:
        """Set the function every single notification is run through."""
        self._notify_fn = fn

    def set_batch_notify_function(self, fn: BatchNotifyFunction) -> None:
        """Set the function a whole flushed batch is run through.

        A UI layer can use this to merge notifications into one render pass.
        """
        self._batch_notify_fn = fn


def create_notify_manager() -> NotifyManager:
    """Create a notify manager with the default (immediate) notify functions."""
    return NotifyManager()


__all__ = ["NotifyManager", "create_notify_manager"]
