"""Retry engine shared by queries and mutations."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from asyncquery.duration import parse_duration
from asyncquery.errors import FetchCancelledError
from asyncquery.logger import get_logger
from asyncquery.signals import FocusManager, OnlineManager
from asyncquery.types import RetryDelayValue, RetryValue
from asyncquery.utils import functional_update, mark_retrieved, maybe_await

T = TypeVar("T")

DEFAULT_RETRY = 3


@runtime_checkable
class Cancelable(Protocol):
    """A unit of work whose transport can be aborted."""

    def cancel(self) -> Any: ...


def default_retry_delay(failure_count: int) -> float:
    return min(1000 * 2**failure_count, 30000)


async def _raise(error: Exception) -> Any:
    raise error


def _wake(future: asyncio.Future[None] | None) -> None:
    if future is not None and not future.done():
        future.set_result(None)


class Retryer(Generic[T]):
    """Run ``fn`` until it succeeds, retrying failures per policy.

    The first attempt starts synchronously from the constructor; the outcome
    is exposed as :attr:`future`. Between attempts the retryer pauses while
    the focus or online manager reports false, without counting the pause as
    a failure.
    """

    def __init__(
        self,
        fn: Callable[[], Any],
        *,
        retry: RetryValue | None = None,
        retry_delay: RetryDelayValue | None = None,
        on_success: Callable[[T], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        on_fail: Callable[[int, Exception], Any] | None = None,
        on_pause: Callable[[], Any] | None = None,
        on_continue: Callable[[], Any] | None = None,
        focus_manager: FocusManager | None = None,
        online_manager: OnlineManager | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        self._fn = fn
        self._retry = retry
        self._retry_delay = retry_delay
        self._on_success = on_success
        self._on_error = on_error
        self._on_fail = on_fail
        self._on_pause = on_pause
        self._on_continue = on_continue
        self._focus_manager = focus_manager or FocusManager()
        self._online_manager = online_manager or OnlineManager()

        self.failure_count = 0
        self.is_paused = False
        self.is_resolved = False
        self.is_transport_cancelable = False
        self._is_retry_cancelled = False
        self._attempt: Any = None
        self._sleeping: asyncio.Future[None] | None = None
        self._continue: asyncio.Future[None] | None = None

        self.future: asyncio.Future[T] = loop.create_future()
        mark_retrieved(self.future)
        self._task = loop.create_task(self._run(self._start_attempt()))

    def cancel(self, *, revert: bool = False, silent: bool = False) -> None:
        """Reject the future with a cancellation and abort the transport."""
        if self.is_resolved:
            return
        self._reject(FetchCancelledError(revert=revert, silent=silent))
        if isinstance(self._attempt, Cancelable):
            with suppress(Exception):
                self._attempt.cancel()

    def cancel_retry(self) -> None:
        """Stop scheduling attempts; a pending attempt may still resolve."""
        self._is_retry_cancelled = True

    def proceed(self) -> None:
        """Continue immediately if paused."""
        _wake(self._continue)

    def _start_attempt(self) -> Any:
        try:
            attempt = self._fn()
        except Exception as error:
            attempt = _raise(error)
        self._attempt = attempt
        self.is_transport_cancelable = isinstance(attempt, Cancelable)
        return attempt

    async def _run(self, attempt: Any) -> None:
        while True:
            try:
                value = await maybe_await(attempt)
            except asyncio.CancelledError:
                if not self.is_resolved:
                    self._reject(FetchCancelledError())
                raise
            except Exception as error:
                if self.is_resolved:
                    return
                if not await self._schedule_retry(error):
                    return
                attempt = self._start_attempt()
            else:
                self._resolve(value)
                return

    async def _schedule_retry(self, error: Exception) -> bool:
        retry = DEFAULT_RETRY if self._retry is None else self._retry
        retry_delay = (
            default_retry_delay if self._retry_delay is None else self._retry_delay
        )

        if isinstance(retry, bool):
            should_retry = retry
        elif isinstance(retry, (int, float)):
            should_retry = self.failure_count < retry
        else:
            should_retry = bool(retry(self.failure_count, error))

        if self._is_retry_cancelled or not should_retry:
            self._reject(error)
            return False

        delay = parse_duration(functional_update(retry_delay, self.failure_count) or 0)
        self.failure_count += 1
        get_logger().debug(
            "Attempt %d failed, retrying in %sms: %r", self.failure_count, delay, error
        )
        if self._on_fail is not None:
            self._on_fail(self.failure_count, error)

        await self._sleep(delay)
        if not self._focus_manager.is_focused() or not self._online_manager.is_online():
            await self._pause()

        if self.is_resolved:
            return False
        if self._is_retry_cancelled:
            self._reject(error)
            return False
        return True

    async def _sleep(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._sleeping = loop.create_future()
        handle = loop.call_later(delay / 1000, _wake, self._sleeping)
        try:
            await self._sleeping
        finally:
            handle.cancel()
            self._sleeping = None

    async def _pause(self) -> None:
        if self.is_resolved:
            return
        self._continue = asyncio.get_running_loop().create_future()
        self.is_paused = True
        get_logger().debug("Retry paused until focused and online")
        if self._on_pause is not None:
            self._on_pause()
        unsubscribe_focus = self._focus_manager.subscribe(self._on_signal)
        unsubscribe_online = self._online_manager.subscribe(self._on_signal)
        try:
            await self._continue
        finally:
            unsubscribe_focus()
            unsubscribe_online()
            self._continue = None
            self.is_paused = False
        if not self.is_resolved and self._on_continue is not None:
            self._on_continue()

    def _on_signal(self) -> None:
        if self._focus_manager.is_focused() and self._online_manager.is_online():
            self.proceed()

    def _resolve(self, value: T) -> None:
        if self.is_resolved:
            return
        self.is_resolved = True
        try:
            if self._on_success is not None:
                self._on_success(value)
        finally:
            self._wake_all()
            if not self.future.done():
                self.future.set_result(value)

    def _reject(self, error: Exception) -> None:
        if self.is_resolved:
            return
        self.is_resolved = True
        try:
            if self._on_error is not None:
                self._on_error(error)
        finally:
            self._wake_all()
            if not self.future.done():
                self.future.set_exception(error)

    def _wake_all(self) -> None:
        _wake(self._sleeping)
        _wake(self._continue)


__all__ = ["Cancelable", "Retryer", "default_retry_delay"]
