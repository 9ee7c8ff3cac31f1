"""A single cached query: its state machine, fetch deduplication and GC."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from asyncquery.duration import parse_duration, parse_optional_duration
from asyncquery.errors import (
    FetchCancelledError,
    MissingQueryFunctionError,
    is_cancelled_error,
)
from asyncquery.logger import get_logger
from asyncquery.retryer import Retryer
from asyncquery.signals import FocusManager, OnlineManager
from asyncquery.types import (
    Duration,
    FetchContext,
    FetchOptions,
    QueryFunctionContext,
    QueryKey,
    QueryOptions,
    QueryStatus,
    Updater,
)
from asyncquery.utils import (
    ensure_list,
    functional_update,
    is_valid_timeout,
    now_ms,
    replace_equal_deep,
    schedule_later,
    settled,
    time_until_stale,
)

if TYPE_CHECKING:
    from asyncquery.query_cache import QueryCache
    from asyncquery.query_observer import QueryObserver

T = TypeVar("T")

DEFAULT_CACHE_TIME = 5 * 60 * 1000


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """Snapshot of a query. ``data is None`` means no data yet."""

    status: QueryStatus = "idle"
    data: T | None = None
    error: Exception | None = None
    data_updated_at: int = 0
    error_updated_at: int = 0
    data_update_count: int = 0
    error_update_count: int = 0
    is_fetching: bool = False
    is_paused: bool = False
    is_invalidated: bool = False
    fetch_failure_count: int = 0
    fetch_meta: Any = None


@dataclass(frozen=True, slots=True)
class FetchAction:
    meta: Any = None


@dataclass(frozen=True, slots=True)
class SuccessAction:
    data: Any
    data_updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class ErrorAction:
    error: Exception


@dataclass(frozen=True, slots=True)
class FailedAction:
    pass


@dataclass(frozen=True, slots=True)
class PauseAction:
    pass


@dataclass(frozen=True, slots=True)
class ContinueAction:
    pass


@dataclass(frozen=True, slots=True)
class InvalidateAction:
    pass


@dataclass(frozen=True, slots=True)
class SetStateAction:
    state: QueryState[Any]


QueryAction = Union[
    FetchAction,
    SuccessAction,
    ErrorAction,
    FailedAction,
    PauseAction,
    ContinueAction,
    InvalidateAction,
    SetStateAction,
]


def query_reducer(state: QueryState[T], action: QueryAction) -> QueryState[T]:
    """Apply ``action`` to ``state`` and return the new state."""
    if isinstance(action, FailedAction):
        return replace(state, fetch_failure_count=state.fetch_failure_count + 1)
    if isinstance(action, PauseAction):
        return replace(state, is_paused=True)
    if isinstance(action, ContinueAction):
        return replace(state, is_paused=False)
    if isinstance(action, FetchAction):
        return replace(
            state,
            fetch_failure_count=0,
            fetch_meta=action.meta,
            is_fetching=True,
            is_paused=False,
            status="loading" if not state.data_updated_at else state.status,
        )
    if isinstance(action, SuccessAction):
        return replace(
            state,
            data=action.data,
            data_update_count=state.data_update_count + 1,
            data_updated_at=(
                action.data_updated_at
                if action.data_updated_at is not None
                else now_ms()
            ),
            error=None,
            fetch_failure_count=0,
            is_fetching=False,
            is_invalidated=False,
            is_paused=False,
            status="success",
        )
    if isinstance(action, ErrorAction):
        error = action.error
        if isinstance(error, FetchCancelledError) and error.revert:
            previous_status: QueryStatus
            if not state.data_updated_at and not state.error_updated_at:
                previous_status = "idle"
            elif state.data_updated_at > state.error_updated_at:
                previous_status = "success"
            else:
                previous_status = "error"
            return replace(
                state,
                fetch_failure_count=0,
                is_fetching=False,
                is_paused=False,
                status=previous_status,
            )
        return replace(
            state,
            error=error,
            error_update_count=state.error_update_count + 1,
            error_updated_at=now_ms(),
            fetch_failure_count=state.fetch_failure_count + 1,
            is_fetching=False,
            is_paused=False,
            status="error",
        )
    if isinstance(action, InvalidateAction):
        return replace(state, is_invalidated=True)
    if isinstance(action, SetStateAction):
        return action.state
    raise TypeError(f"Unknown query action: {action!r}")


def _default_state(options: QueryOptions) -> QueryState[Any]:
    initial_data = options.initial_data
    data = initial_data() if callable(initial_data) else initial_data
    if data is None:
        return QueryState()

    updated_at = options.initial_data_updated_at
    if callable(updated_at):
        updated_at = updated_at()
    return QueryState(
        data=data,
        data_updated_at=updated_at if updated_at is not None else now_ms(),
        status="success",
    )


class Query(Generic[T]):
    """One cache entry per query hash.

    Owns the state, the in-flight fetch (at most one), the attached observers
    and the garbage collection timer. State only changes through
    :meth:`_dispatch`, which notifies observers and the cache inside one
    notification batch.
    """

    def __init__(
        self,
        *,
        cache: QueryCache,
        query_key: QueryKey,
        query_hash: str,
        options: QueryOptions,
        default_options: QueryOptions | None = None,
        state: QueryState[T] | None = None,
        focus_manager: FocusManager | None = None,
        online_manager: OnlineManager | None = None,
    ) -> None:
        self.cache = cache
        self.query_key = query_key
        self.query_hash = query_hash
        self.cache_time: float = 0
        self.options = QueryOptions()
        self.observers: list[QueryObserver[Any]] = []
        self._default_options = default_options
        self._focus_manager = focus_manager or FocusManager()
        self._online_manager = online_manager or OnlineManager()
        self._retryer: Retryer[T] | None = None
        self._future: asyncio.Future[T] | None = None
        self._gc_handle: asyncio.TimerHandle | None = None

        self._set_options(options)
        self.initial_state: QueryState[T] = state or _default_state(self.options)
        self.state: QueryState[T] = self.initial_state
        self._schedule_gc()

    def __repr__(self) -> str:
        return f"Query({self.query_hash}, status={self.state.status!r})"

    def set_default_options(self, options: QueryOptions | None) -> None:
        self._default_options = options

    def set_data(self, updater: Updater[T], updated_at: int | None = None) -> T:
        """Write data as if a fetch had succeeded.

        ``updater`` is a value or a function of the previous data.
        """
        prev_data = self.state.data
        data = functional_update(updater, prev_data)

        if self.options.is_data_equal is not None and self.options.is_data_equal(
            prev_data, data
        ):
            data = prev_data
        elif self.options.structural_sharing is not False:
            data = replace_equal_deep(prev_data, data)

        self._dispatch(SuccessAction(data=data, data_updated_at=updated_at))
        return data

    def set_state(self, state: QueryState[T]) -> None:
        self._dispatch(SetStateAction(state=state))

    def cancel(
        self, *, revert: bool = False, silent: bool = False
    ) -> asyncio.Future[None]:
        """Cancel the in-flight fetch; the returned future never raises."""
        if self._retryer is not None:
            self._retryer.cancel(revert=revert, silent=silent)
        return settled(self._future)

    def destroy(self) -> None:
        self._clear_gc_timeout()
        self.cancel(silent=True)

    def reset(self) -> None:
        self.destroy()
        self.set_state(self.initial_state)

    def is_active(self) -> bool:
        return any(observer.options.enabled is not False for observer in self.observers)

    def is_fetching(self) -> bool:
        return self.state.is_fetching

    def is_stale(self) -> bool:
        return (
            self.state.is_invalidated
            or not self.state.data_updated_at
            or any(observer.is_stale() for observer in self.observers)
        )

    def is_stale_by_time(self, stale_time: Duration | None = None) -> bool:
        return (
            self.state.is_invalidated
            or not self.state.data_updated_at
            or not time_until_stale(
                self.state.data_updated_at, parse_optional_duration(stale_time)
            )
        )

    def on_focus(self) -> None:
        observer = next(
            (x for x in self.observers if x.will_fetch_on_window_focus()), None
        )
        if observer is not None:
            observer.execute_fetch()
        if self._retryer is not None:
            self._retryer.proceed()

    def on_online(self) -> None:
        observer = next(
            (x for x in self.observers if x.will_fetch_on_reconnect()), None
        )
        if observer is not None:
            observer.execute_fetch()
        if self._retryer is not None:
            self._retryer.proceed()

    def add_observer(self, observer: QueryObserver[Any]) -> None:
        if observer in self.observers:
            return
        self.observers.append(observer)
        self._clear_gc_timeout()
        self.cache.notify(self)

    def remove_observer(self, observer: QueryObserver[Any]) -> None:
        if observer not in self.observers:
            return
        self.observers = [x for x in self.observers if x is not observer]

        if not self.observers:
            # Without transport cancellation the attempt runs on so its
            # result still lands in the cache.
            if self._retryer is not None:
                if self._retryer.is_transport_cancelable:
                    self._retryer.cancel()
                else:
                    self._retryer.cancel_retry()

            if self.cache_time:
                self._schedule_gc()
            else:
                self.cache.remove(self)

        self.cache.notify(self)

    def invalidate(self) -> None:
        if not self.state.is_invalidated:
            self._dispatch(InvalidateAction())

    def fetch(
        self,
        options: QueryOptions | None = None,
        fetch_options: FetchOptions | None = None,
    ) -> asyncio.Future[T]:
        """Fetch the query, sharing the in-flight fetch if there is one."""
        if self.state.is_fetching:
            cancel_refetch = fetch_options is not None and fetch_options.cancel_refetch
            if self.state.data_updated_at and cancel_refetch:
                self.cancel(silent=True)
            elif self._future is not None:
                return self._future

        if options is not None:
            self._set_options(options)

        # Hydrated queries and queries created by set_query_data have no
        # query_fn of their own.
        if self.options.query_fn is None:
            observer = next((x for x in self.observers if x.options.query_fn), None)
            if observer is not None:
                self._set_options(observer.options)

        query_key = ensure_list(self.query_key)
        query_fn = self.options.query_fn

        def fetch_fn() -> Any:
            if query_fn is None:
                raise MissingQueryFunctionError(self.query_hash)
            return query_fn(QueryFunctionContext(query_key=query_key))

        context = FetchContext(
            fetch_fn=fetch_fn,
            fetch_options=fetch_options,
            options=self.options,
            query_key=query_key,
            state=self.state,
        )
        if self.options.behavior is not None:
            self.options.behavior.on_fetch(context)

        meta = fetch_options.meta if fetch_options is not None else None
        if not self.state.is_fetching or self.state.fetch_meta != meta:
            self._dispatch(FetchAction(meta=meta))

        self._retryer = Retryer(
            context.fetch_fn,
            retry=context.options.retry,
            retry_delay=context.options.retry_delay,
            on_success=self._on_fetch_success,
            on_error=self._on_fetch_error,
            on_fail=lambda failure_count, error: self._dispatch(FailedAction()),
            on_pause=lambda: self._dispatch(PauseAction()),
            on_continue=lambda: self._dispatch(ContinueAction()),
            focus_manager=self._focus_manager,
            online_manager=self._online_manager,
        )
        self._future = self._retryer.future
        return self._future

    def _on_fetch_success(self, data: T) -> None:
        self.set_data(data)
        if self.cache_time == 0:
            self._optional_remove()

    def _on_fetch_error(self, error: Exception) -> None:
        if not (isinstance(error, FetchCancelledError) and error.silent):
            self._dispatch(ErrorAction(error=error))

        if not is_cancelled_error(error):
            if self.cache.on_error is not None:
                self.cache.on_error(error, self)
            get_logger().error(
                "Query %s failed: %r", self.query_hash, error, exc_info=error
            )

        if self.cache_time == 0:
            self._optional_remove()

    def _set_options(self, options: QueryOptions) -> None:
        if self._default_options is not None:
            options = replace(
                self._default_options.merged(options), defaulted=options.defaulted
            )
        self.options = options
        cache_time = (
            DEFAULT_CACHE_TIME if options.cache_time is None else options.cache_time
        )
        self.cache_time = max(self.cache_time, parse_duration(cache_time))

    def _schedule_gc(self) -> None:
        self._clear_gc_timeout()
        if is_valid_timeout(self.cache_time):
            self._gc_handle = schedule_later(self.cache_time, self._optional_remove)

    def _clear_gc_timeout(self) -> None:
        if self._gc_handle is not None:
            self._gc_handle.cancel()
            self._gc_handle = None

    def _optional_remove(self) -> None:
        if not self.observers and not self.state.is_fetching:
            get_logger().debug("Removing unused query %s", self.query_hash)
            self.cache.remove(self)

    def _dispatch(self, action: QueryAction) -> None:
        self.state = query_reducer(self.state, action)

        def notify() -> None:
            for observer in list(self.observers):
                observer.on_query_update(action)
            self.cache.notify(self)

        self.cache.notify_manager.batch(notify)


__all__ = [
    "ContinueAction",
    "DEFAULT_CACHE_TIME",
    "ErrorAction",
    "FailedAction",
    "FetchAction",
    "InvalidateAction",
    "PauseAction",
    "Query",
    "QueryAction",
    "QueryState",
    "SetStateAction",
    "SuccessAction",
    "query_reducer",
]
