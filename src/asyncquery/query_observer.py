"""Per-consumer view over one query."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from asyncquery.duration import parse_optional_duration
from asyncquery.query import ErrorAction, Query, QueryAction, SuccessAction
from asyncquery.subscribable import Subscribable
from asyncquery.types import (
    FetchOptions,
    QueryObserverResult,
    QueryOptions,
    status_flags,
)
from asyncquery.utils import (
    changed_fields,
    is_valid_timeout,
    replace_equal_deep,
    schedule_later,
    settled,
    shallow_equal_objects,
    time_until_stale,
)

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

T = TypeVar("T")

QueryObserverListener = Callable[[QueryObserverResult[Any]], None]


class TrackedResult:
    """Read-through proxy recording which result fields a consumer reads."""

    __slots__ = ("_result", "_tracked_props")

    def __init__(
        self, result: QueryObserverResult[Any], tracked_props: set[str]
    ) -> None:
        self._result = result
        self._tracked_props = tracked_props

    def __getattr__(self, name: str) -> Any:
        value = getattr(self._result, name)
        self._tracked_props.add(name)
        return value

    def __repr__(self) -> str:
        return f"TrackedResult({self._result!r})"


class QueryObserver(Subscribable[QueryObserverListener], Generic[T]):
    """Computes the display-ready result of a query for one consumer.

    The observer attaches to its query on the first subscription, fetches if
    the mount policy says so, and detaches (destroying its timers) when the
    last listener unsubscribes. Listener notifications are coalesced: however
    many updates land in one loop iteration, listeners see the latest result
    once.

    Usage:
        observer = QueryObserver(client, QueryOptions(query_key="todos", query_fn=load))
        unsubscribe = observer.subscribe(lambda result: render(result))
    """

    def __init__(self, client: QueryClient, options: QueryOptions) -> None:
        super().__init__()
        self.client = client
        self.options = options
        self._current_query: Query[Any] | None = None
        self._current_result: QueryObserverResult[T] | None = None
        self._previous_query_result: QueryObserverResult[T] | None = None
        self._initial_data_update_count = 0
        self._initial_error_update_count = 0
        self._select_fn: Callable[[Any], Any] | None = None
        self._select_data: Any = None
        self._select_result: Any = None
        self._stale_timeout: asyncio.TimerHandle | None = None
        self._refetch_interval: asyncio.TimerHandle | None = None
        self._tracked_props: set[str] = set()
        self._notify_pending = False

        self.set_options(options)

    def on_subscribe(self) -> None:
        if len(self.listeners) != 1:
            return
        self._update_query()
        self._query.add_observer(self)
        if self.will_fetch_on_mount():
            self.execute_fetch()
        self.update_result()
        self._update_timers()

    def on_unsubscribe(self) -> None:
        if not self.listeners:
            self.destroy()

    @property
    def _query(self) -> Query[Any]:
        return cast("Query[Any]", self._current_query)

    @property
    def _result(self) -> QueryObserverResult[T]:
        return cast("QueryObserverResult[T]", self._current_result)

    def will_load_on_mount(self) -> bool:
        state = self._query.state
        return (
            self.options.enabled is not False
            and not state.data_updated_at
            and not (state.status == "error" and self.options.retry_on_mount is False)
        )

    def will_refetch_on_mount(self) -> bool:
        return (
            self.options.enabled is not False
            and self._query.state.data_updated_at > 0
            and (
                self.options.refetch_on_mount == "always"
                or (self.options.refetch_on_mount is not False and self.is_stale())
            )
        )

    def will_fetch_on_mount(self) -> bool:
        return self.will_load_on_mount() or self.will_refetch_on_mount()

    def will_fetch_on_reconnect(self) -> bool:
        return self.options.enabled is not False and (
            self.options.refetch_on_reconnect == "always"
            or (self.options.refetch_on_reconnect is not False and self.is_stale())
        )

    def will_fetch_on_window_focus(self) -> bool:
        return self.options.enabled is not False and (
            self.options.refetch_on_window_focus == "always"
            or (self.options.refetch_on_window_focus is not False and self.is_stale())
        )

    def is_stale(self) -> bool:
        return self._query.is_stale_by_time(self.options.stale_time)

    def destroy(self) -> None:
        self.listeners = []
        self._clear_timers()
        if self._current_query is not None:
            self._current_query.remove_observer(self)

    def set_options(self, options: QueryOptions | None = None) -> None:
        """Apply new options, refetching and rescheduling timers as needed.

        Raises:
            TypeError: If ``enabled`` is set to something other than a bool.
        """
        previous_options = self.options
        new_options = self.client.default_query_observer_options(options)

        enabled = new_options.enabled
        if enabled is not None and not isinstance(enabled, bool):
            raise TypeError("Expected enabled to be a boolean")

        # Keep the previous query key if none is supplied
        if new_options.query_key is None:
            new_options = replace(new_options, query_key=previous_options.query_key)
        self.options = new_options

        did_update_query = self._update_query()

        needs_optional_fetch = did_update_query
        needs_update_result = did_update_query
        needs_update_stale_timeout = did_update_query
        needs_update_refetch_interval = did_update_query

        if new_options.enabled is not False and previous_options.enabled is False:
            needs_optional_fetch = True
        if new_options.select is not previous_options.select:
            needs_update_result = True
        if (
            new_options.enabled != previous_options.enabled
            or new_options.stale_time != previous_options.stale_time
        ):
            needs_update_stale_timeout = True
        if (
            new_options.enabled != previous_options.enabled
            or new_options.refetch_interval != previous_options.refetch_interval
        ):
            needs_update_refetch_interval = True

        if self.has_listeners() and needs_optional_fetch:
            self._optional_fetch()

        if needs_update_result or self._current_result is None:
            self.update_result()

        if self.has_listeners():
            if needs_update_stale_timeout:
                self._update_stale_timeout()
            if needs_update_refetch_interval:
                self._update_refetch_interval()

    def get_current_result(self) -> QueryObserverResult[T]:
        """Return the latest result.

        With ``use_error_boundary`` or ``suspense`` set, a settled error is
        raised here instead of being returned as data.
        """
        result = self._result
        if (
            (self.options.use_error_boundary or self.options.suspense)
            and result.is_error
            and not result.is_fetching
            and result.error is not None
        ):
            raise result.error
        return result

    def get_tracked_current_result(self) -> TrackedResult:
        """Return the current result wrapped so that every field read is recorded.

        With ``notify_on_change_props="tracked"`` only changes to recorded
        fields notify listeners.
        """
        return TrackedResult(self._result, self._tracked_props)

    async def get_next_result(
        self, *, throw_on_error: bool = False
    ) -> QueryObserverResult[T]:
        """Wait for the next result that is no longer fetching."""
        future: asyncio.Future[QueryObserverResult[T]] = (
            asyncio.get_running_loop().create_future()
        )
        subscribed = True

        def listener(result: QueryObserverResult[T]) -> None:
            nonlocal subscribed
            if result.is_fetching or future.done():
                return
            subscribed = False
            unsubscribe()
            if result.is_error and throw_on_error and result.error is not None:
                future.set_exception(result.error)
            else:
                future.set_result(result)

        unsubscribe = self.subscribe(listener)
        try:
            return await future
        finally:
            if subscribed:
                unsubscribe()

    def get_current_query(self) -> Query[Any]:
        return self._query

    def get_new_result(self) -> QueryObserverResult[T]:
        """Compute a fresh result from the query state and observer options."""
        state = self._query.state
        options = self.options
        is_fetching = state.is_fetching
        status = state.status
        is_previous_data = False
        is_placeholder_data = False
        data_updated_at = state.data_updated_at
        data: Any = None

        # Optimistically report the fetch that mounting will start
        if not self.has_listeners() and self.will_fetch_on_mount():
            is_fetching = True
            if not data_updated_at:
                status = "loading"

        previous = self._previous_query_result
        if (
            options.keep_previous_data
            and not state.data_update_count
            and previous is not None
            and previous.is_success
            and status != "error"
        ):
            data = previous.data
            data_updated_at = previous.data_updated_at
            status = previous.status
            is_previous_data = True
        elif options.select is not None and state.data is not None:
            data = self._select(state.data)
        else:
            data = state.data

        if (
            options.placeholder_data is not None
            and data is None
            and status == "loading"
        ):
            placeholder = options.placeholder_data
            if callable(placeholder):
                placeholder = placeholder()
            if placeholder is not None:
                status = "success"
                data = placeholder
                is_placeholder_data = True

        return QueryObserverResult(
            status=status,
            data=data,
            data_updated_at=data_updated_at,
            error=state.error,
            error_updated_at=state.error_updated_at,
            failure_count=state.fetch_failure_count,
            is_fetched=state.data_update_count > 0 or state.error_update_count > 0,
            is_fetched_after_mount=(
                state.data_update_count > self._initial_data_update_count
                or state.error_update_count > self._initial_error_update_count
            ),
            is_fetching=is_fetching,
            is_loading_error=status == "error" and state.data_updated_at == 0,
            is_placeholder_data=is_placeholder_data,
            is_previous_data=is_previous_data,
            is_refetch_error=status == "error" and state.data_updated_at != 0,
            is_stale=self.is_stale(),
            **status_flags(status),
        )

    def _select(self, data: Any) -> Any:
        select = cast("Callable[[Any], Any]", self.options.select)
        # Only rerun the projector when the data or the projector changed
        if self._select_fn is select and self._select_data is data:
            return self._select_result

        selected = select(data)
        if self.options.structural_sharing is not False:
            selected = replace_equal_deep(self._select_result, selected)
        self._select_fn = select
        self._select_data = data
        self._select_result = selected
        return selected

    def remove(self) -> None:
        """Remove the observed query from the cache."""
        self.client.get_query_cache().remove(self._query)

    async def fetch(
        self, fetch_options: FetchOptions | None = None
    ) -> QueryObserverResult[T]:
        await self.execute_fetch(fetch_options)
        self.update_result()
        return self._result

    async def refetch(
        self, *, throw_on_error: bool = False, cancel_refetch: bool = False
    ) -> QueryObserverResult[T]:
        """Refetch the query and return the updated result.

        Errors end up in the result unless ``throw_on_error`` is set.
        """
        return await self.fetch(
            FetchOptions(throw_on_error=throw_on_error, cancel_refetch=cancel_refetch)
        )

    def execute_fetch(
        self, fetch_options: FetchOptions | None = None
    ) -> asyncio.Future[Any]:
        """Start a fetch of the current query without waiting for it."""
        # The current query may have been removed from the cache meanwhile
        self._update_query()
        future = self._query.fetch(self.options, fetch_options)
        if fetch_options is not None and fetch_options.throw_on_error:
            return future
        return settled(future)

    def on_query_update(self, action: QueryAction) -> None:
        self.update_result(action)
        if self.has_listeners():
            self._update_timers()

    def update_result(self, action: QueryAction | None = None) -> None:
        prev_result = self._current_result
        result = self.get_new_result()

        if shallow_equal_objects(result, prev_result):
            return
        self._current_result = result

        self._notify(
            on_success=isinstance(action, SuccessAction),
            on_error=isinstance(action, ErrorAction),
            listeners=self._should_notify_listeners(prev_result, result),
        )

    def _should_notify_listeners(
        self,
        prev_result: QueryObserverResult[T] | None,
        result: QueryObserverResult[T],
    ) -> bool:
        if prev_result is result:
            return False
        if prev_result is None:
            return True

        props = self.options.notify_on_change_props
        exclusions = self.options.notify_on_change_props_exclusions
        if props is None and exclusions is None:
            return True

        included = self._tracked_props if props == "tracked" else props
        for name in changed_fields(prev_result, result):
            if exclusions and name in exclusions:
                continue
            if (
                props is None
                or (included and name in included)
                or (props == "tracked" and not self._tracked_props)
            ):
                return True
        return False

    def _update_query(self) -> bool:
        prev_query = self._current_query
        query = self.client.get_query_cache().build(self.client, self.options)
        if query is prev_query:
            return False

        self._previous_query_result = self._current_result
        self._current_query = query
        self._initial_data_update_count = query.state.data_update_count
        self._initial_error_update_count = query.state.error_update_count

        if self.has_listeners():
            if prev_query is not None:
                prev_query.remove_observer(self)
            query.add_observer(self)
        return True

    def _optional_fetch(self) -> None:
        if self.options.enabled is not False and self.is_stale():
            self.execute_fetch()

    def _update_stale_timeout(self) -> None:
        self._clear_stale_timeout()
        stale_time = parse_optional_duration(self.options.stale_time)
        if self._result.is_stale or not is_valid_timeout(stale_time):
            return

        # Fire 1ms late so the data is stale by the time it runs
        delay = time_until_stale(self._result.data_updated_at, stale_time) + 1
        self._stale_timeout = schedule_later(delay, self._on_stale_timeout)

    def _on_stale_timeout(self) -> None:
        self._stale_timeout = None
        if not self._result.is_stale:
            self.update_result()

    def _update_refetch_interval(self) -> None:
        self._clear_refetch_interval()
        interval = parse_optional_duration(self.options.refetch_interval)
        if (
            self.options.enabled is False
            or not interval
            or not is_valid_timeout(interval)
        ):
            return

        def tick() -> None:
            # Scheduled before fetching: the fetch reschedules through
            # on_query_update, which cancels this handle first.
            self._refetch_interval = schedule_later(interval, tick)
            if (
                self.options.refetch_interval_in_background
                or self.client.focus_manager.is_focused()
            ):
                self.execute_fetch()

        self._refetch_interval = schedule_later(interval, tick)

    def _update_timers(self) -> None:
        self._update_stale_timeout()
        self._update_refetch_interval()

    def _clear_timers(self) -> None:
        self._clear_stale_timeout()
        self._clear_refetch_interval()

    def _clear_stale_timeout(self) -> None:
        if self._stale_timeout is not None:
            self._stale_timeout.cancel()
            self._stale_timeout = None

    def _clear_refetch_interval(self) -> None:
        if self._refetch_interval is not None:
            self._refetch_interval.cancel()
            self._refetch_interval = None

    def _notify(self, *, on_success: bool, on_error: bool, listeners: bool) -> None:
        result = self._result
        options = self.options

        def notify() -> None:
            if on_success:
                if options.on_success is not None:
                    options.on_success(result.data)
                if options.on_settled is not None:
                    options.on_settled(result.data, None)
            elif on_error and result.error is not None:
                if options.on_error is not None:
                    options.on_error(result.error)
                if options.on_settled is not None:
                    options.on_settled(None, result.error)

            if listeners:
                self._schedule_listeners()

            self.client.get_query_cache().notify(self._current_query)

        self.client.notify_manager.batch(notify)

    def _schedule_listeners(self) -> None:
        if self._notify_pending:
            return
        self._notify_pending = True

        def flush() -> None:
            self._notify_pending = False
            result = self._current_result
            if result is None:
                return
            for listener in list(self.listeners):
                listener(result)

        self.client.notify_manager.schedule(flush)


__all__ = ["QueryObserver", "TrackedResult"]
