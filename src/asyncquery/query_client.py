"""The client: entry point tying caches, defaults and signals together."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, replace
from typing import Any

from asyncquery.infinite_query import infinite_query_behavior
from asyncquery.mutation_cache import MutationCache
from asyncquery.notify import NotifyManager
from asyncquery.query import QueryState
from asyncquery.query_cache import QueryCache
from asyncquery.signals import FocusManager, OnlineManager
from asyncquery.types import (
    DefaultOptions,
    InfiniteData,
    InvalidateQueryFilters,
    MutationKey,
    MutationOptions,
    QueryFilters,
    QueryKey,
    QueryOptions,
    Updater,
)
from asyncquery.utils import hash_query_key, partial_match_key, settled


@dataclass(slots=True)
class _QueryDefaults:
    query_key: QueryKey
    default_options: QueryOptions


@dataclass(slots=True)
class _MutationDefaults:
    mutation_key: MutationKey
    default_options: MutationOptions


class QueryClient:
    """Query and mutation client.

    The client owns the focus, online and notify services and hands them to
    everything it builds, so separate clients never share state.

    Usage:
        client = QueryClient(
            default_options=DefaultOptions(queries=QueryOptions(stale_time="30s"))
        )
        client.mount()
        todos = await client.fetch_query(
            QueryOptions(query_key="todos", query_fn=lambda ctx: load_todos())
        )
    """

    def __init__(
        self,
        *,
        query_cache: QueryCache | None = None,
        mutation_cache: MutationCache | None = None,
        default_options: DefaultOptions | None = None,
        focus_manager: FocusManager | None = None,
        online_manager: OnlineManager | None = None,
        notify_manager: NotifyManager | None = None,
    ) -> None:
        if notify_manager is None:
            notify_manager = (
                query_cache.notify_manager if query_cache else NotifyManager()
            )
        self.notify_manager = notify_manager
        self.focus_manager = focus_manager or FocusManager()
        self.online_manager = online_manager or OnlineManager()
        self._query_cache = query_cache or QueryCache(notify_manager=notify_manager)
        self._mutation_cache = mutation_cache or MutationCache(
            notify_manager=notify_manager
        )
        self._default_options = default_options or DefaultOptions()
        self._query_defaults: list[_QueryDefaults] = []
        self._mutation_defaults: list[_MutationDefaults] = []
        self._unsubscribe_focus: Callable[[], None] | None = None
        self._unsubscribe_online: Callable[[], None] | None = None

    def mount(self) -> None:
        """Start reacting to focus and connectivity changes."""
        self.unmount()
        self._unsubscribe_focus = self.focus_manager.subscribe(self._on_focus)
        self._unsubscribe_online = self.online_manager.subscribe(self._on_online)

    def unmount(self) -> None:
        if self._unsubscribe_focus is not None:
            self._unsubscribe_focus()
            self._unsubscribe_focus = None
        if self._unsubscribe_online is not None:
            self._unsubscribe_online()
            self._unsubscribe_online = None

    def _on_focus(self) -> None:
        if self.focus_manager.is_focused() and self.online_manager.is_online():
            self._mutation_cache.on_focus()
            self._query_cache.on_focus()

    def _on_online(self) -> None:
        if self.focus_manager.is_focused() and self.online_manager.is_online():
            self._mutation_cache.on_online()
            self._query_cache.on_online()

    def is_fetching(
        self, query_key: QueryKey | None = None, filters: QueryFilters | None = None
    ) -> int:
        """Count the matching queries that are currently fetching."""
        filters = replace(filters) if filters is not None else QueryFilters()
        filters.fetching = True
        return len(self._query_cache.find_all(query_key, filters))

    def get_query_data(
        self, query_key: QueryKey, filters: QueryFilters | None = None
    ) -> Any:
        query = self._query_cache.find(query_key, filters)
        return query.state.data if query is not None else None

    def get_queries_data(
        self, query_key: QueryKey | None = None, filters: QueryFilters | None = None
    ) -> list[tuple[QueryKey, Any]]:
        return [
            (query.query_key, query.state.data)
            for query in self._query_cache.find_all(query_key, filters)
        ]

    def set_query_data(
        self,
        query_key: QueryKey,
        updater: Updater[Any],
        updated_at: int | None = None,
    ) -> Any:
        """Write data for ``query_key``, creating the query if needed.

        ``updater`` is either the new data or a function of the current data.
        """
        options = self.default_query_options(QueryOptions(query_key=query_key))
        query = self._query_cache.build(self, options)
        return query.set_data(updater, updated_at)

    def set_queries_data(
        self,
        query_key: QueryKey | None,
        updater: Updater[Any],
        filters: QueryFilters | None = None,
        updated_at: int | None = None,
    ) -> list[tuple[QueryKey, Any]]:
        def update_all() -> list[tuple[QueryKey, Any]]:
            return [
                (
                    query.query_key,
                    self.set_query_data(query.query_key, updater, updated_at),
                )
                for query in self._query_cache.find_all(query_key, filters)
            ]

        return self.notify_manager.batch(update_all)

    def get_query_state(
        self, query_key: QueryKey, filters: QueryFilters | None = None
    ) -> QueryState[Any] | None:
        query = self._query_cache.find(query_key, filters)
        return query.state if query is not None else None

    def remove_queries(
        self, query_key: QueryKey | None = None, filters: QueryFilters | None = None
    ) -> None:
        def remove_all() -> None:
            for query in self._query_cache.find_all(query_key, filters):
                self._query_cache.remove(query)

        self.notify_manager.batch(remove_all)

    async def reset_queries(
        self,
        query_key: QueryKey | None = None,
        filters: QueryFilters | None = None,
        *,
        throw_on_error: bool = False,
    ) -> None:
        """Reset matching queries to their initial state, then refetch."""
        refetch_filters = replace(filters) if filters is not None else QueryFilters()
        refetch_filters.active = True

        def reset_all() -> None:
            for query in self._query_cache.find_all(query_key, filters):
                query.reset()

        self.notify_manager.batch(reset_all)
        await self.refetch_queries(
            query_key, refetch_filters, throw_on_error=throw_on_error
        )

    async def cancel_queries(
        self,
        query_key: QueryKey | None = None,
        filters: QueryFilters | None = None,
        *,
        revert: bool = True,
        silent: bool = False,
    ) -> None:
        """Cancel in-flight fetches, reverting the queries by default."""

        def cancel_all() -> list[asyncio.Future[None]]:
            return [
                query.cancel(revert=revert, silent=silent)
                for query in self._query_cache.find_all(query_key, filters)
            ]

        await asyncio.gather(*self.notify_manager.batch(cancel_all))

    async def invalidate_queries(
        self,
        query_key: QueryKey | None = None,
        filters: InvalidateQueryFilters | None = None,
        *,
        throw_on_error: bool = False,
    ) -> None:
        """Mark matching queries stale and refetch them.

        Only active queries are refetched unless ``filters`` asks for
        inactive ones via ``refetch_inactive``.
        """
        filters = filters if filters is not None else InvalidateQueryFilters()
        refetch_filters = QueryFilters(
            query_key=filters.query_key,
            exact=filters.exact,
            active=True if filters.refetch_active is None else filters.refetch_active,
            inactive=(
                False if filters.refetch_inactive is None else filters.refetch_inactive
            ),
            stale=filters.stale,
            fetching=filters.fetching,
            predicate=filters.predicate,
        )

        def invalidate_all() -> None:
            for query in self._query_cache.find_all(query_key, filters):
                query.invalidate()

        self.notify_manager.batch(invalidate_all)
        await self.refetch_queries(
            query_key, refetch_filters, throw_on_error=throw_on_error
        )

    async def refetch_queries(
        self,
        query_key: QueryKey | None = None,
        filters: QueryFilters | None = None,
        *,
        throw_on_error: bool = False,
    ) -> None:
        """Refetch every matching query.

        Raises:
            Exception: The first fetch error, only with ``throw_on_error``.
        """

        def fetch_all() -> list[asyncio.Future[Any]]:
            return [
                query.fetch()
                for query in self._query_cache.find_all(query_key, filters)
            ]

        futures = self.notify_manager.batch(fetch_all)
        if throw_on_error:
            await asyncio.gather(*futures)
        else:
            await asyncio.gather(*(settled(future) for future in futures))

    async def fetch_query(self, options: QueryOptions) -> Any:
        """Return cached data when fresh enough, fetching otherwise.

        Unlike observers, retries are off unless ``options`` enables them.

        Raises:
            Exception: Whatever the query function finally raised.
        """
        defaulted = self.default_query_options(options)
        if defaulted.retry is None:
            defaulted = replace(defaulted, retry=False)

        query = self._query_cache.build(self, defaulted)
        if not query.is_stale_by_time(defaulted.stale_time):
            return query.state.data
        return await query.fetch(defaulted)

    async def prefetch_query(self, options: QueryOptions) -> None:
        """Like :meth:`fetch_query`, but errors are swallowed."""
        with suppress(Exception):
            await self.fetch_query(options)

    async def fetch_infinite_query(self, options: QueryOptions) -> InfiniteData:
        return await self.fetch_query(
            replace(options, behavior=infinite_query_behavior())
        )

    async def prefetch_infinite_query(self, options: QueryOptions) -> None:
        with suppress(Exception):
            await self.fetch_infinite_query(options)

    async def cancel_mutations(self) -> None:
        def cancel_all() -> list[asyncio.Future[None]]:
            return [mutation.cancel() for mutation in self._mutation_cache.get_all()]

        await asyncio.gather(*self.notify_manager.batch(cancel_all))

    async def resume_paused_mutations(self) -> None:
        await self._mutation_cache.resume_paused_mutations()

    async def execute_mutation(self, options: MutationOptions) -> Any:
        return await self._mutation_cache.build(self, options).execute()

    def get_query_cache(self) -> QueryCache:
        return self._query_cache

    def get_mutation_cache(self) -> MutationCache:
        return self._mutation_cache

    def get_default_options(self) -> DefaultOptions:
        return self._default_options

    def set_default_options(self, options: DefaultOptions) -> None:
        self._default_options = options

    def set_query_defaults(self, query_key: QueryKey, options: QueryOptions) -> None:
        """Register defaults for every query whose key starts with ``query_key``."""
        key_hash = hash_query_key(query_key)
        for entry in self._query_defaults:
            if hash_query_key(entry.query_key) == key_hash:
                entry.default_options = options
                return
        self._query_defaults.append(_QueryDefaults(query_key, options))

    def get_query_defaults(self, query_key: QueryKey | None) -> QueryOptions | None:
        if query_key is None:
            return None
        for entry in self._query_defaults:
            if partial_match_key(query_key, entry.query_key):
                return entry.default_options
        return None

    def set_mutation_defaults(
        self, mutation_key: MutationKey, options: MutationOptions
    ) -> None:
        key_hash = hash_query_key(mutation_key)
        for entry in self._mutation_defaults:
            if hash_query_key(entry.mutation_key) == key_hash:
                entry.default_options = options
                return
        self._mutation_defaults.append(_MutationDefaults(mutation_key, options))

    def get_mutation_defaults(
        self, mutation_key: MutationKey | None
    ) -> MutationOptions | None:
        if mutation_key is None:
            return None
        for entry in self._mutation_defaults:
            if partial_match_key(mutation_key, entry.mutation_key):
                return entry.default_options
        return None

    def default_query_options(
        self, options: QueryOptions | None = None
    ) -> QueryOptions:
        """Layer global defaults, per-key defaults and ``options``."""
        if options is not None and options.defaulted:
            return options
        query_key = options.query_key if options is not None else None
        merged = (self._default_options.queries or QueryOptions()).merged(
            self.get_query_defaults(query_key), options
        )
        return replace(merged, defaulted=True)

    def default_query_observer_options(
        self, options: QueryOptions | None = None
    ) -> QueryOptions:
        return self.default_query_options(options)

    def default_mutation_options(
        self, options: MutationOptions | None = None
    ) -> MutationOptions:
        if options is not None and options.defaulted:
            return options
        mutation_key = options.mutation_key if options is not None else None
        merged = (self._default_options.mutations or MutationOptions()).merged(
            self.get_mutation_defaults(mutation_key), options
        )
        return replace(merged, defaulted=True)

    def clear(self) -> None:
        self._query_cache.clear()
        self._mutation_cache.clear()


__all__ = ["QueryClient"]
