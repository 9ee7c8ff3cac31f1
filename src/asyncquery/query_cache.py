"""Registry of queries keyed by query hash."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from asyncquery.notify import NotifyManager
from asyncquery.query import Query, QueryState
from asyncquery.subscribable import Subscribable
from asyncquery.types import QueryFilters, QueryKey, QueryOptions
from asyncquery.utils import hash_query_key_by_options, match_query

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

QueryCacheListener = Callable[[Query[Any] | None], None]
QueryErrorHandler = Callable[[Exception, Query[Any]], None]


class QueryCache(Subscribable[QueryCacheListener]):
    """Holds exactly one :class:`Query` per query hash.

    Listeners are called with the query that changed whenever a query is
    added, removed or updated.

    Usage:
        cache = QueryCache(on_error=lambda error, query: report(error))
        client = QueryClient(query_cache=cache)
    """

    def __init__(
        self,
        *,
        on_error: QueryErrorHandler | None = None,
        notify_manager: NotifyManager | None = None,
    ) -> None:
        super().__init__()
        self.on_error = on_error
        self.notify_manager = notify_manager or NotifyManager()
        self._queries: list[Query[Any]] = []
        self._queries_map: dict[str, Query[Any]] = {}

    def build(
        self,
        client: QueryClient,
        options: QueryOptions,
        state: QueryState[Any] | None = None,
    ) -> Query[Any]:
        """Return the query for ``options.query_key``, creating it if needed."""
        query_key = options.query_key
        query_hash = options.query_hash or hash_query_key_by_options(
            query_key, options
        )
        query = self.get(query_hash)
        if query is None:
            query = Query(
                cache=self,
                query_key=query_key if query_key is not None else [],
                query_hash=query_hash,
                options=client.default_query_options(options),
                default_options=client.get_query_defaults(query_key),
                state=state,
                focus_manager=client.focus_manager,
                online_manager=client.online_manager,
            )
            self.add(query)
        return query

    def add(self, query: Query[Any]) -> None:
        if query.query_hash in self._queries_map:
            return
        self._queries_map[query.query_hash] = query
        self._queries.append(query)
        self.notify(query)

    def remove(self, query: Query[Any]) -> None:
        query_in_map = self._queries_map.get(query.query_hash)
        if query_in_map is None:
            return

        query.destroy()
        self._queries = [x for x in self._queries if x is not query]
        if query_in_map is query:
            del self._queries_map[query.query_hash]
        self.notify(query)

    def clear(self) -> None:
        def remove_all() -> None:
            for query in list(self._queries):
                self.remove(query)

        self.notify_manager.batch(remove_all)

    def get(self, query_hash: str) -> Query[Any] | None:
        return self._queries_map.get(query_hash)

    def get_all(self) -> list[Query[Any]]:
        return list(self._queries)

    def find(
        self, query_key: QueryKey | None = None, filters: QueryFilters | None = None
    ) -> Query[Any] | None:
        """Find the first query matching the key and filters.

        Unlike :meth:`find_all`, key matching is exact unless ``filters``
        says otherwise.
        """
        filters = _with_key(query_key, filters)
        if filters.exact is None:
            filters.exact = True
        return next((q for q in self._queries if match_query(filters, q)), None)

    def find_all(
        self, query_key: QueryKey | None = None, filters: QueryFilters | None = None
    ) -> list[Query[Any]]:
        if query_key is None and filters is None:
            return self.get_all()
        filters = _with_key(query_key, filters)
        return [q for q in self._queries if match_query(filters, q)]

    def notify(self, query: Query[Any] | None = None) -> None:
        def notify_listeners() -> None:
            for listener in list(self.listeners):
                listener(query)

        self.notify_manager.batch(notify_listeners)

    def on_focus(self) -> None:
        def focus_all() -> None:
            for query in list(self._queries):
                query.on_focus()

        self.notify_manager.batch(focus_all)

    def on_online(self) -> None:
        def online_all() -> None:
            for query in list(self._queries):
                query.on_online()

        self.notify_manager.batch(online_all)


def _with_key(
    query_key: QueryKey | None, filters: QueryFilters | None
) -> QueryFilters:
    # Copy so defaults filled in here never leak into the caller's filters.
    result = QueryFilters() if filters is None else replace(filters)
    if query_key is not None:
        result.query_key = query_key
    return result


__all__ = ["QueryCache"]
