"""Observe a dynamic list of queries at once."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from asyncquery.query_observer import QueryObserver
from asyncquery.subscribable import Subscribable
from asyncquery.types import QueryObserverResult, QueryOptions
from asyncquery.utils import difference, hash_query_key_by_options, replace_at

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

QueriesObserverListener = Callable[[list[QueryObserverResult[Any]]], None]


class QueriesObserver(Subscribable[QueriesObserverListener]):
    """Keeps one :class:`QueryObserver` per entry of a list of query options.

    Observers are matched by query hash across :meth:`set_queries` calls, so
    reordering the list reuses them; observers whose query disappeared from
    the list are destroyed.
    """

    def __init__(
        self, client: QueryClient, queries: list[QueryOptions] | None = None
    ) -> None:
        super().__init__()
        self.client = client
        self._queries: list[QueryOptions] = queries or []
        self._result: list[QueryObserverResult[Any]] = []
        self._observers: list[QueryObserver[Any]] = []
        self._update_observers()

    def on_subscribe(self) -> None:
        if len(self.listeners) == 1:
            for observer in self._observers:
                self._subscribe_observer(observer)

    def on_unsubscribe(self) -> None:
        if not self.listeners:
            self.destroy()

    def destroy(self) -> None:
        self.listeners = []
        for observer in self._observers:
            observer.destroy()

    def set_queries(self, queries: list[QueryOptions]) -> None:
        self._queries = queries
        self._update_observers()

    def get_current_result(self) -> list[QueryObserverResult[Any]]:
        return self._result

    def get_observers(self) -> list[QueryObserver[Any]]:
        return list(self._observers)

    def _subscribe_observer(self, observer: QueryObserver[Any]) -> None:
        observer.subscribe(lambda result: self._on_update(observer, result))

    def _update_observers(self) -> None:
        has_index_change = False
        prev_observers = self._observers
        new_observers: list[QueryObserver[Any]] = []

        for i, options in enumerate(self._queries):
            defaulted = self.client.default_query_observer_options(options)
            query_hash = hash_query_key_by_options(defaulted.query_key, defaulted)
            defaulted = replace(defaulted, query_hash=query_hash)

            observer = prev_observers[i] if i < len(prev_observers) else None
            if (
                observer is None
                or observer.get_current_query().query_hash != query_hash
            ):
                has_index_change = True
                observer = next(
                    (
                        x
                        for x in prev_observers
                        if x.get_current_query().query_hash == query_hash
                    ),
                    None,
                )

            if observer is not None:
                observer.set_options(defaulted)
            else:
                observer = QueryObserver(self.client, defaulted)
            new_observers.append(observer)

        if len(prev_observers) == len(new_observers) and not has_index_change:
            return

        self._observers = new_observers
        self._result = [observer.get_current_result() for observer in new_observers]

        if not self.listeners:
            return

        for observer in difference(prev_observers, new_observers):
            observer.destroy()
        for observer in difference(new_observers, prev_observers):
            self._subscribe_observer(observer)

        self._notify()

    def _on_update(
        self, observer: QueryObserver[Any], result: QueryObserverResult[Any]
    ) -> None:
        if observer in self._observers:
            index = self._observers.index(observer)
            self._result = replace_at(self._result, index, result)
            self._notify()

    def _notify(self) -> None:
        result = self._result

        def notify() -> None:
            for listener in list(self.listeners):
                listener(result)

        self.client.notify_manager.batch(notify)


__all__ = ["QueriesObserver"]
