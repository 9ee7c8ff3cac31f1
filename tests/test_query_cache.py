"""Tests for the query registry."""

from collections.abc import Callable
from typing import Any

from asyncquery import (
    Query,
    QueryCache,
    QueryClient,
    QueryFilters,
    QueryObserver,
    QueryOptions,
)


class TestQueryCacheBuild:
    """Tests for QueryCache.build."""

    async def test_same_key_same_query(self, client: QueryClient) -> None:
        """Test that one hash maps to exactly one query."""
        cache = client.get_query_cache()
        first = cache.build(client, QueryOptions(query_key=["todos", {"a": 1}]))
        second = cache.build(client, QueryOptions(query_key=("todos", {"a": 1})))
        assert first is second
        assert cache.get_all() == [first]

    async def test_different_keys(self, client: QueryClient) -> None:
        """Test that different keys build different queries."""
        cache = client.get_query_cache()
        first = cache.build(client, QueryOptions(query_key=["todos", 1]))
        second = cache.build(client, QueryOptions(query_key=["todos", 2]))
        assert first is not second
        assert cache.get(first.query_hash) is first

    async def test_custom_hash_fn(self, client: QueryClient) -> None:
        """Test that query_key_hash_fn overrides the default hash."""
        cache = client.get_query_cache()
        query = cache.build(
            client,
            QueryOptions(query_key=["user", 7], query_key_hash_fn=lambda key: "u7"),
        )
        assert query.query_hash == "u7"
        assert cache.get("u7") is query

    async def test_per_key_defaults_are_applied(self, client: QueryClient) -> None:
        """Test that registered defaults reach new queries."""
        client.set_query_defaults("todos", QueryOptions(cache_time=1234))
        query = client.get_query_cache().build(
            client, QueryOptions(query_key=["todos", 1])
        )
        assert query.cache_time == 1234


class TestQueryCacheFind:
    """Tests for find and find_all."""

    async def test_find_is_exact_by_default(self, client: QueryClient) -> None:
        """Test that find matches the exact hash, find_all by prefix."""
        client.set_query_data(["todos", 1], "one")
        cache = client.get_query_cache()
        assert cache.find("todos") is None
        assert cache.find(["todos", 1]) is not None
        assert len(cache.find_all("todos")) == 1

    async def test_find_non_exact(self, client: QueryClient) -> None:
        """Test that find can match by prefix."""
        client.set_query_data(["todos", 1], "one")
        query = client.get_query_cache().find("todos", QueryFilters(exact=False))
        assert query is not None
        assert query.state.data == "one"

    async def test_find_all_without_filters(self, client: QueryClient) -> None:
        """Test that find_all without arguments returns every query."""
        client.set_query_data("a", 1)
        client.set_query_data("b", 2)
        assert len(client.get_query_cache().find_all()) == 2

    async def test_filters_are_not_mutated(self, client: QueryClient) -> None:
        """Test that find fills defaults on a copy of the filters."""
        client.set_query_data("a", 1)
        filters = QueryFilters()
        client.get_query_cache().find("a", filters)
        assert filters.exact is None
        assert filters.query_key is None

    async def test_active_and_inactive(
        self, client: QueryClient, counting_fetch: Callable[..., Any]
    ) -> None:
        """Test filtering by whether enabled observers are attached."""
        client.set_query_data("inactive", 1)
        observer = QueryObserver(
            client, QueryOptions(query_key="active", query_fn=counting_fetch())
        )
        observer.subscribe()
        cache = client.get_query_cache()

        active = cache.find_all(filters=QueryFilters(active=True))
        inactive = cache.find_all(filters=QueryFilters(inactive=True))
        assert [q.query_key for q in active] == ["active"]
        assert [q.query_key for q in inactive] == ["inactive"]
        observer.destroy()

    async def test_stale_fetching_and_predicate(
        self, client: QueryClient, counting_fetch: Callable[..., Any]
    ) -> None:
        """Test the stale, fetching and predicate filters."""
        client.set_query_data("fresh", 1)
        client.get_query_cache().build(client, QueryOptions(query_key="empty"))
        cache = client.get_query_cache()

        stale = cache.find_all(filters=QueryFilters(stale=True))
        assert [q.query_key for q in stale] == ["empty"]

        query = cache.find("empty")
        assert query is not None
        future = query.fetch(
            client.default_query_options(
                QueryOptions(query_key="empty", query_fn=counting_fetch(delay=0.01))
            )
        )
        fetching = cache.find_all(filters=QueryFilters(fetching=True))
        assert fetching == [query]
        await future

        by_predicate = cache.find_all(
            filters=QueryFilters(predicate=lambda q: q.state.data == 1)
        )
        assert [q.query_key for q in by_predicate] == ["fresh"]


class TestQueryCacheEvents:
    """Tests for cache listeners and removal."""

    async def test_listeners_see_added_queries(self, client: QueryClient) -> None:
        """Test that listeners are told about new queries."""
        cache = client.get_query_cache()
        seen: list[Query[Any] | None] = []
        cache.subscribe(seen.append)
        query = cache.build(client, QueryOptions(query_key="todos"))
        assert query in seen

    async def test_remove(self, client: QueryClient) -> None:
        """Test that removed queries disappear from lookups."""
        client.set_query_data("todos", [1])
        cache = client.get_query_cache()
        query = cache.find("todos")
        assert query is not None
        cache.remove(query)
        assert cache.find("todos") is None
        assert cache.get_all() == []

    async def test_clear(self, client: QueryClient) -> None:
        """Test that clear removes every query."""
        client.set_query_data("a", 1)
        client.set_query_data("b", 2)
        cache: QueryCache = client.get_query_cache()
        removed: list[Query[Any] | None] = []
        cache.subscribe(removed.append)
        cache.clear()
        assert cache.get_all() == []
        assert {q.query_key for q in removed if q is not None} == {"a", "b"}
