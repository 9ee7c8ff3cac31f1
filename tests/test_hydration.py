"""Tests for dehydrating and hydrating a client."""

import json
from typing import Any

from asyncquery import (
    DefaultOptions,
    MutationOptions,
    MutationState,
    QueryClient,
    QueryOptions,
    dehydrate,
    hydrate,
)


async def failing(ctx: Any) -> None:
    raise RuntimeError("down")


class TestDehydrate:
    """Tests for dehydrate."""

    async def test_successful_queries_only(self, client: QueryClient) -> None:
        """Test that only successful queries are captured by default."""
        client.set_query_data(["todos", 1], {"title": "Write docs"})
        await client.prefetch_query(QueryOptions(query_key="broken", query_fn=failing))

        state = dehydrate(client)
        assert [query["query_key"] for query in state["queries"]] == [["todos", 1]]
        assert state["queries"][0]["state"]["data"] == {"title": "Write docs"}
        assert state["mutations"] == []

    async def test_custom_predicate(self, client: QueryClient) -> None:
        """Test that a predicate chooses which queries are captured."""
        client.set_query_data("a", 1)
        client.set_query_data("b", 2)
        state = dehydrate(
            client, should_dehydrate_query=lambda query: query.query_key == "b"
        )
        assert [query["query_key"] for query in state["queries"]] == ["b"]

    async def test_paused_mutations(self, client: QueryClient) -> None:
        """Test that paused mutations are captured with their variables."""
        cache = client.get_mutation_cache()
        cache.build(
            client,
            MutationOptions(mutation_key="add"),
            MutationState(status="loading", variables={"title": "x"}, is_paused=True),
        )
        cache.build(client, MutationOptions(mutation_key="idle"))

        state = dehydrate(client)
        assert len(state["mutations"]) == 1
        assert state["mutations"][0]["mutation_key"] == "add"
        assert state["mutations"][0]["state"]["variables"] == {"title": "x"}

    async def test_json_serializable(self, client: QueryClient) -> None:
        """Test that a snapshot of plain data survives JSON encoding."""
        client.set_query_data(["todos", 1], [1, 2])
        state = dehydrate(client)
        assert json.loads(json.dumps(state)) == state


class TestHydrate:
    """Tests for hydrate."""

    async def test_restores_queries(self, client: QueryClient) -> None:
        """Test that hydrated queries carry data and are not fetching."""
        source = QueryClient()
        source.set_query_data(["todos", 1], "hello", updated_at=1000)

        hydrate(client, json.loads(json.dumps(dehydrate(source))))

        state = client.get_query_state(["todos", 1])
        assert state is not None
        assert state.data == "hello"
        assert state.data_updated_at == 1000
        assert state.status == "success"
        assert not state.is_fetching

    async def test_keeps_newer_data(self, client: QueryClient) -> None:
        """Test that existing newer data is not overwritten."""
        source = QueryClient()
        source.set_query_data("a", "snapshot", updated_at=1000)
        source.set_query_data("b", "snapshot", updated_at=1000)
        client.set_query_data("a", "newer", updated_at=2000)
        client.set_query_data("b", "older", updated_at=500)

        hydrate(client, dehydrate(source))

        assert client.get_query_data("a") == "newer"
        assert client.get_query_data("b") == "snapshot"

    async def test_default_options(self, client: QueryClient) -> None:
        """Test that hydrate options apply to newly created queries."""
        source = QueryClient()
        source.set_query_data("a", 1)
        hydrate(
            client,
            dehydrate(source),
            default_options=DefaultOptions(queries=QueryOptions(cache_time=12345)),
        )
        query = client.get_query_cache().find("a")
        assert query is not None
        assert query.cache_time == 12345

    async def test_ignores_invalid_state(self, client: QueryClient) -> None:
        """Test that non-dict snapshots are ignored."""
        hydrate(client, None)
        hydrate(client, "garbage")  # type: ignore[arg-type]
        assert client.get_query_cache().get_all() == []

    async def test_resumes_paused_mutation(self, client: QueryClient) -> None:
        """Test that a rehydrated mutation resumes with its registered function."""
        source = QueryClient()
        source.get_mutation_cache().build(
            source,
            MutationOptions(mutation_key=["todos", "add"]),
            MutationState(status="loading", variables={"title": "x"}, is_paused=True),
        )
        calls: list[Any] = []
        client.set_mutation_defaults(
            ["todos"],
            MutationOptions(mutation_fn=lambda variables: calls.append(variables)),
        )

        hydrate(client, json.loads(json.dumps(dehydrate(source))))
        (mutation,) = client.get_mutation_cache().get_all()
        assert mutation.state.is_paused

        await client.resume_paused_mutations()
        assert calls == [{"title": "x"}]
        assert mutation.state.status == "success"
