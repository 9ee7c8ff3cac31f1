"""Snapshot a client's cache into plain data and load it back."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import fields, replace
from typing import TYPE_CHECKING, Any

from asyncquery.mutation import Mutation, MutationState
from asyncquery.query import Query, QueryState
from asyncquery.types import (
    DefaultOptions,
    DehydratedMutation,
    DehydratedQuery,
    DehydratedState,
    MutationOptions,
    QueryOptions,
)

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

ShouldDehydrateQuery = Callable[[Query[Any]], bool]
ShouldDehydrateMutation = Callable[[Mutation[Any]], bool]

_QUERY_STATE_FIELDS = frozenset(f.name for f in fields(QueryState))
_MUTATION_STATE_FIELDS = frozenset(f.name for f in fields(MutationState))


def _state_to_dict(state: QueryState[Any] | MutationState[Any]) -> dict[str, Any]:
    return {f.name: getattr(state, f.name) for f in fields(state)}


def _query_state_from_dict(data: dict[str, Any]) -> QueryState[Any]:
    state: QueryState[Any] = QueryState(
        **{k: v for k, v in data.items() if k in _QUERY_STATE_FIELDS}
    )
    # No fetch survives the snapshot
    return replace(state, is_fetching=False, is_paused=False)


def _mutation_state_from_dict(data: dict[str, Any]) -> MutationState[Any]:
    return MutationState(
        **{k: v for k, v in data.items() if k in _MUTATION_STATE_FIELDS}
    )


def default_should_dehydrate_query(query: Query[Any]) -> bool:
    return query.state.status == "success"


def default_should_dehydrate_mutation(mutation: Mutation[Any]) -> bool:
    return mutation.state.is_paused


def dehydrate(
    client: QueryClient,
    should_dehydrate_query: ShouldDehydrateQuery | None = None,
    should_dehydrate_mutation: ShouldDehydrateMutation | None = None,
) -> DehydratedState:
    """Capture successful queries and paused mutations as plain data.

    Functions (query and mutation functions, callbacks) are never part of the
    snapshot; register them with ``set_query_defaults`` and
    ``set_mutation_defaults`` so :func:`hydrate` can attach them again.
    """
    should_dehydrate_query = should_dehydrate_query or default_should_dehydrate_query
    should_dehydrate_mutation = (
        should_dehydrate_mutation or default_should_dehydrate_mutation
    )

    queries: list[DehydratedQuery] = [
        {
            "query_key": query.query_key,
            "query_hash": query.query_hash,
            "state": _state_to_dict(query.state),
        }
        for query in client.get_query_cache().get_all()
        if should_dehydrate_query(query)
    ]
    mutations: list[DehydratedMutation] = [
        {
            "mutation_key": mutation.options.mutation_key,
            "state": _state_to_dict(mutation.state),
        }
        for mutation in client.get_mutation_cache().get_all()
        if should_dehydrate_mutation(mutation)
    ]
    return {"queries": queries, "mutations": mutations}


def hydrate(
    client: QueryClient,
    state: DehydratedState | None,
    default_options: DefaultOptions | None = None,
) -> None:
    """Load a snapshot produced by :func:`dehydrate` into ``client``.

    An existing query is only overwritten when the snapshot's data is newer.
    """
    if not isinstance(state, dict):
        return

    default_options = default_options or DefaultOptions()
    query_cache = client.get_query_cache()
    mutation_cache = client.get_mutation_cache()

    for dehydrated_mutation in state.get("mutations") or []:
        options = (default_options.mutations or MutationOptions()).merged(
            MutationOptions(mutation_key=dehydrated_mutation.get("mutation_key"))
        )
        mutation_cache.build(
            client, options, _mutation_state_from_dict(dehydrated_mutation["state"])
        )

    for dehydrated_query in state.get("queries") or []:
        query_state = _query_state_from_dict(dehydrated_query["state"])
        query = query_cache.get(dehydrated_query["query_hash"])
        if query is not None:
            if query.state.data_updated_at < query_state.data_updated_at:
                query.set_state(query_state)
            continue

        options = (default_options.queries or QueryOptions()).merged(
            QueryOptions(
                query_key=dehydrated_query["query_key"],
                query_hash=dehydrated_query["query_hash"],
            )
        )
        query_cache.build(client, options, query_state)


__all__ = [
    "default_should_dehydrate_mutation",
    "default_should_dehydrate_query",
    "dehydrate",
    "hydrate",
]
