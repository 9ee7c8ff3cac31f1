"""Keep a client's cache in a persister across process restarts."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from asyncquery.duration import parse_duration
from asyncquery.hydration import (
    ShouldDehydrateMutation,
    ShouldDehydrateQuery,
    dehydrate,
    hydrate,
)
from asyncquery.logger import get_logger
from asyncquery.persisters.base import AsyncPersister
from asyncquery.types import DefaultOptions, Duration, PersistedClient
from asyncquery.utils import now_ms

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

DEFAULT_MAX_AGE: Duration = "1d"


async def persist_query_client_save(
    client: QueryClient,
    persister: AsyncPersister,
    *,
    buster: str = "",
    should_dehydrate_query: ShouldDehydrateQuery | None = None,
    should_dehydrate_mutation: ShouldDehydrateMutation | None = None,
) -> None:
    """Dehydrate ``client`` and hand the snapshot to ``persister``."""
    await persister.persist_client(
        PersistedClient(
            timestamp=now_ms(),
            buster=buster,
            client_state=dehydrate(
                client, should_dehydrate_query, should_dehydrate_mutation
            ),
        )
    )


async def persist_query_client_restore(
    client: QueryClient,
    persister: AsyncPersister,
    *,
    max_age: Duration = DEFAULT_MAX_AGE,
    buster: str = "",
    hydrate_options: DefaultOptions | None = None,
) -> bool:
    """Hydrate ``client`` from ``persister``.

    Snapshots older than ``max_age``, or written with a different ``buster``,
    are removed instead of restored. A snapshot that cannot be restored is
    discarded as well.

    Returns:
        Whether a snapshot was restored.
    """
    try:
        persisted = await persister.restore_client()
        if persisted is None:
            return False
        expired = now_ms() - persisted.timestamp > parse_duration(max_age)
        if not persisted.timestamp or expired or persisted.buster != buster:
            get_logger().debug("Discarding expired or busted persisted client")
            await persister.remove_client()
            return False
        hydrate(client, persisted.client_state, hydrate_options)
        return True
    except Exception as error:
        get_logger().error(
            "Failed to restore persisted client, discarding it: %r",
            error,
            exc_info=error,
        )
        await persister.remove_client()
        return False


async def persist_query_client(
    client: QueryClient,
    persister: AsyncPersister,
    *,
    max_age: Duration = DEFAULT_MAX_AGE,
    buster: str = "",
    hydrate_options: DefaultOptions | None = None,
    should_dehydrate_query: ShouldDehydrateQuery | None = None,
    should_dehydrate_mutation: ShouldDehydrateMutation | None = None,
) -> Callable[[], None]:
    """Restore ``client``, then save it in the background whenever it changes.

    Changes made within one loop iteration are saved once.

    Returns:
        A function that stops saving.

    Usage:
        unsubscribe = await persist_query_client(
            client, AsyncRedisPersister(redis.asyncio.Redis()), buster="v2"
        )
    """
    await persist_query_client_restore(
        client,
        persister,
        max_age=max_age,
        buster=buster,
        hydrate_options=hydrate_options,
    )

    pending = False
    background_tasks: set[asyncio.Task[None]] = set()

    async def save() -> None:
        nonlocal pending
        pending = False
        try:
            await persist_query_client_save(
                client,
                persister,
                buster=buster,
                should_dehydrate_query=should_dehydrate_query,
                should_dehydrate_mutation=should_dehydrate_mutation,
            )
        except Exception as error:
            get_logger().error(
                "Failed to persist client: %r", error, exc_info=error
            )

    def on_change(_: Any = None) -> None:
        nonlocal pending
        if pending:
            return
        pending = True
        task = asyncio.get_running_loop().create_task(save())
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

    unsubscribe_queries = client.get_query_cache().subscribe(on_change)
    unsubscribe_mutations = client.get_mutation_cache().subscribe(on_change)

    def unsubscribe() -> None:
        nonlocal pending
        unsubscribe_queries()
        unsubscribe_mutations()
        for task in list(background_tasks):
            task.cancel()
        pending = False

    return unsubscribe


__all__ = [
    "persist_query_client",
    "persist_query_client_restore",
    "persist_query_client_save",
]
