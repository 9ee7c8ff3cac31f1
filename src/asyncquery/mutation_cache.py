"""Flat registry of mutations, used for bookkeeping and resumption."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from asyncquery.logger import get_logger
from asyncquery.mutation import Mutation, MutationState
from asyncquery.notify import NotifyManager
from asyncquery.subscribable import Subscribable
from asyncquery.types import MutationOptions

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

MutationCacheListener = Callable[[Mutation[Any] | None], None]
MutationErrorHandler = Callable[[Exception, Any, Any, Mutation[Any]], None]


class MutationCache(Subscribable[MutationCacheListener]):
    """Keeps every mutation that is running, paused or still observed."""

    def __init__(
        self,
        *,
        on_error: MutationErrorHandler | None = None,
        notify_manager: NotifyManager | None = None,
    ) -> None:
        super().__init__()
        self.on_error = on_error
        self.notify_manager = notify_manager or NotifyManager()
        self._mutations: list[Mutation[Any]] = []
        self._mutation_id = 0
        self._background_tasks: set[asyncio.Task[None]] = set()

    def build(
        self,
        client: QueryClient,
        options: MutationOptions,
        state: MutationState[Any] | None = None,
    ) -> Mutation[Any]:
        self._mutation_id += 1
        mutation: Mutation[Any] = Mutation(
            mutation_id=self._mutation_id,
            mutation_cache=self,
            options=client.default_mutation_options(options),
            default_options=(
                client.get_mutation_defaults(options.mutation_key)
                if options.mutation_key is not None
                else None
            ),
            state=state,
            focus_manager=client.focus_manager,
            online_manager=client.online_manager,
        )
        self.add(mutation)
        return mutation

    def add(self, mutation: Mutation[Any]) -> None:
        self._mutations.append(mutation)
        self.notify(mutation)

    def remove(self, mutation: Mutation[Any]) -> None:
        self._mutations = [x for x in self._mutations if x is not mutation]
        mutation.cancel()
        self.notify(mutation)

    def clear(self) -> None:
        def remove_all() -> None:
            for mutation in list(self._mutations):
                self.remove(mutation)

        self.notify_manager.batch(remove_all)

    def get_all(self) -> list[Mutation[Any]]:
        return list(self._mutations)

    def notify(self, mutation: Mutation[Any] | None = None) -> None:
        def notify_listeners() -> None:
            for listener in list(self.listeners):
                listener(mutation)

        self.notify_manager.batch(notify_listeners)

    def on_focus(self) -> None:
        self._resume_in_background()

    def on_online(self) -> None:
        self._resume_in_background()

    async def resume_paused_mutations(self) -> None:
        """Resume paused mutations one after another, in registration order.

        A failing mutation does not stop the others; its error is already
        stored in its state.
        """
        paused = [x for x in self._mutations if x.state.is_paused]
        for mutation in paused:
            with suppress(Exception):
                await mutation.resume()

    def _resume_in_background(self) -> None:
        if not any(x.state.is_paused for x in self._mutations):
            return
        get_logger().debug("Resuming paused mutations")
        task = asyncio.get_running_loop().create_task(self.resume_paused_mutations())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)


__all__ = ["MutationCache"]
