"""Per-consumer view over the latest mutation it started."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from asyncquery.mutation import (
    ErrorAction,
    Mutation,
    MutationAction,
    MutationState,
    SuccessAction,
)
from asyncquery.subscribable import Subscribable
from asyncquery.types import MutationObserverResult, MutationOptions, status_flags

if TYPE_CHECKING:
    from asyncquery.query_client import QueryClient

T = TypeVar("T")

MutationObserverListener = Callable[[MutationObserverResult[Any]], None]


@dataclass(slots=True)
class _MutateCallbacks:
    on_success: Callable[[Any, Any, Any], Any] | None = None
    on_error: Callable[[Exception, Any, Any], Any] | None = None
    on_settled: Callable[[Any, Exception | None, Any, Any], Any] | None = None


class MutationObserver(Subscribable[MutationObserverListener], Generic[T]):
    """Starts mutations and reports the state of the most recent one.

    Callbacks passed to :meth:`mutate` run after the mutation's own callbacks,
    once the terminal state has been dispatched, and only for the latest
    mutation of this observer.

    Usage:
        observer = MutationObserver(client, MutationOptions(mutation_fn=add_todo))
        await observer.mutate({"title": "Write docs"})
    """

    def __init__(self, client: QueryClient, options: MutationOptions) -> None:
        super().__init__()
        self.client = client
        self.options = options
        self._current_mutation: Mutation[T] | None = None
        self._mutate_callbacks: _MutateCallbacks | None = None
        self.set_options(options)
        self._current_result = self._build_result()

    def set_options(self, options: MutationOptions | None = None) -> None:
        self.options = self.client.default_mutation_options(options)

    def on_unsubscribe(self) -> None:
        if not self.listeners and self._current_mutation is not None:
            self._current_mutation.remove_observer(self)

    def on_mutation_update(self, action: MutationAction) -> None:
        self._current_result = self._build_result()
        self._notify(
            on_success=isinstance(action, SuccessAction),
            on_error=isinstance(action, ErrorAction),
        )

    def get_current_result(self) -> MutationObserverResult[T]:
        return self._current_result

    def reset(self) -> None:
        """Forget the current mutation and return to the idle result."""
        if self._current_mutation is not None:
            self._current_mutation.remove_observer(self)
        self._current_mutation = None
        self._current_result = self._build_result()
        self._notify(on_success=False, on_error=False)

    async def mutate(
        self,
        variables: Any = None,
        *,
        on_success: Callable[[Any, Any, Any], Any] | None = None,
        on_error: Callable[[Exception, Any, Any], Any] | None = None,
        on_settled: Callable[[Any, Exception | None, Any, Any], Any] | None = None,
    ) -> T:
        """Start a new mutation and wait for its result.

        Raises:
            Exception: Whatever the mutation function finally raised.
        """
        self._mutate_callbacks = _MutateCallbacks(on_success, on_error, on_settled)
        if self._current_mutation is not None:
            self._current_mutation.remove_observer(self)

        options = self.options
        if variables is not None:
            options = replace(options, variables=variables)
        mutation: Mutation[T] = self.client.get_mutation_cache().build(
            self.client, options
        )
        self._current_mutation = mutation
        mutation.add_observer(self)
        return await mutation.execute()

    def _build_result(self) -> MutationObserverResult[T]:
        state: MutationState[T] = (
            self._current_mutation.state
            if self._current_mutation is not None
            else MutationState()
        )
        return MutationObserverResult(
            status=state.status,
            data=state.data,
            error=state.error,
            variables=state.variables,
            context=state.context,
            failure_count=state.failure_count,
            is_paused=state.is_paused,
            **status_flags(state.status),
        )

    def _notify(self, *, on_success: bool, on_error: bool) -> None:
        result = self._current_result
        callbacks = self._mutate_callbacks

        def notify() -> None:
            if callbacks is not None:
                if on_success:
                    if callbacks.on_success is not None:
                        callbacks.on_success(
                            result.data, result.variables, result.context
                        )
                    if callbacks.on_settled is not None:
                        callbacks.on_settled(
                            result.data, None, result.variables, result.context
                        )
                elif on_error and result.error is not None:
                    if callbacks.on_error is not None:
                        callbacks.on_error(
                            result.error, result.variables, result.context
                        )
                    if callbacks.on_settled is not None:
                        callbacks.on_settled(
                            None, result.error, result.variables, result.context
                        )

            for listener in list(self.listeners):
                listener(result)

        self.client.notify_manager.batch(notify)


__all__ = ["MutationObserver"]
