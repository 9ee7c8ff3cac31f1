"""A single execution of a write operation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from asyncquery.errors import MissingMutationFunctionError
from asyncquery.logger import get_logger
from asyncquery.retryer import Retryer
from asyncquery.signals import FocusManager, OnlineManager
from asyncquery.types import MutationOptions, MutationStatus
from asyncquery.utils import maybe_await, settled

if TYPE_CHECKING:
    from asyncquery.mutation_cache import MutationCache
    from asyncquery.mutation_observer import MutationObserver

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class MutationState(Generic[T]):
    status: MutationStatus = "idle"
    data: T | None = None
    error: Exception | None = None
    variables: Any = None
    context: Any = None
    failure_count: int = 0
    is_paused: bool = False


@dataclass(frozen=True, slots=True)
class LoadingAction:
    variables: Any = None
    context: Any = None


@dataclass(frozen=True, slots=True)
class SuccessAction:
    data: Any


@dataclass(frozen=True, slots=True)
class ErrorAction:
    error: Exception


@dataclass(frozen=True, slots=True)
class FailedAction:
    pass


@dataclass(frozen=True, slots=True)
class PauseAction:
    pass


@dataclass(frozen=True, slots=True)
class ContinueAction:
    pass


@dataclass(frozen=True, slots=True)
class SetStateAction:
    state: MutationState[Any]


MutationAction = Union[
    LoadingAction,
    SuccessAction,
    ErrorAction,
    FailedAction,
    PauseAction,
    ContinueAction,
    SetStateAction,
]


def mutation_reducer(
    state: MutationState[T], action: MutationAction
) -> MutationState[T]:
    if isinstance(action, FailedAction):
        return replace(state, failure_count=state.failure_count + 1)
    if isinstance(action, PauseAction):
        return replace(state, is_paused=True)
    if isinstance(action, ContinueAction):
        return replace(state, is_paused=False)
    if isinstance(action, LoadingAction):
        return replace(
            state,
            context=action.context,
            data=None,
            error=None,
            is_paused=False,
            status="loading",
            variables=action.variables,
        )
    if isinstance(action, SuccessAction):
        return replace(
            state, data=action.data, error=None, is_paused=False, status="success"
        )
    if isinstance(action, ErrorAction):
        return replace(
            state,
            data=None,
            error=action.error,
            failure_count=state.failure_count + 1,
            is_paused=False,
            status="error",
        )
    if isinstance(action, SetStateAction):
        return action.state
    raise TypeError(f"Unknown mutation action: {action!r}")


class Mutation(Generic[T]):
    """One mutation execution, registered in the mutation cache.

    A mutation restored in ``loading`` status (e.g. after hydration) skips
    ``on_mutate`` when it is executed, so optimistic updates are computed at
    most once.
    """

    def __init__(
        self,
        *,
        mutation_id: int,
        mutation_cache: MutationCache,
        options: MutationOptions,
        default_options: MutationOptions | None = None,
        state: MutationState[T] | None = None,
        focus_manager: FocusManager | None = None,
        online_manager: OnlineManager | None = None,
    ) -> None:
        self.mutation_id = mutation_id
        self.mutation_cache = mutation_cache
        self.options = (default_options or MutationOptions()).merged(options)
        self.state: MutationState[T] = state or MutationState()
        self.observers: list[MutationObserver[Any]] = []
        self._focus_manager = focus_manager
        self._online_manager = online_manager
        self._retryer: Retryer[T] | None = None

    def __repr__(self) -> str:
        return f"Mutation({self.mutation_id}, status={self.state.status!r})"

    def set_state(self, state: MutationState[T]) -> None:
        self._dispatch(SetStateAction(state=state))

    def add_observer(self, observer: MutationObserver[Any]) -> None:
        if observer not in self.observers:
            self.observers.append(observer)

    def remove_observer(self, observer: MutationObserver[Any]) -> None:
        self.observers = [x for x in self.observers if x is not observer]
        if not self.observers and self.state.status in ("success", "error"):
            self.mutation_cache.remove(self)

    def cancel(self) -> asyncio.Future[None]:
        """Cancel the running attempt; the returned future never raises."""
        if self._retryer is None:
            return settled(None)
        self._retryer.cancel()
        return settled(self._retryer.future)

    async def resume(self) -> T:
        """Continue a paused mutation, or execute a restored one."""
        if self._retryer is not None:
            self._retryer.proceed()
            return await self._retryer.future
        get_logger().debug("Resuming mutation %s", self.mutation_id)
        return await self.execute()

    async def execute(self) -> T:
        """Run the mutation with its callbacks and return the result.

        Order: ``on_mutate`` (fresh starts only), the mutation function, then
        ``on_success``/``on_error`` followed by ``on_settled``, and only then
        the terminal state.
        """
        options = self.options
        restored = self.state.status == "loading"

        try:
            if not restored:
                self._dispatch(LoadingAction(variables=options.variables))
                context = None
                if options.on_mutate is not None:
                    context = await maybe_await(options.on_mutate(self.state.variables))
                if context is not self.state.context:
                    self._dispatch(
                        LoadingAction(variables=self.state.variables, context=context)
                    )

            data = await self._execute_mutation()

            if options.on_success is not None:
                await maybe_await(
                    options.on_success(data, self.state.variables, self.state.context)
                )
            if options.on_settled is not None:
                await maybe_await(
                    options.on_settled(
                        data, None, self.state.variables, self.state.context
                    )
                )
        except Exception as error:
            if self.mutation_cache.on_error is not None:
                self.mutation_cache.on_error(
                    error, self.state.variables, self.state.context, self
                )
            get_logger().error(
                "Mutation %s failed: %r", self.mutation_id, error, exc_info=error
            )
            if options.on_error is not None:
                await maybe_await(
                    options.on_error(error, self.state.variables, self.state.context)
                )
            if options.on_settled is not None:
                await maybe_await(
                    options.on_settled(
                        None, error, self.state.variables, self.state.context
                    )
                )
            self._dispatch(ErrorAction(error=error))
            self._optional_remove()
            raise

        self._dispatch(SuccessAction(data=data))
        self._optional_remove()
        return data

    def _optional_remove(self) -> None:
        if not self.observers:
            self.mutation_cache.remove(self)

    async def _execute_mutation(self) -> T:
        mutation_fn = self.options.mutation_fn
        variables = self.state.variables

        def run() -> Any:
            if mutation_fn is None:
                raise MissingMutationFunctionError()
            return mutation_fn(variables)

        self._retryer = Retryer(
            run,
            retry=0 if self.options.retry is None else self.options.retry,
            retry_delay=self.options.retry_delay,
            on_fail=lambda failure_count, error: self._dispatch(FailedAction()),
            on_pause=lambda: self._dispatch(PauseAction()),
            on_continue=lambda: self._dispatch(ContinueAction()),
            focus_manager=self._focus_manager,
            online_manager=self._online_manager,
        )
        return await self._retryer.future

    def _dispatch(self, action: MutationAction) -> None:
        self.state = mutation_reducer(self.state, action)

        def notify() -> None:
            for observer in list(self.observers):
                observer.on_mutation_update(action)
            self.mutation_cache.notify(self)

        self.mutation_cache.notify_manager.batch(notify)


__all__ = [
    "ContinueAction",
    "ErrorAction",
    "FailedAction",
    "LoadingAction",
    "Mutation",
    "MutationAction",
    "MutationState",
    "PauseAction",
    "SetStateAction",
    "SuccessAction",
    "mutation_reducer",
]
