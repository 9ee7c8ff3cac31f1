"""Listener registry shared by caches, observers and signal managers."""

from collections.abc import Callable
from typing import Any, Generic, TypeVar

TListener = TypeVar("TListener", bound=Callable[..., Any])


def _noop(*args: Any) -> None:
    return None


class Subscribable(Generic[TListener]):
    """Keeps a list of listeners and runs hooks around (un)subscription.

    Subclasses override :meth:`on_subscribe` / :meth:`on_unsubscribe` to
    start and stop work lazily, e.g. an observer only attaches to its query
    once it has a first listener.
    """

    def __init__(self) -> None:
        self.listeners: list[TListener] = []

    def subscribe(self, listener: TListener | None = None) -> Callable[[], None]:
        """Add a listener and return a function removing it again."""
        callback: Any = listener if listener is not None else _noop
        self.listeners.append(callback)
        self.on_subscribe()

        def unsubscribe() -> None:
            self.listeners = [x for x in self.listeners if x is not callback]
            self.on_unsubscribe()

        return unsubscribe

    def has_listeners(self) -> bool:
        return len(self.listeners) > 0

    def on_subscribe(self) -> None:
        pass

    def on_unsubscribe(self) -> None:
        pass


__all__ = ["Subscribable"]
