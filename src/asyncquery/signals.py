"""Focus and connectivity signal services.

The core never wires platform events itself. An adapter (a GUI toolkit, a
network monitor, a test) pushes values in with ``set_focused``/``set_online``
or installs its own wiring through ``set_event_listener``.
"""

from __future__ import annotations

from collections.abc import Callable

from asyncquery.subscribable import Subscribable

SignalListener = Callable[[], None]
SignalHandler = Callable[[bool | None], None]
SignalSetup = Callable[[SignalHandler], Callable[[], None]]


class _SignalManager(Subscribable[SignalListener]):
    def __init__(self, value: bool = True) -> None:
        super().__init__()
        self._value = value
        self._remove_event_listener: Callable[[], None] | None = None

    def _set(self, value: bool) -> None:
        self._value = value
        if value:
            self._emit()

    def _emit(self) -> None:
        for listener in list(self.listeners):
            listener()

    def set_event_listener(self, setup: SignalSetup) -> None:
        """Install an event source, tearing down the previous one.

        ``setup`` receives a handler to call with ``True``/``False`` (or with
        ``None`` to only re-notify listeners) and returns a teardown function.
        """
        self.teardown()

        def handler(value: bool | None = None) -> None:
            if value is None:
                self._emit()
            else:
                self._set(value)

        self._remove_event_listener = setup(handler)

    def teardown(self) -> None:
        if self._remove_event_listener is not None:
            self._remove_event_listener()
            self._remove_event_listener = None


class FocusManager(_SignalManager):
    """Tells whether the consumer is in the foreground."""

    def is_focused(self) -> bool:
        return self._value

    def set_focused(self, focused: bool) -> None:
        """Set the focus state, notifying listeners when it becomes focused."""
        self._set(focused)

    def on_focus(self) -> None:
        self._emit()


class OnlineManager(_SignalManager):
    """Tells whether the backend is reachable."""

    def is_online(self) -> bool:
        return self._value

    def set_online(self, online: bool) -> None:
        """Set connectivity, notifying listeners when it comes back."""
        self._set(online)

    def on_online(self) -> None:
        self._emit()


__all__ = ["FocusManager", "OnlineManager"]
