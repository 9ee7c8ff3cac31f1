"""Tests for notification batching."""

import asyncio

import pytest

from asyncquery import NotifyManager


class TestNotifyManager:
    """Tests for NotifyManager."""

    async def test_schedule_defers_to_next_iteration(self) -> None:
        """Test that scheduled callbacks do not run synchronously."""
        manager = NotifyManager()
        calls: list[str] = []
        manager.schedule(lambda: calls.append("a"))
        assert calls == []
        await asyncio.sleep(0)
        assert calls == ["a"]

    async def test_batch_flushes_once_after_outermost(self) -> None:
        """Test that nested batches flush once, when the outer one closes."""
        manager = NotifyManager()
        calls: list[str] = []
        batches: list[int] = []

        def run_batch(callback):  # type: ignore[no-untyped-def]
            batches.append(1)
            callback()

        manager.set_batch_notify_function(run_batch)

        def inner() -> None:
            manager.schedule(lambda: calls.append("inner"))

        def outer() -> None:
            manager.schedule(lambda: calls.append("outer"))
            manager.batch(inner)
            assert manager.is_batching

        manager.batch(outer)
        assert not manager.is_batching
        assert calls == []
        await asyncio.sleep(0)
        assert calls == ["outer", "inner"]
        assert batches == [1]

    async def test_batch_returns_value(self) -> None:
        """Test that batch returns the callback's result."""
        manager = NotifyManager()
        assert manager.batch(lambda: 42) == 42

    async def test_batch_calls(self) -> None:
        """Test that wrapped calls are scheduled with their arguments."""
        manager = NotifyManager()
        received: list[int] = []
        wrapped = manager.batch_calls(received.append)
        wrapped(1)
        wrapped(2)
        assert received == []
        await asyncio.sleep(0)
        assert received == [1, 2]

    async def test_notify_function(self) -> None:
        """Test that every notification goes through the notify function."""
        manager = NotifyManager()
        seen: list[str] = []

        def notify(callback):  # type: ignore[no-untyped-def]
            seen.append("wrapped")
            callback()

        manager.set_notify_function(notify)
        manager.batch(lambda: manager.schedule(lambda: seen.append("called")))
        await asyncio.sleep(0)
        assert seen == ["wrapped", "called"]

    async def test_batch_flushes_on_error(self) -> None:
        """Test that an exception inside a batch still closes it."""
        manager = NotifyManager()
        calls: list[str] = []

        def failing() -> None:
            manager.schedule(lambda: calls.append("a"))
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            manager.batch(failing)
        assert not manager.is_batching
        await asyncio.sleep(0)
        assert calls == ["a"]
