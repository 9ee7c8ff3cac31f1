"""Tests for the retry engine."""

import asyncio
from typing import Any

import pytest

from asyncquery import FetchCancelledError, OnlineManager, Retryer
from asyncquery.retryer import default_retry_delay


class TestRetryCount:
    """Tests for retry policies."""

    async def test_retry_two_means_three_calls(self) -> None:
        """Test that retry=2 gives one attempt plus two retries."""
        calls = 0

        async def fn() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        retryer: Retryer[None] = Retryer(fn, retry=2, retry_delay=0)
        with pytest.raises(RuntimeError, match="boom"):
            await retryer.future
        assert calls == 3
        assert retryer.failure_count == 2

    async def test_success_after_failures(self) -> None:
        """Test that a later success resolves the future."""
        calls = 0
        succeeded: list[str] = []
        failures: list[int] = []

        async def fn() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise RuntimeError("flaky")
            return "ok"

        retryer: Retryer[str] = Retryer(
            fn,
            retry=5,
            retry_delay=1,
            on_success=succeeded.append,
            on_fail=lambda count, error: failures.append(count),
        )
        assert await retryer.future == "ok"
        assert calls == 3
        assert succeeded == ["ok"]
        assert failures == [1, 2]

    async def test_retry_false(self) -> None:
        """Test that retry=False rejects after the first failure."""
        errors: list[Exception] = []

        def fn() -> Any:
            raise ValueError("sync failure")

        retryer: Retryer[Any] = Retryer(fn, retry=False, on_error=errors.append)
        with pytest.raises(ValueError, match="sync failure"):
            await retryer.future
        assert len(errors) == 1

    async def test_retry_function(self) -> None:
        """Test that a retry callable decides per failure."""
        calls = 0

        async def fn() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        retryer: Retryer[None] = Retryer(
            fn, retry=lambda count, error: count < 1, retry_delay=0
        )
        with pytest.raises(RuntimeError):
            await retryer.future
        assert calls == 2

    async def test_retry_delay_function(self) -> None:
        """Test that the delay callable receives the failure count."""
        delays: list[int] = []

        async def fn() -> None:
            raise RuntimeError("boom")

        def retry_delay(count: int) -> float:
            delays.append(count)
            return 1

        retryer: Retryer[None] = Retryer(fn, retry=2, retry_delay=retry_delay)
        with pytest.raises(RuntimeError):
            await retryer.future
        assert delays == [0, 1]

    def test_default_retry_delay(self) -> None:
        """Test exponential backoff capped at 30 seconds."""
        assert default_retry_delay(0) == 1000
        assert default_retry_delay(1) == 2000
        assert default_retry_delay(3) == 8000
        assert default_retry_delay(10) == 30000


class TestRetryPause:
    """Tests for pausing while offline."""

    async def test_pauses_while_offline(self) -> None:
        """Test that no attempt runs while offline and failures do not grow."""
        online_manager = OnlineManager()
        online_manager.set_online(False)
        events: list[str] = []
        calls = 0

        async def fn() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("network down")
            return "ok"

        retryer: Retryer[str] = Retryer(
            fn,
            retry=3,
            retry_delay=0,
            on_pause=lambda: events.append("pause"),
            on_continue=lambda: events.append("continue"),
            online_manager=online_manager,
        )
        await asyncio.sleep(0.05)
        assert calls == 1
        assert retryer.is_paused
        assert retryer.failure_count == 1
        assert events == ["pause"]

        online_manager.set_online(True)
        assert await retryer.future == "ok"
        assert calls == 2
        assert retryer.failure_count == 1
        assert events == ["pause", "continue"]

    async def test_proceed_continues(self) -> None:
        """Test that proceed forces the next attempt while paused."""
        online_manager = OnlineManager()
        online_manager.set_online(False)
        calls = 0

        async def fn() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return "ok"

        retryer: Retryer[str] = Retryer(
            fn, retry=1, retry_delay=0, online_manager=online_manager
        )
        await asyncio.sleep(0.01)
        assert retryer.is_paused

        retryer.proceed()
        assert await retryer.future == "ok"


class TestRetryCancel:
    """Tests for cancellation."""

    async def test_cancel_rejects_and_cancels_transport(self) -> None:
        """Test that cancel rejects and cancels a cancelable attempt."""
        tasks: list[asyncio.Task[str]] = []

        async def slow() -> str:
            await asyncio.sleep(10)
            return "late"

        def fn() -> asyncio.Task[str]:
            task = asyncio.get_running_loop().create_task(slow())
            tasks.append(task)
            return task

        retryer: Retryer[str] = Retryer(fn)
        assert retryer.is_transport_cancelable

        retryer.cancel(revert=True)
        with pytest.raises(FetchCancelledError) as exc_info:
            await retryer.future
        assert exc_info.value.revert
        assert not exc_info.value.silent

        await asyncio.sleep(0.01)
        assert tasks[0].cancelled()

    async def test_plain_coroutine_is_not_transport_cancelable(self) -> None:
        """Test that a coroutine attempt is not transport cancelable."""

        async def fn() -> str:
            return "ok"

        retryer: Retryer[str] = Retryer(fn)
        assert not retryer.is_transport_cancelable
        assert await retryer.future == "ok"

    async def test_cancel_retry_stops_scheduling(self) -> None:
        """Test that cancel_retry rejects at the next retry point."""
        calls = 0

        async def fn() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        retryer: Retryer[None] = Retryer(fn, retry=3, retry_delay=20)
        await asyncio.sleep(0.005)
        retryer.cancel_retry()
        with pytest.raises(RuntimeError, match="boom"):
            await retryer.future
        assert calls == 1

    async def test_cancel_after_resolution_is_noop(self) -> None:
        """Test that cancelling a resolved retryer keeps its value."""

        async def fn() -> str:
            return "ok"

        retryer: Retryer[str] = Retryer(fn)
        assert await retryer.future == "ok"
        retryer.cancel()
        assert retryer.future.result() == "ok"
