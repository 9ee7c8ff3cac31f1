"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from asyncquery import (
    FocusManager,
    NotifyManager,
    OnlineManager,
    QueryClient,
    QueryFunctionContext,
)


@pytest.fixture
def focus_manager() -> FocusManager:
    """Create a focus manager reporting focused."""
    return FocusManager()


@pytest.fixture
def online_manager() -> OnlineManager:
    """Create an online manager reporting online."""
    return OnlineManager()


@pytest.fixture
def client(focus_manager: FocusManager, online_manager: OnlineManager) -> QueryClient:
    """Create a fresh QueryClient with its own signal services."""
    return QueryClient(
        focus_manager=focus_manager,
        online_manager=online_manager,
        notify_manager=NotifyManager(),
    )


@pytest.fixture
def counting_fetch() -> Callable[..., Any]:
    """Build a query function that counts calls and returns a value."""

    def build(
        value: Any = "data", delay: float = 0
    ) -> Callable[[QueryFunctionContext], Any]:
        async def fetch(ctx: QueryFunctionContext) -> Any:
            fetch.calls += 1  # type: ignore[attr-defined]
            if delay:
                await asyncio.sleep(delay)
            return value

        fetch.calls = 0  # type: ignore[attr-defined]
        return fetch

    return build


@pytest.fixture
def flush() -> Callable[[], Any]:
    """Return a coroutine function letting deferred notifications run."""

    async def run() -> None:
        for _ in range(3):
            await asyncio.sleep(0)

    return run
