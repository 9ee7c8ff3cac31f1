"""Paginated queries: the page-fetching behavior and its observer."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Generator
from dataclasses import fields, replace
from typing import Any, cast

from asyncquery.errors import MissingQueryFunctionError
from asyncquery.query_observer import QueryObserver
from asyncquery.types import (
    FetchContext,
    FetchOptions,
    InfiniteData,
    InfiniteQueryObserverResult,
    QueryFunctionContext,
    QueryOptions,
)
from asyncquery.utils import hash_query_key, maybe_await


def get_next_page_param(options: QueryOptions, pages: list[Any]) -> Any:
    if options.get_next_page_param is None:
        return None
    return options.get_next_page_param(pages[-1] if pages else None, pages)


def get_previous_page_param(options: QueryOptions, pages: list[Any]) -> Any:
    if options.get_previous_page_param is None:
        return None
    return options.get_previous_page_param(pages[0] if pages else None, pages)


def has_next_page(options: QueryOptions, pages: list[Any] | None) -> bool | None:
    """Whether ``get_next_page_param`` yields a cursor; ``None`` if unknown."""
    if options.get_next_page_param is None or not isinstance(pages, list):
        return None
    return get_next_page_param(options, pages) is not None


def has_previous_page(options: QueryOptions, pages: list[Any] | None) -> bool | None:
    if options.get_previous_page_param is None or not isinstance(pages, list):
        return None
    return get_previous_page_param(options, pages) is not None


def _fetch_more_meta(meta: Any) -> dict[str, Any] | None:
    if isinstance(meta, dict):
        fetch_more = meta.get("fetch_more")
        if isinstance(fetch_more, dict):
            return fetch_more
    return None


class PageFetch:
    """An awaitable paged fetch whose transport can be cancelled."""

    def __init__(self, coro: Coroutine[Any, Any, InfiniteData]) -> None:
        self.cancelled = False
        self._task = asyncio.get_running_loop().create_task(coro)

    def cancel(self) -> None:
        self.cancelled = True
        self._task.cancel()

    def __await__(self) -> Generator[Any, None, InfiniteData]:
        return self._task.__await__()


class InfiniteQueryBehavior:
    """Rewrites a query's fetch function to fetch pages.

    With ``fetch_more`` metadata one page is fetched and prepended or
    appended. Otherwise every cached page is fetched again, in order: the
    first with its stored cursor, each later one with the cursor that
    ``get_next_page_param`` computes from the freshly fetched pages.
    """

    def on_fetch(self, context: FetchContext) -> None:
        fetch_options = context.fetch_options
        fetch_more = _fetch_more_meta(fetch_options.meta if fetch_options else None)

        def fetch_fn() -> PageFetch:
            return PageFetch(_fetch_pages(context, fetch_more))

        context.fetch_fn = fetch_fn


async def _fetch_pages(
    context: FetchContext, fetch_more: dict[str, Any] | None
) -> InfiniteData:
    options = context.options
    query_fn = options.query_fn
    data = context.state.data if isinstance(context.state.data, dict) else {}
    old_pages: list[Any] = list(data.get("pages") or [])
    old_page_params: list[Any] = list(data.get("page_params") or [])
    new_page_params = list(old_page_params)

    async def fetch_page(
        pages: list[Any],
        manual: bool = False,
        param: Any = None,
        previous: bool = False,
    ) -> list[Any]:
        nonlocal new_page_params
        if param is None and not manual and pages:
            return pages
        if query_fn is None:
            raise MissingQueryFunctionError(hash_query_key(context.query_key))

        fn_context = QueryFunctionContext(query_key=context.query_key, page_param=param)
        page = await maybe_await(query_fn(fn_context))
        if previous:
            new_page_params = [param, *new_page_params]
            return [page, *pages]
        new_page_params = [*new_page_params, param]
        return [*pages, page]

    direction = fetch_more.get("direction") if fetch_more else None
    page_param = fetch_more.get("page_param") if fetch_more else None
    manual = page_param is not None

    if not old_pages:
        pages = await fetch_page([])
    elif direction == "forward":
        param = page_param if manual else get_next_page_param(options, old_pages)
        pages = await fetch_page(old_pages, manual, param)
    elif direction == "backward":
        param = page_param if manual else get_previous_page_param(options, old_pages)
        pages = await fetch_page(old_pages, manual, param, previous=True)
    else:
        # TODO: cursors of later pages are recomputed from the refetched
        # pages, so a shifted first page can skip or repeat items.
        new_page_params = []
        manual = options.get_next_page_param is None
        first_param = old_page_params[0] if old_page_params else None
        pages = await fetch_page([], manual, first_param)
        for i in range(1, len(old_pages)):
            if manual:
                param = old_page_params[i] if i < len(old_page_params) else None
            else:
                param = get_next_page_param(options, pages)
            pages = await fetch_page(pages, manual, param)

    return {"pages": pages, "page_params": new_page_params}


def infinite_query_behavior() -> InfiniteQueryBehavior:
    return InfiniteQueryBehavior()


class InfiniteQueryObserver(QueryObserver[InfiniteData]):
    """Query observer for paginated data stored as ``{"pages", "page_params"}``.

    Usage:
        observer = InfiniteQueryObserver(
            client,
            QueryOptions(
                query_key="projects",
                query_fn=lambda ctx: load_projects(cursor=ctx.page_param),
                get_next_page_param=lambda last_page, pages: last_page["next"],
            ),
        )
        await observer.fetch_next_page()
    """

    def set_options(self, options: QueryOptions | None = None) -> None:
        options = replace(options or QueryOptions(), behavior=infinite_query_behavior())
        super().set_options(options)

    async def fetch_next_page(
        self, page_param: Any = None, *, throw_on_error: bool = False
    ) -> InfiniteQueryObserverResult[InfiniteData]:
        return await self._fetch_more("forward", page_param, throw_on_error)

    async def fetch_previous_page(
        self, page_param: Any = None, *, throw_on_error: bool = False
    ) -> InfiniteQueryObserverResult[InfiniteData]:
        return await self._fetch_more("backward", page_param, throw_on_error)

    async def _fetch_more(
        self, direction: str, page_param: Any, throw_on_error: bool
    ) -> InfiniteQueryObserverResult[InfiniteData]:
        fetch_more = {"direction": direction, "page_param": page_param}
        result = await self.fetch(
            FetchOptions(
                cancel_refetch=True,
                throw_on_error=throw_on_error,
                meta={"fetch_more": fetch_more},
            )
        )
        return cast("InfiniteQueryObserverResult[InfiniteData]", result)

    def get_new_result(self) -> InfiniteQueryObserverResult[InfiniteData]:
        state = self.get_current_query().state
        result = super().get_new_result()
        pages = state.data.get("pages") if isinstance(state.data, dict) else None
        fetch_more = _fetch_more_meta(state.fetch_meta) or {}
        direction = fetch_more.get("direction")

        return InfiniteQueryObserverResult(
            **{f.name: getattr(result, f.name) for f in fields(result)},
            has_next_page=has_next_page(self.options, pages),
            has_previous_page=has_previous_page(self.options, pages),
            is_fetching_next_page=state.is_fetching and direction == "forward",
            is_fetching_previous_page=state.is_fetching and direction == "backward",
        )


__all__ = [
    "InfiniteQueryBehavior",
    "InfiniteQueryObserver",
    "PageFetch",
    "has_next_page",
    "has_previous_page",
    "infinite_query_behavior",
]
