"""Key hashing, matching and timing helpers."""

from __future__ import annotations

import asyncio
import inspect
import json
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import fields
from typing import TYPE_CHECKING, Any, TypeVar

from asyncquery.types import QueryFilters, QueryKey, QueryOptions

if TYPE_CHECKING:
    from asyncquery.query import Query

T = TypeVar("T")

_SCALARS = (str, int, float, bool, bytes, type(None))


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def ensure_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def hash_query_key(query_key: QueryKey | None) -> str:
    """Deterministic hash of a query key.

    Mapping keys are sorted at every depth, so ``{"a": 1, "b": 2}`` and
    ``{"b": 2, "a": 1}`` hash identically.
    """
    return json.dumps(
        ensure_list(query_key),
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )


def hash_query_key_by_options(
    query_key: QueryKey | None, options: QueryOptions | None = None
) -> str:
    hash_fn = (options.query_key_hash_fn if options else None) or hash_query_key
    return hash_fn(query_key)


def partial_deep_equal(a: Any, b: Any) -> bool:
    """Check if ``b`` is contained in ``a``, record by record and item by item."""
    if a is b:
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        return all(k in a and partial_deep_equal(a[k], v) for k, v in b.items())
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(b) > len(a):
            return False
        return all(partial_deep_equal(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    return bool(a == b)


def partial_match_key(a: QueryKey | None, b: QueryKey | None) -> bool:
    """Check if key ``b`` is a prefix (or partial record) of key ``a``."""
    return partial_deep_equal(ensure_list(a), ensure_list(b))


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    return isinstance(a, _SCALARS) and type(a) is type(b) and a == b


def replace_equal_deep(a: Any, b: Any) -> Any:
    """Return ``b`` while reusing every part of ``a`` that is deeply equal.

    If ``a`` and ``b`` are deeply equal, ``a`` itself is returned, so consumers
    comparing by identity see no change.
    """
    if a is b:
        return a

    if isinstance(a, list) and isinstance(b, list):
        list_copy = [
            replace_equal_deep(a[i], item) if i < len(a) else item
            for i, item in enumerate(b)
        ]
        equal = len(a) == len(b) and all(x is y for x, y in zip(list_copy, a))
        return a if equal else list_copy

    if isinstance(a, dict) and isinstance(b, dict):
        dict_copy = {
            k: replace_equal_deep(a[k], v) if k in a else v for k, v in b.items()
        }
        equal = len(a) == len(b) and all(
            k in a and dict_copy[k] is a[k] for k in dict_copy
        )
        return a if equal else dict_copy

    return a if _same(a, b) else b


def shallow_equal_objects(a: Any, b: Any) -> bool:
    """Field-by-field identity comparison of two result dataclasses."""
    if a is None or b is None or type(a) is not type(b):
        return False
    return all(_same(getattr(a, f.name), getattr(b, f.name)) for f in fields(a))


def changed_fields(a: Any, b: Any) -> list[str]:
    return [
        f.name for f in fields(b) if not _same(getattr(a, f.name), getattr(b, f.name))
    ]


def functional_update(updater: Any, value: Any) -> Any:
    return updater(value) if callable(updater) else updater


def is_valid_timeout(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value >= 0
        and not math.isinf(value)
    )


def time_until_stale(updated_at: int, stale_time: float | None) -> float:
    return max(updated_at + (stale_time or 0) - now_ms(), 0)


def difference(a: list[T], b: list[T]) -> list[T]:
    return [x for x in a if x not in b]


def replace_at(items: list[T], index: int, value: T) -> list[T]:
    copy = list(items)
    copy[index] = value
    return copy


async def maybe_await(value: Awaitable[T] | T) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


def schedule_later(delay_ms: float, fn: Callable[[], Any]) -> asyncio.TimerHandle:
    """Run ``fn`` after ``delay_ms`` milliseconds on the running loop."""
    loop = asyncio.get_running_loop()
    return loop.call_later(delay_ms / 1000, fn)


def _consume(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


def settled(future: asyncio.Future[Any] | None) -> asyncio.Future[None]:
    """A future resolving to ``None`` once ``future`` settles either way."""
    loop = asyncio.get_running_loop()
    result: asyncio.Future[None] = loop.create_future()
    if future is None:
        result.set_result(None)
        return result

    def _done(f: asyncio.Future[Any]) -> None:
        _consume(f)
        if not result.done():
            result.set_result(None)

    future.add_done_callback(_done)
    return result


def mark_retrieved(future: asyncio.Future[Any]) -> None:
    """Keep asyncio from reporting an exception nobody awaited."""
    future.add_done_callback(_consume)


def match_query(filters: QueryFilters, query: Query[Any]) -> bool:
    if filters.query_key is not None:
        if filters.exact:
            if query.query_hash != hash_query_key_by_options(
                filters.query_key, query.options
            ):
                return False
        elif not partial_match_key(query.query_key, filters.query_key):
            return False

    is_active: bool | None = None
    if filters.inactive is False or (filters.active and not filters.inactive):
        is_active = True
    elif filters.active is False or (filters.inactive and not filters.active):
        is_active = False

    if is_active is not None and query.is_active() != is_active:
        return False
    if filters.stale is not None and query.is_stale() != filters.stale:
        return False
    if filters.fetching is not None and query.is_fetching() != filters.fetching:
        return False
    if filters.predicate is not None and not filters.predicate(query):
        return False
    return True
