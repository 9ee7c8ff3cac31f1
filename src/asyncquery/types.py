"""Core types for the asyncquery library."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, fields, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Literal,
    Protocol,
    TypedDict,
    TypeVar,
    Union,
)

if TYPE_CHECKING:
    from asyncquery.query import Query, QueryState

T = TypeVar("T")
TOptions = TypeVar("TOptions", bound="_Options")

# Duration type alias
Duration = str | int | float  # "30s", "5m", "2h", "1d" or milliseconds

QueryKey = str | Sequence[Any]
MutationKey = str | Sequence[Any]
QueryStatus = Literal["idle", "loading", "error", "success"]
MutationStatus = Literal["idle", "loading", "error", "success"]
RefetchMode = Union[bool, Literal["always"]]

RetryValue = Union[bool, int, Callable[[int, Exception], bool]]
RetryDelayValue = Union[int, float, Callable[[int], float]]
Updater = Union[T, Callable[[Any], T]]
QueryKeyHashFunction = Callable[[Any], str]


@dataclass(frozen=True, slots=True)
class QueryFunctionContext:
    """Argument handed to every query function."""

    query_key: list[Any]
    page_param: Any = None


QueryFunction = Callable[[QueryFunctionContext], Awaitable[Any] | Any]


class InfiniteData(TypedDict):
    """Stored data of a paginated query."""

    pages: list[Any]
    page_params: list[Any]


@dataclass(slots=True)
class FetchOptions:
    """Per-call fetch flags."""

    cancel_refetch: bool = False
    meta: Any = None
    throw_on_error: bool = False


@dataclass(slots=True)
class FetchContext:
    """Mutable context handed to a query behavior before a fetch starts."""

    fetch_fn: Callable[[], Any]
    fetch_options: FetchOptions | None
    options: QueryOptions
    query_key: list[Any]
    state: QueryState


class QueryBehavior(Protocol):
    """Hook allowed to rewrite the fetch function of a query."""

    def on_fetch(self, context: FetchContext) -> None: ...


class _Options:
    """Field-wise merge for option dataclasses.

    ``None`` means unset; the right-hand side wins for every field it sets.
    """

    __slots__ = ()

    def merged(self: TOptions, *others: TOptions | None) -> TOptions:
        result = self
        for other in others:
            if other is None:
                continue
            changes = {
                f.name: getattr(other, f.name)
                for f in fields(other)  # type: ignore[arg-type]
                if f.name != "defaulted" and getattr(other, f.name) is not None
            }
            result = replace(result, **changes)  # type: ignore[type-var]
        return result


@dataclass(slots=True)
class QueryOptions(_Options):
    """Options understood by queries and query observers."""

    query_key: QueryKey | None = None
    query_hash: str | None = None
    query_key_hash_fn: QueryKeyHashFunction | None = None
    query_fn: QueryFunction | None = None
    retry: RetryValue | None = None
    retry_delay: RetryDelayValue | None = None
    cache_time: Duration | None = None
    is_data_equal: Callable[[Any, Any], bool] | None = None
    initial_data: Any = None
    initial_data_updated_at: int | Callable[[], int | None] | None = None
    behavior: QueryBehavior | None = None
    structural_sharing: bool | None = None
    get_next_page_param: Callable[[Any, list[Any]], Any] | None = None
    get_previous_page_param: Callable[[Any, list[Any]], Any] | None = None

    # Observer options
    enabled: bool | None = None
    stale_time: Duration | None = None
    refetch_interval: Duration | None = None
    refetch_interval_in_background: bool | None = None
    refetch_on_window_focus: RefetchMode | None = None
    refetch_on_reconnect: RefetchMode | None = None
    refetch_on_mount: RefetchMode | None = None
    retry_on_mount: bool | None = None
    notify_on_change_props: list[str] | Literal["tracked"] | None = None
    notify_on_change_props_exclusions: list[str] | None = None
    on_success: Callable[[Any], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None
    on_settled: Callable[[Any, Exception | None], Any] | None = None
    use_error_boundary: bool | None = None
    select: Callable[[Any], Any] | None = None
    suspense: bool | None = None
    keep_previous_data: bool | None = None
    placeholder_data: Any = None

    defaulted: bool = False


@dataclass(slots=True)
class MutationOptions(_Options):
    """Options understood by mutations and mutation observers."""

    mutation_fn: Callable[[Any], Awaitable[Any] | Any] | None = None
    mutation_key: MutationKey | None = None
    variables: Any = None
    on_mutate: Callable[[Any], Any] | None = None
    on_success: Callable[[Any, Any, Any], Any] | None = None
    on_error: Callable[[Exception, Any, Any], Any] | None = None
    on_settled: Callable[[Any, Exception | None, Any, Any], Any] | None = None
    retry: RetryValue | None = None
    retry_delay: RetryDelayValue | None = None
    use_error_boundary: bool | None = None

    defaulted: bool = False


@dataclass(slots=True)
class DefaultOptions:
    """Client-wide defaults, the lowest precedence layer."""

    queries: QueryOptions | None = None
    mutations: MutationOptions | None = None


@dataclass(slots=True)
class QueryFilters:
    """Selects a subset of the query cache for batch operations."""

    query_key: QueryKey | None = None
    exact: bool | None = None
    active: bool | None = None
    inactive: bool | None = None
    stale: bool | None = None
    fetching: bool | None = None
    predicate: Callable[[Query[Any]], bool] | None = None


@dataclass(slots=True)
class InvalidateQueryFilters(QueryFilters):
    """Query filters plus which invalidated queries to refetch."""

    refetch_active: bool | None = None
    refetch_inactive: bool | None = None


@dataclass(frozen=True, slots=True)
class QueryObserverResult(Generic[T]):
    """Display-ready projection of a query for one observer."""

    status: QueryStatus
    data: T | None
    data_updated_at: int
    error: Exception | None
    error_updated_at: int
    failure_count: int
    is_idle: bool
    is_loading: bool
    is_success: bool
    is_error: bool
    is_fetched: bool
    is_fetched_after_mount: bool
    is_fetching: bool
    is_loading_error: bool
    is_placeholder_data: bool
    is_previous_data: bool
    is_refetch_error: bool
    is_stale: bool


@dataclass(frozen=True, slots=True)
class InfiniteQueryObserverResult(QueryObserverResult[T]):
    """Observer result of a paginated query."""

    has_next_page: bool | None = None
    has_previous_page: bool | None = None
    is_fetching_next_page: bool = False
    is_fetching_previous_page: bool = False


@dataclass(frozen=True, slots=True)
class MutationObserverResult(Generic[T]):
    """Display-ready projection of the latest mutation of an observer."""

    status: MutationStatus
    data: T | None
    error: Exception | None
    variables: Any
    context: Any
    failure_count: int
    is_paused: bool
    is_idle: bool
    is_loading: bool
    is_success: bool
    is_error: bool


def status_flags(status: str) -> dict[str, bool]:
    """Boolean shortcuts derived from a status string."""
    return {
        "is_idle": status == "idle",
        "is_loading": status == "loading",
        "is_success": status == "success",
        "is_error": status == "error",
    }


class DehydratedQuery(TypedDict):
    query_key: Any
    query_hash: str
    state: dict[str, Any]


class DehydratedMutation(TypedDict):
    mutation_key: Any
    state: dict[str, Any]


class DehydratedState(TypedDict):
    queries: list[DehydratedQuery]
    mutations: list[DehydratedMutation]


@dataclass(slots=True)
class PersistedClient:
    """A dehydrated client plus the metadata needed to validate it."""

    timestamp: int
    buster: str
    client_state: DehydratedState = field(
        default_factory=lambda: {"queries": [], "mutations": []}
    )
