"""asyncquery - Async query and mutation cache for Python."""

# Client and caches
from asyncquery.query_client import QueryClient
from asyncquery.query_cache import QueryCache
from asyncquery.mutation_cache import MutationCache

# Entries
from asyncquery.query import Query, QueryState
from asyncquery.mutation import Mutation, MutationState

# Observers
from asyncquery.query_observer import QueryObserver
from asyncquery.queries_observer import QueriesObserver
from asyncquery.infinite_query import InfiniteQueryObserver
from asyncquery.mutation_observer import MutationObserver

# Services
from asyncquery.notify import NotifyManager, create_notify_manager
from asyncquery.signals import FocusManager, OnlineManager
from asyncquery.retryer import Cancelable, Retryer

# Persistence
from asyncquery.hydration import dehydrate, hydrate
from asyncquery.persist import (
    persist_query_client,
    persist_query_client_restore,
    persist_query_client_save,
)
from asyncquery.persisters import (
    AsyncHttpPersister,
    AsyncMemoryPersister,
    AsyncPersister,
    AsyncRedisPersister,
)

# Errors and logging
from asyncquery.errors import (
    FetchCancelledError,
    MissingMutationFunctionError,
    MissingQueryFunctionError,
    is_cancelled_error,
)
from asyncquery.logger import get_logger, set_logger

# Helpers
from asyncquery.duration import parse_duration
from asyncquery.utils import hash_query_key, partial_match_key

# Core types
from asyncquery.types import (
    DefaultOptions,
    Duration,
    FetchOptions,
    InfiniteData,
    InfiniteQueryObserverResult,
    InvalidateQueryFilters,
    MutationObserverResult,
    MutationOptions,
    PersistedClient,
    QueryFilters,
    QueryFunctionContext,
    QueryKey,
    QueryObserverResult,
    QueryOptions,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncHttpPersister",
    "AsyncMemoryPersister",
    "AsyncPersister",
    "AsyncRedisPersister",
    "Cancelable",
    "DefaultOptions",
    "Duration",
    "FetchCancelledError",
    "FetchOptions",
    "FocusManager",
    "InfiniteData",
    "InfiniteQueryObserver",
    "InfiniteQueryObserverResult",
    "InvalidateQueryFilters",
    "MissingMutationFunctionError",
    "MissingQueryFunctionError",
    "Mutation",
    "MutationCache",
    "MutationObserver",
    "MutationObserverResult",
    "MutationOptions",
    "MutationState",
    "NotifyManager",
    "OnlineManager",
    "PersistedClient",
    "QueriesObserver",
    "Query",
    "QueryCache",
    "QueryClient",
    "QueryFilters",
    "QueryFunctionContext",
    "QueryKey",
    "QueryObserver",
    "QueryObserverResult",
    "QueryOptions",
    "QueryState",
    "Retryer",
    "create_notify_manager",
    "dehydrate",
    "get_logger",
    "hash_query_key",
    "hydrate",
    "is_cancelled_error",
    "parse_duration",
    "partial_match_key",
    "persist_query_client",
    "persist_query_client_restore",
    "persist_query_client_save",
    "set_logger",
]
