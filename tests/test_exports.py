"""Tests for package exports."""

import asyncquery


def test_core_exports_available() -> None:
    """Test that the client, caches and observers are importable."""
    from asyncquery import (
        InfiniteQueryObserver,
        MutationCache,
        MutationObserver,
        QueriesObserver,
        QueryCache,
        QueryClient,
        QueryObserver,
    )

    # Just verify they're importable
    assert QueryClient is not None
    assert QueryCache is not None
    assert MutationCache is not None
    assert QueryObserver is not None
    assert InfiniteQueryObserver is not None
    assert QueriesObserver is not None
    assert MutationObserver is not None


def test_persistence_exports_available() -> None:
    """Test that hydration and persisters are importable."""
    from asyncquery import (
        AsyncHttpPersister,
        AsyncMemoryPersister,
        AsyncRedisPersister,
        dehydrate,
        hydrate,
        persist_query_client,
    )

    assert dehydrate is not None
    assert hydrate is not None
    assert persist_query_client is not None
    assert AsyncMemoryPersister is not None
    assert AsyncRedisPersister is not None
    assert AsyncHttpPersister is not None


def test_all_is_complete() -> None:
    """Test that every name in __all__ resolves."""
    missing = [name for name in asyncquery.__all__ if not hasattr(asyncquery, name)]
    assert missing == []
    assert asyncquery.__version__ == "0.1.0"
