"""Tests for the in-memory persister."""

import pytest

from asyncquery import AsyncMemoryPersister, AsyncPersister, PersistedClient


@pytest.fixture
def persister() -> AsyncMemoryPersister:
    """Create an empty memory persister."""
    return AsyncMemoryPersister()


def persisted(timestamp: int = 1000) -> PersistedClient:
    return PersistedClient(
        timestamp=timestamp,
        buster="v1",
        client_state={
            "queries": [
                {
                    "query_key": ["todos"],
                    "query_hash": '["todos"]',
                    "state": {"data": [{"id": 1}], "status": "success"},
                }
            ],
            "mutations": [],
        },
    )


class TestAsyncMemoryPersister:
    """Tests for AsyncMemoryPersister."""

    def test_implements_protocol(self, persister: AsyncMemoryPersister) -> None:
        """Test that the persister satisfies the persister protocol."""
        assert isinstance(persister, AsyncPersister)

    async def test_restore_empty(self, persister: AsyncMemoryPersister) -> None:
        """Test that restoring before persisting returns None."""
        assert await persister.restore_client() is None

    async def test_persist_and_restore(self, persister: AsyncMemoryPersister) -> None:
        """Test that a persisted client can be restored."""
        await persister.persist_client(persisted())
        assert await persister.restore_client() == persisted()

    async def test_stores_copy(self, persister: AsyncMemoryPersister) -> None:
        """Test that later changes to the snapshot do not leak into storage."""
        snapshot = persisted()
        await persister.persist_client(snapshot)
        snapshot.client_state["queries"].clear()

        restored = await persister.restore_client()
        assert restored is not None
        assert len(restored.client_state["queries"]) == 1

    async def test_remove(self, persister: AsyncMemoryPersister) -> None:
        """Test that removing deletes the stored client."""
        await persister.persist_client(persisted())
        await persister.remove_client()
        assert await persister.restore_client() is None
