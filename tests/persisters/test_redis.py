"""Integration tests for the Redis persister using testcontainers."""

import pytest

# Skip all tests if redis or testcontainers are not installed
pytest.importorskip("redis")
pytest.importorskip("testcontainers")

import redis.asyncio
from testcontainers.redis import RedisContainer

from asyncquery import AsyncRedisPersister, PersistedClient, QueryClient
from asyncquery.persist import persist_query_client_restore, persist_query_client_save


@pytest.fixture(scope="module")
def redis_container():
    """Start a Redis container for the test module."""
    with RedisContainer() as container:
        yield container


@pytest.fixture
async def redis_client(redis_container):
    """Create an async Redis client."""
    client = redis.asyncio.Redis(
        host=redis_container.get_container_host_ip(),
        port=redis_container.get_exposed_port(6379),
        decode_responses=False,
    )
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def persister(redis_client) -> AsyncRedisPersister:
    """Create an AsyncRedisPersister with a test prefix."""
    return AsyncRedisPersister(redis_client, prefix="test")


class TestAsyncRedisPersister:
    """Integration tests for AsyncRedisPersister."""

    async def test_restore_empty(self, persister: AsyncRedisPersister) -> None:
        """Test that restoring without a stored client returns None."""
        assert await persister.restore_client() is None

    async def test_persist_and_restore(
        self, persister: AsyncRedisPersister, redis_client
    ) -> None:
        """Test that the client is stored as JSON under the prefixed key."""
        snapshot = PersistedClient(
            timestamp=1000,
            buster="v1",
            client_state={"queries": [], "mutations": []},
        )
        await persister.persist_client(snapshot)

        assert await redis_client.exists("test:client") == 1
        assert await persister.restore_client() == snapshot

    async def test_remove(self, persister: AsyncRedisPersister, redis_client) -> None:
        """Test that removing deletes the key."""
        await persister.persist_client(PersistedClient(timestamp=1, buster=""))
        await persister.remove_client()
        assert await redis_client.exists("test:client") == 0

    async def test_client_round_trip(self, persister: AsyncRedisPersister) -> None:
        """Test that a client's cache survives a trip through Redis."""
        source = QueryClient()
        source.set_query_data(["todos", 1], {"title": "Write docs"})
        await persist_query_client_save(source, persister)

        target = QueryClient()
        assert await persist_query_client_restore(target, persister)
        assert target.get_query_data(["todos", 1]) == {"title": "Write docs"}
