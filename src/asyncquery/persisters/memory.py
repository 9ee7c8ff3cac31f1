"""In-memory persister, mostly useful in tests."""

import asyncio
import copy

from asyncquery.types import PersistedClient


class AsyncMemoryPersister:
    """Keeps a deep copy of the persisted client in process memory."""

    def __init__(self) -> None:
        self._persisted: PersistedClient | None = None
        self._lock = asyncio.Lock()

    async def persist_client(self, persisted_client: PersistedClient) -> None:
        async with self._lock:
            self._persisted = copy.deepcopy(persisted_client)

    async def restore_client(self) -> PersistedClient | None:
        async with self._lock:
            return copy.deepcopy(self._persisted)

    async def remove_client(self) -> None:
        async with self._lock:
            self._persisted = None
