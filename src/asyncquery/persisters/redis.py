"""Redis persister."""

from __future__ import annotations

import json
from typing import Any

from asyncquery.persisters.base import client_from_dict, client_to_dict
from asyncquery.types import PersistedClient


class AsyncRedisPersister:
    """Stores the persisted client as JSON under ``<prefix>:client``."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "asyncquery",
    ) -> None:
        self._client = client
        self._prefix = prefix

    def _client_key(self) -> str:
        return f"{self._prefix}:client"

    async def persist_client(self, persisted_client: PersistedClient) -> None:
        await self._client.set(
            self._client_key(),
            json.dumps(client_to_dict(persisted_client), default=str),
        )

    async def restore_client(self) -> PersistedClient | None:
        data = await self._client.get(self._client_key())
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return client_from_dict(json.loads(data))

    async def remove_client(self) -> None:
        await self._client.delete(self._client_key())

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
