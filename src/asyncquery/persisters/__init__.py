"""Storage backends for persisted clients.

The Redis and HTTP persisters need the ``redis`` and ``http`` extras.
"""

from asyncquery.persisters.base import AsyncPersister
from asyncquery.persisters.http import AsyncHttpPersister
from asyncquery.persisters.memory import AsyncMemoryPersister
from asyncquery.persisters.redis import AsyncRedisPersister

__all__ = [
    "AsyncHttpPersister",
    "AsyncMemoryPersister",
    "AsyncPersister",
    "AsyncRedisPersister",
]
