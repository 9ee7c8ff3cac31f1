"""Persister protocol and the wire shape of a persisted client."""

from typing import Any, Protocol, runtime_checkable

from asyncquery.types import PersistedClient


@runtime_checkable
class AsyncPersister(Protocol):
    """Async storage for one persisted client."""

    async def persist_client(self, persisted_client: PersistedClient) -> None:
        """Store the persisted client, replacing any previous one."""
        ...

    async def restore_client(self) -> PersistedClient | None:
        """Load the persisted client, if one was stored."""
        ...

    async def remove_client(self) -> None:
        """Delete the persisted client."""
        ...


def client_to_dict(persisted_client: PersistedClient) -> dict[str, Any]:
    return {
        "timestamp": persisted_client.timestamp,
        "buster": persisted_client.buster,
        "clientState": persisted_client.client_state,
    }


def client_from_dict(data: dict[str, Any]) -> PersistedClient:
    return PersistedClient(
        timestamp=data["timestamp"],
        buster=data.get("buster", ""),
        client_state=data.get("clientState") or {"queries": [], "mutations": []},
    )
