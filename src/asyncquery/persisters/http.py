"""HTTP persister for a remote persistence service."""

from __future__ import annotations

from typing import Any, cast

from asyncquery.persisters.base import client_from_dict, client_to_dict
from asyncquery.types import PersistedClient


class AsyncHttpPersister:
    """Persists the client through a JSON API.

    Every call is a POST to ``/v1/client/persist``, ``/v1/client/restore``
    or ``/v1/client/remove``. Failed requests raise ``RuntimeError`` with the
    service's error message.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        client_id: str = "default",
    ) -> None:
        import httpx

        self._client_id = client_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
        )

    async def _request(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """Make a POST request to the persistence API."""
        response = await self._client.post(endpoint, json=body)
        if not response.is_success:
            try:
                error = response.json().get("error", "Request failed")
            except ValueError:
                error = f"HTTP {response.status_code}"
            raise RuntimeError(error)
        return cast(dict[str, Any], response.json())

    async def persist_client(self, persisted_client: PersistedClient) -> None:
        await self._request(
            "/v1/client/persist",
            {"id": self._client_id, "client": client_to_dict(persisted_client)},
        )

    async def restore_client(self) -> PersistedClient | None:
        data = await self._request("/v1/client/restore", {"id": self._client_id})
        client = data.get("client")
        if client is None:
            return None
        return client_from_dict(client)

    async def remove_client(self) -> None:
        await self._request("/v1/client/remove", {"id": self._client_id})

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
