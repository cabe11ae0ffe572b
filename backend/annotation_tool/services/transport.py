from __future__ import annotations

import logging
from typing import Any, List, Protocol

import httpx

from annotation_tool.core.exceptions import TransportError
from annotation_tool.database.database import Database

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Persistence backend used by tracks and their annotations."""

    def fetch(self, url: str) -> List[dict[str, Any]]:
        ...

    async def afetch(self, url: str) -> List[dict[str, Any]]:
        ...

    def create(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    def update(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    def delete(self, url: str) -> None:
        ...


def split_item_url(url: str) -> tuple[str, str]:
    """'tracks/42' -> ('tracks', '42')"""
    collection, _, record_id = url.strip("/").rpartition("/")
    if not collection or not record_id:
        raise TransportError("Not an item url", url=url)
    return collection, record_id


class LocalStorageTransport:
    """Client side storage: every url maps onto a collection of the local record store."""

    def __init__(self, database: Database):
        self.database = database

    def fetch(self, url: str) -> List[dict[str, Any]]:
        records = self.database.get_records(url.strip("/"))
        if records is None:
            raise TransportError("Unable to read local storage", url=url)
        return records

    async def afetch(self, url: str) -> List[dict[str, Any]]:
        # sqlite calls are short and local, they run inline on the loop
        return self.fetch(url)

    def create(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        stored = self.database.add_record(url.strip("/"), data)
        if stored is None:
            raise TransportError("Unable to write to local storage", url=url)
        return stored

    def update(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        collection, record_id = split_item_url(url)
        stored = self.database.update_record(collection, record_id, data)
        if stored is None:
            # local storage upserts
            stored = self.database.add_record(collection, {**data, "id": data.get("id", record_id)})
        if stored is None:
            raise TransportError("Unable to write to local storage", url=url)
        return stored

    def delete(self, url: str) -> None:
        collection, record_id = split_item_url(url)
        if not self.database.delete_record(collection, record_id):
            raise TransportError("Record not found in local storage", url=url)


class RemoteTransport:
    """REST backend reached through httpx. Relative urls resolve against the clients' base_url."""

    def __init__(self, client: httpx.Client, async_client: httpx.AsyncClient | None = None):
        self.client = client
        self.async_client = async_client

    @classmethod
    def from_base_url(cls, base_url: str, timeout: float = 10) -> RemoteTransport:
        return cls(
            client=httpx.Client(base_url=base_url, timeout=timeout),
            async_client=httpx.AsyncClient(base_url=base_url, timeout=timeout),
        )

    def fetch(self, url: str) -> List[dict[str, Any]]:
        return self._send("GET", url)

    async def afetch(self, url: str) -> List[dict[str, Any]]:
        if self.async_client is None:
            raise TransportError("No async client configured", url=url)
        try:
            response = await self.async_client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                "Backend request failed", url=url, status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise TransportError("Backend unreachable", url=url, details=str(e)) from e
        return _decode(response, url)

    def create(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        return self._send("POST", url, data)

    def update(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        return self._send("PUT", url, data)

    def delete(self, url: str) -> None:
        self._send("DELETE", url)

    def _send(self, method: str, url: str, data: dict[str, Any] | None = None) -> Any:
        logger.debug(f"{method} {url}")
        try:
            response = self.client.request(method, url, json=data)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                "Backend request failed",
                url=url,
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError("Backend unreachable", url=url, details=str(e)) from e

        if response.status_code == 204 or not response.content:
            return None
        return _decode(response, url)


def _decode(response: httpx.Response, url: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(
            "Backend answered with invalid JSON", url=url, status_code=response.status_code, details=str(e)
        ) from e
