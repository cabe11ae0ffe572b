from pathlib import Path
from typing import Any, Dict, List

import pytest

from annotation_tool.core.exceptions import TransportError
from annotation_tool.database.database import Database, DatabaseContext
from annotation_tool.models import TrackContext, User


class FakeTransport:
    """Records every call; fetch results come from a url -> records mapping."""

    def __init__(self, records: Dict[str, List[dict[str, Any]]] | None = None, fail: bool = False):
        self.records = records or {}
        self.fail = fail
        self.fetch_calls: List[str] = []
        self.afetch_calls: List[str] = []
        self.created: List[tuple[str, dict[str, Any]]] = []
        self.updated: List[tuple[str, dict[str, Any]]] = []
        self.deleted: List[str] = []
        self.create_response: dict[str, Any] | None = None

    def fetch(self, url: str) -> List[dict[str, Any]]:
        self.fetch_calls.append(url)
        if self.fail:
            raise TransportError("Backend unreachable", url=url)
        return [dict(record) for record in self.records.get(url, [])]

    async def afetch(self, url: str) -> List[dict[str, Any]]:
        self.afetch_calls.append(url)
        if self.fail:
            raise TransportError("Backend unreachable", url=url)
        return [dict(record) for record in self.records.get(url, [])]

    def create(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        self.created.append((url, data))
        if self.create_response is not None:
            return self.create_response
        return {**data, "id": "99"}

    def update(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        self.updated.append((url, data))
        return dict(data)

    def delete(self, url: str) -> None:
        self.deleted.append(url)


@pytest.fixture
def user() -> User:
    return User(id="u1", nickname="alice")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def remote_ctx(transport, user) -> TrackContext:
    return TrackContext(transport=transport, user=user, local_storage=False)


@pytest.fixture
def local_ctx(transport, user) -> TrackContext:
    return TrackContext(transport=transport, user=user, local_storage=True)


def set_up_database(database_path: Path) -> Database:
    context = DatabaseContext(database_path=database_path)
    return Database(context=context)


@pytest.fixture
def database(tmp_path: Path) -> Database:
    database = set_up_database(tmp_path / "database.db")
    assert database.initialize()
    return database
