"""Pytest configuration and fixtures."""

import json
from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio

from kalangka.config import Settings
from kalangka.db.database import LocalStore
from kalangka.engine import SyncEngine
from kalangka.entities.kinds import FLOWER, FRUIT, TREE, USER
from kalangka.entities.repository import EntityRepository
from kalangka.media import MediaStore
from kalangka.remote.client import RemoteApi
from kalangka.remote.storage import BlobUploader
from kalangka.sync.connectivity import ConnectivityGate
from kalangka.sync.coordinator import SyncCoordinator
from kalangka.sync.outbox import SyncOutbox

API_BASE_URL = "http://testserver/api/v1"
PUBLIC_URL = "https://storage.example.com/kalangka/photo.jpg"


class FakeServer:
    """In-memory stand-in for the Kalangka REST API.

    Records are kept per resource. ``responses`` forces a status code for a
    (method, path) pair and ``errors`` makes it raise an httpx exception.
    """

    def __init__(self):
        self.records: dict[str, dict[str, dict]] = {
            "trees": {},
            "flowers": {},
            "fruits": {},
            "users": {},
        }
        self.requests: list[tuple[str, str, dict | None]] = []
        self.responses: dict[tuple[str, str], int] = {}
        self.errors: dict[tuple[str, str], type[httpx.HTTPError]] = {}

    def calls(self, method: str, path: str | None = None) -> list[tuple[str, str, dict | None]]:
        """Requests received, filtered by method and optionally path."""
        return [r for r in self.requests if r[0] == method and (path is None or r[1] == path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        key = (request.method, path)
        if key in self.errors:
            raise self.errors[key]("simulated failure", request=request)
        if key in self.responses:
            return httpx.Response(self.responses[key], json={"success": False})

        parts = path.strip("/").split("/")
        store = self.records.setdefault(parts[0], {})

        if len(parts) == 1:
            if request.method == "GET":
                return httpx.Response(200, json={"success": True, "data": list(store.values())})
            if request.method == "POST":
                store[body["id"]] = body
                return httpx.Response(201, json={"success": True, "data": body})
            return httpx.Response(405)

        record_id = parts[1]
        if request.method == "GET":
            if record_id not in store:
                return httpx.Response(404, json={"success": False})
            return httpx.Response(200, json={"success": True, "data": store[record_id]})
        if request.method == "PUT":
            if record_id not in store:
                return httpx.Response(404, json={"success": False})
            store[record_id] = body
            return httpx.Response(200, json={"success": True, "data": body})
        if request.method == "DELETE":
            if store.pop(record_id, None) is None:
                return httpx.Response(404, json={"success": False})
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary database and media directory."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'kalangka.db'}",
        api_base_url=API_BASE_URL,
        connectivity_probe_url=f"{API_BASE_URL}/trees",
        supabase_url="",
        supabase_key="",
        media_dir=tmp_path / "media",
    )


@pytest_asyncio.fixture
async def store(settings: Settings) -> AsyncGenerator[LocalStore, None]:
    """Open local store backed by a temporary SQLite file."""
    local_store = LocalStore(settings.database_url)
    await local_store.open()
    yield local_store
    await local_store.close()


@pytest.fixture
def server() -> FakeServer:
    """Fake remote API."""
    return FakeServer()


@pytest_asyncio.fixture
async def remote(server: FakeServer) -> AsyncGenerator[RemoteApi, None]:
    """REST client wired to the fake server."""
    client = RemoteApi(API_BASE_URL, transport=httpx.MockTransport(server.handler))
    yield client
    await client.close()


@pytest.fixture
def supabase_client() -> MagicMock:
    """Mock Supabase client whose uploads succeed."""
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.upload.return_value = MagicMock(path="photo.jpg")
    bucket.get_public_url.return_value = PUBLIC_URL
    return client


@pytest.fixture
def uploader(supabase_client: MagicMock) -> BlobUploader:
    return BlobUploader(bucket="kalangka", client=supabase_client)


@pytest.fixture
def gate() -> ConnectivityGate:
    """Connectivity gate that starts online."""
    return ConnectivityGate(online=True)


@pytest.fixture
def outbox() -> SyncOutbox:
    """Outbox without a running worker; tasks just accumulate."""
    return SyncOutbox()


@pytest_asyncio.fixture
async def media(tmp_path: Path) -> AsyncGenerator[MediaStore, None]:
    media_store = MediaStore(tmp_path / "media")
    yield media_store
    await media_store.close()


@pytest.fixture
def repos(store: LocalStore, outbox: SyncOutbox) -> dict[str, EntityRepository]:
    """One repository per kind, notifying the shared outbox."""
    return {
        kind.name: EntityRepository(kind, store, notify=outbox.enqueue)
        for kind in (TREE, FLOWER, FRUIT, USER)
    }


@pytest.fixture
def coordinators(
    repos: dict[str, EntityRepository],
    remote: RemoteApi,
    uploader: BlobUploader,
    gate: ConnectivityGate,
    media: MediaStore,
) -> dict[str, SyncCoordinator]:
    """One sync coordinator per kind."""
    return {
        name: SyncCoordinator(repo, remote, uploader, gate, media)
        for name, repo in repos.items()
    }


@pytest_asyncio.fixture
async def engine(
    settings: Settings,
    store: LocalStore,
    remote: RemoteApi,
    uploader: BlobUploader,
    media: MediaStore,
) -> AsyncGenerator[SyncEngine, None]:
    """Engine wired to the fake server, starting offline and not started."""
    sync_engine = SyncEngine(
        settings,
        store=store,
        remote=remote,
        uploader=uploader,
        media=media,
        gate=ConnectivityGate(online=False),
    )
    yield sync_engine
    await sync_engine.stop()


@pytest.fixture
def tree_data() -> dict:
    return {"description": "Mango #1", "latitude": 14.5, "longitude": 120.9}


@pytest.fixture
def user_data() -> dict:
    return {
        "first_name": "Juan",
        "last_name": "Dela Cruz",
        "email": "juan@example.com",
        "gender": "male",
    }
