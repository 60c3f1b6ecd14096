"""Tests for the REST API client."""

import httpx
import pytest

from kalangka.errors import (
    ConflictError,
    RemoteRejectedError,
    RemoteUnreachableError,
    SyncTimeoutError,
)
from kalangka.remote.client import RemoteApi

API_BASE_URL = "http://testserver/api/v1"


def _client(handler) -> RemoteApi:
    return RemoteApi(API_BASE_URL, transport=httpx.MockTransport(handler))


class TestRemoteApiCrud:
    """Tests for the happy paths against the fake server."""

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self, remote):
        """Test 404 on GET means the record does not exist remotely."""
        assert await remote.fetch("trees", "missing") is None

    @pytest.mark.asyncio
    async def test_create_then_fetch(self, remote, server):
        """Test POST stores the record and GET unwraps the envelope."""
        await remote.create("trees", {"id": "t1", "description": "Mango"})

        record = await remote.fetch("trees", "t1")

        assert record == {"id": "t1", "description": "Mango"}
        assert server.calls("POST", "/trees")[0][2] == {"id": "t1", "description": "Mango"}

    @pytest.mark.asyncio
    async def test_update(self, remote, server):
        """Test PUT targets the record path."""
        server.records["trees"]["t1"] = {"id": "t1", "description": "Old"}

        await remote.update("trees", "t1", {"id": "t1", "description": "New"})

        assert server.records["trees"]["t1"]["description"] == "New"

    @pytest.mark.asyncio
    async def test_delete(self, remote, server):
        """Test DELETE reports whether the remote had the record."""
        server.records["flowers"]["f1"] = {"id": "f1"}

        assert await remote.delete("flowers", "f1") is True
        assert await remote.delete("flowers", "f1") is False

    @pytest.mark.asyncio
    async def test_fetch_all(self, remote, server):
        """Test the collection envelope is unwrapped."""
        server.records["users"]["u1"] = {"id": "u1"}

        assert await remote.fetch_all("users") == [{"id": "u1"}]

    @pytest.mark.asyncio
    async def test_close_and_reuse(self, remote):
        """Test the client is recreated after close."""
        await remote.fetch("trees", "x")
        await remote.close()
        assert await remote.fetch("trees", "x") is None


class TestRemoteApiErrors:
    """Tests for status code mapping."""

    @pytest.mark.asyncio
    async def test_conflict(self):
        """Test 409 raises ConflictError."""
        client = _client(lambda request: httpx.Response(409))

        with pytest.raises(ConflictError):
            await client.create("trees", {"id": "t1"})

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Test 5xx raises RemoteUnreachableError with the status."""
        client = _client(lambda request: httpx.Response(503))

        with pytest.raises(RemoteUnreachableError) as exc_info:
            await client.fetch("trees", "t1")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_client_error(self):
        """Test other 4xx raise RemoteRejectedError."""
        client = _client(lambda request: httpx.Response(422, json={"detail": "bad"}))

        with pytest.raises(RemoteRejectedError) as exc_info:
            await client.update("trees", "t1", {"id": "t1"})

        assert exc_info.value.status_code == 422
        assert "bad" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_not_found_on_update_is_rejected(self):
        """Test 404 is only tolerated for fetch and delete."""
        client = _client(lambda request: httpx.Response(404))

        with pytest.raises(RemoteRejectedError):
            await client.update("trees", "t1", {"id": "t1"})

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Test transport failures raise RemoteUnreachableError."""

        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(RemoteUnreachableError):
            await _client(handler).fetch("trees", "t1")

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test timeouts raise SyncTimeoutError."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SyncTimeoutError):
            await _client(handler).fetch("trees", "t1")

    @pytest.mark.asyncio
    async def test_unsuccessful_collection(self):
        """Test a collection response with success=false is rejected."""
        client = _client(lambda request: httpx.Response(200, json={"success": False}))

        with pytest.raises(RemoteRejectedError):
            await client.fetch_all("trees")
