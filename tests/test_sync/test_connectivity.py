"""Tests for the connectivity gate."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from kalangka.sync.connectivity import ConnectivityGate

PROBE_URL = "http://testserver/api/v1/trees"


def _gate(handler, online: bool = False) -> ConnectivityGate:
    return ConnectivityGate(PROBE_URL, online=online, transport=httpx.MockTransport(handler))


def _refused(request):
    raise httpx.ConnectError("Connection refused", request=request)


class TestTransitions:
    """Tests for state changes and listeners."""

    def test_starts_offline(self):
        assert ConnectivityGate().is_online() is False

    @pytest.mark.asyncio
    async def test_listener_called_on_change_only(self):
        """Test listeners hear transitions, not repeated states."""
        gate = ConnectivityGate()
        listener = AsyncMock()
        gate.subscribe(listener)

        await gate.set_online(True)
        await gate.set_online(True)
        await gate.set_online(False)

        assert [call.args for call in listener.await_args_list] == [(True,), (False,)]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        gate = ConnectivityGate()
        listener = AsyncMock()
        unsubscribe = gate.subscribe(listener)

        unsubscribe()
        unsubscribe()
        await gate.set_online(True)

        listener.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self):
        """Test one broken listener does not block the others."""
        gate = ConnectivityGate()
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        gate.subscribe(broken)
        gate.subscribe(healthy)

        await gate.set_online(True)

        healthy.assert_awaited_once_with(True)
        assert gate.is_online() is True


class TestProbe:
    """Tests for ConnectivityGate.probe()."""

    @pytest.mark.asyncio
    async def test_any_response_means_online(self):
        """Test even an error status counts as reachable."""
        gate = _gate(lambda request: httpx.Response(503))

        assert await gate.probe() is True
        assert gate.is_online() is True
        await gate.close()

    @pytest.mark.asyncio
    async def test_connection_error_means_offline(self):
        gate = _gate(_refused, online=True)

        assert await gate.probe() is False
        assert gate.is_online() is False
        await gate.close()

    @pytest.mark.asyncio
    async def test_no_probe_url_keeps_state(self):
        """Test a gate fed externally is not changed by probe()."""
        gate = ConnectivityGate(online=True)

        assert await gate.probe() is True
        assert gate.is_online() is True


class TestWatch:
    """Tests for periodic probing."""

    @pytest.mark.asyncio
    async def test_watch_probes_until_stopped(self):
        """Test watch() keeps probing and exits when the event is set."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        gate = _gate(handler)
        stop_event = asyncio.Event()

        watcher = asyncio.create_task(gate.watch(0.01, stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(watcher, timeout=1)

        assert len(requests) >= 2
        assert gate.is_online() is True
        await gate.close()
