"""Network reachability gate for background sync."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], Awaitable[None]]

DEFAULT_PROBE_TIMEOUT = 5.0


class ConnectivityGate:
    """Last known reachability plus change notifications.

    The state is fed either by an external signal through ``set_online`` or
    by polling ``probe``. Listeners only hear about transitions.
    """

    def __init__(
        self,
        probe_url: str | None = None,
        online: bool = False,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the gate.

        Args:
            probe_url: URL requested by ``probe``; any HTTP answer means online.
            online: Initial state.
            timeout: Probe timeout in seconds.
            transport: Custom httpx transport (tests).
        """
        self.probe_url = probe_url
        self.timeout = timeout
        self._online = online
        self._listeners: list[Listener] = []
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an async listener called with the new state on each change.

        Returns:
            Callable[[], None]: Function removing the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_online(self, state: bool) -> None:
        """Record the current reachability and notify listeners on change."""
        if state == self._online:
            return
        self._online = state
        logger.info(f"Connectivity changed: {'online' if state else 'offline'}")

        for listener in list(self._listeners):
            try:
                await listener(state)
            except Exception:
                logger.exception("Connectivity listener failed")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def probe(self) -> bool:
        """Check reachability of the probe URL and update the state.

        Returns:
            bool: Whether the remote answered.
        """
        if not self.probe_url:
            return self._online

        client = await self._get_client()
        try:
            await client.get(self.probe_url)
            reachable = True
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            reachable = False

        await self.set_online(reachable)
        return reachable

    async def watch(self, interval: float, stop_event: asyncio.Event) -> None:
        """Probe every ``interval`` seconds until ``stop_event`` is set."""
        logger.info(f"Watching connectivity of {self.probe_url} every {interval}s")
        while not stop_event.is_set():
            await self.probe()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
