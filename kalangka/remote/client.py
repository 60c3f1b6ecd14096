"""Async client for the remote REST API."""

import logging
from typing import Any

import httpx

from kalangka.errors import (
    ConflictError,
    RemoteRejectedError,
    RemoteUnreachableError,
    SyncTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RemoteApi:
    """Thin REST client for ``/{resource}`` and ``/{resource}/{id}`` endpoints.

    Status codes are mapped onto the sync error taxonomy: 409 raises
    ConflictError, other 4xx raise RemoteRejectedError, 5xx and transport
    failures raise RemoteUnreachableError. A 404 is not an error for fetch
    and delete.

    Attributes:
        base_url: API root, e.g. http://localhost:5000/api/v1.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root.
            timeout: Per-request timeout in seconds.
            headers: Extra headers sent with every request.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self, method: str, path: str, json: dict | None = None, allow_not_found: bool = False
    ) -> httpx.Response | None:
        """Send a request and map failures to sync errors.

        Returns:
            httpx.Response | None: The response, or None for a tolerated 404.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise SyncTimeoutError(f"{method} {path} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise RemoteUnreachableError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status == 404 and allow_not_found:
            return None
        if status == 409:
            raise ConflictError(f"{method} {path} conflicts with an existing record")
        if status >= 500:
            raise RemoteUnreachableError(f"{method} {path} returned {status}", status_code=status)
        if status >= 400:
            raise RemoteRejectedError(
                f"{method} {path} rejected with {status}", status_code=status, body=response.text
            )
        return response

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """Unwrap the ``{"success": ..., "data": ...}`` envelope when present."""
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def fetch(self, resource: str, record_id: str) -> dict | None:
        """GET one record.

        Returns:
            dict | None: Remote record, or None if the remote does not have it.
        """
        response = await self._request("GET", f"/{resource}/{record_id}", allow_not_found=True)
        if response is None:
            return None
        return self._unwrap(self._body(response)) or {}

    async def create(self, resource: str, payload: dict) -> dict | None:
        """POST a new record."""
        response = await self._request("POST", f"/{resource}", json=payload)
        logger.debug(f"Created {resource}/{payload.get('id')} remotely")
        return self._unwrap(self._body(response))

    async def update(self, resource: str, record_id: str, payload: dict) -> dict | None:
        """PUT an existing record."""
        response = await self._request("PUT", f"/{resource}/{record_id}", json=payload)
        logger.debug(f"Updated {resource}/{record_id} remotely")
        return self._unwrap(self._body(response))

    async def delete(self, resource: str, record_id: str) -> bool:
        """DELETE a record.

        Returns:
            bool: True if deleted, False if the remote did not have it.
        """
        response = await self._request("DELETE", f"/{resource}/{record_id}", allow_not_found=True)
        return response is not None

    async def fetch_all(self, resource: str) -> list[dict]:
        """GET the whole collection.

        Raises:
            RemoteRejectedError: If the response is not a successful envelope.
        """
        response = await self._request("GET", f"/{resource}")
        body = self._body(response)
        if isinstance(body, list):
            return body
        if not isinstance(body, dict) or not body.get("success", True):
            raise RemoteRejectedError(
                f"GET /{resource} returned an unsuccessful response",
                status_code=response.status_code,
                body=response.text,
            )
        return body.get("data") or []
