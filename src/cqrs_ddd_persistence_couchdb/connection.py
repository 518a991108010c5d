"""CouchConnectionManager: httpx client lifecycle, credentials, health check."""

from __future__ import annotations

from typing import Any
from urllib.parse import unquote, urlsplit, urlunsplit

import httpx

from .exceptions import CouchConnectionError


def _split_credentials(url: str) -> tuple[str, httpx.BasicAuth | None]:
    """Move ``user:password@`` out of ``url`` into basic auth."""
    parts = urlsplit(url)
    if not parts.username:
        return url.rstrip("/"), None
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{host}:{parts.port}" if parts.port else host
    clean = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    auth = httpx.BasicAuth(unquote(parts.username), unquote(parts.password or ""))
    return clean.rstrip("/"), auth


class CouchConnectionManager:
    """Wrap an ``httpx.AsyncClient`` bound to one CouchDB server."""

    def __init__(
        self,
        url: str = "http://localhost:5984",
        *,
        timeout: float = 10.0,
        **kwargs: Any,
    ) -> None:
        self._url, self._auth = _split_credentials(url)
        self._timeout = timeout
        self._kwargs = kwargs
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        """Server URL without credentials."""
        return self._url

    async def connect(self) -> httpx.AsyncClient:
        """Create and cache the client. Idempotent."""
        if self._client is not None:
            return self._client
        try:
            self._client = httpx.AsyncClient(
                base_url=self._url,
                auth=self._auth,
                timeout=self._timeout,
                headers={"Accept": "application/json"},
                **self._kwargs,
            )
        except (TypeError, ValueError) as e:
            raise CouchConnectionError(str(e)) from e
        return self._client

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the client; raises if not connected."""
        if self._client is None:
            raise CouchConnectionError("Not connected; call connect() first")
        return self._client

    async def close(self) -> None:
        """Close the client and release pooled connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        """GET the server root; return True if it answers."""
        if self._client is None:
            return False
        try:
            response = await self._client.get("/")
        except httpx.HTTPError:
            return False
        return response.status_code == 200
