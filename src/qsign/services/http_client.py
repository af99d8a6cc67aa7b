"""Generic POST-with-headers transport for the signing services.

Thin wrapper over httpx.AsyncClient. Transport failures are NOT wrapped:
httpx.ConnectError, httpx.TimeoutException and httpx.HTTPStatusError reach
the callers unchanged so that they can map 401s and the retry policy can
classify connect/timeout/5xx failures.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import httpx

logger = logging.getLogger(__name__)

# Default timeout for remote signing requests (seconds)
DEFAULT_TIMEOUT = 30.0

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
BEARER_PREFIX = "Bearer "


class HttpClient:
    """Async HTTP client used for QTSP and DSS calls.

    Example usage:
        async with HttpClient(timeout=30.0) as http:
            body = await http.post(
                "https://qtsp.example.com/csc/v2/credentials/info",
                {"Authorization": "Bearer ...", "Content-Type": "application/json"},
                '{"credentialID": "abc"}',
            )
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the client; the connection pool opens on context entry."""
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpClient:
        """Enter async context manager."""
        self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not in context."""
        if self._client is None:
            msg = "HttpClient must be used as async context manager"
            raise RuntimeError(msg)
        return self._client

    async def post(self, url: str, headers: Mapping[str, str], body: str | bytes) -> str:
        """POST a body and return the response text.

        Args:
            url: Absolute endpoint URL.
            headers: Request headers.
            body: Raw request body (JSON or form-encoded string).

        Returns:
            Response body text for 2xx responses.

        Raises:
            httpx.HTTPStatusError: Non-2xx response.
            httpx.ConnectError: Host unreachable or DNS failure.
            httpx.TimeoutException: Request timed out.
        """
        client = self._get_client()
        response = await client.post(url, content=body, headers=dict(headers))
        if response.is_error:
            logger.debug("POST %s returned %d", url, response.status_code)
        response.raise_for_status()
        return response.text
