"""Provider HTTP Client.

Low-level aiohttp client shared by the accounting connectors. Handles
headers, the per-call timeout and translation of HTTP failures into the
service's error types. It does not retry: a failed call fails the queue
item's attempt and the posting queue's retry policy decides what happens
next.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from core.errors import AuthError, ExternalCallError
from core.observability.logging import get_logger


logger = get_logger(__name__)

# Keep stored error messages readable
MAX_ERROR_BODY = 500


class ProviderHttpClient:
    """HTTP client for one provider connection.

    Usage:
        client = ProviderHttpClient("https://api.example.com", headers, timeout_seconds=30)
        body = await client.request("POST", "/invoices", data={...})
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # Cookie jar kept per client: session-login providers rely on it
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Make one API request.

        Returns:
            Response JSON ({} for empty bodies)

        Raises:
            AuthError: 401/403
            ExternalCallError: Network failure, timeout or any other error status
        """
        url = self._build_url(path)
        session = self._get_session()

        try:
            async with session.request(
                method,
                url,
                headers={**self.headers, **(headers or {})},
                json=data,
            ) as response:
                response_text = await response.text()
                status = response.status
                retry_after = response.headers.get("Retry-After")
        except asyncio.TimeoutError:
            raise ExternalCallError(f"Request to {url} timed out after {self.timeout_seconds}s")
        except aiohttp.ClientError as e:
            raise ExternalCallError(f"Request to {url} failed: {type(e).__name__}: {e}")

        if status < 400:
            if status == 204 or not response_text:
                return {}
            try:
                return json.loads(response_text)
            except ValueError:
                raise ExternalCallError(
                    f"Invalid JSON from {url}", status, response_text[:MAX_ERROR_BODY]
                )

        body = response_text[:MAX_ERROR_BODY]

        if status in (401, 403):
            raise AuthError(f"Authentication failed ({status}): {body}", status, body)

        if status == 429:
            logger.warning(f"Rate limited by {self.base_url}", extra_fields={"retry_after": retry_after})
            raise ExternalCallError(
                f"Rate limit exceeded (retry after {retry_after or 'unknown'}s)", status, body
            )

        if status in (400, 422):
            raise ExternalCallError(f"Validation error ({status}): {body}", status, body)

        if status == 404:
            raise ExternalCallError(f"Resource not found: {url}", status, body)

        raise ExternalCallError(f"API error {status}: {body}", status, body)
