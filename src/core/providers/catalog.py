"""Shared HTTP plumbing of the catalog search clients."""

import asyncio
from typing import Any, ClassVar

import aiohttp

from src import __version__, log
from src.exceptions import (
    ProviderError,
    ProviderSystemicError,
    ProviderUnavailableError,
)

__all__ = ["CatalogClient"]


class CatalogClient:
    """Base client for a JSON catalog API used as an agent tool.

    Subclasses share one aiohttp session per client and map HTTP failures to
    the provider error family: rejected credentials are systemic, an
    unreachable host is retryable, everything else fails the current attempt.
    """

    NAME: ClassVar[str] = "catalog"
    MAX_RETRIES: ClassVar[int] = 3

    def __init__(self, base_url: str, headers: dict[str, str] | None = None) -> None:
        """Initialize the client.

        Args:
            base_url (str): API root without a trailing slash.
            headers (dict[str, str] | None): Extra headers sent with every request.
        """
        self.base_url = base_url.rstrip("/")
        self._headers = {
            "Accept": "application/json",
            "User-Agent": f"AnimeMatcher/{__version__}",
            **(headers or {}),
        }
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers, timeout=aiohttp.ClientTimeout(total=60)
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        retry_count: int = 0,
    ) -> Any:
        """Send a request and decode the JSON response.

        Raises:
            ProviderSystemicError: If the API rejects the credentials.
            ProviderUnavailableError: If the API cannot be reached.
            ProviderError: For any other failed request or undecodable body.
        """
        if retry_count >= self.MAX_RETRIES:
            raise ProviderError(
                f"{self.NAME} request failed after {self.MAX_RETRIES} tries"
            )

        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(
                method, url, params=params, json=json
            ) as response:
                if response.status == 429:
                    retry_after = int(response.headers.get("Retry-After", 5))
                    log.warning(
                        f"{self.NAME} rate limit exceeded, waiting {retry_after}s"
                    )
                    await asyncio.sleep(retry_after + 1)
                    return await self._request(
                        method,
                        path,
                        params=params,
                        json=json,
                        retry_count=retry_count + 1,
                    )
                if response.status in (401, 403):
                    raise ProviderSystemicError(
                        f"{self.NAME} rejected the credentials (HTTP {response.status})"
                    )
                if response.status >= 400:
                    body = await response.text()
                    raise ProviderError(
                        f"{self.NAME} returned HTTP {response.status}: {body[:200]}"
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientConnectionError as e:
            raise ProviderUnavailableError(
                f"{self.NAME} is unreachable: {e}"
            ) from e
        except (TimeoutError, aiohttp.ClientError, ValueError) as e:
            raise ProviderError(f"{self.NAME} request failed: {e}") from e

    def _items(self, payload: Any, key: str) -> list[dict[str, Any]]:
        """Return the objects listed under ``key`` of a decoded response.

        Entries that are not JSON objects are skipped.

        Raises:
            ProviderError: If the payload is not an object or ``key`` is not a list.
        """
        if payload is None:
            return []
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{self.NAME} returned an unexpected payload: "
                f"{type(payload).__name__}"
            )
        items = payload.get(key) or []
        if not isinstance(items, list):
            raise ProviderError(f"{self.NAME} returned a malformed '{key}' field")
        return [item for item in items if isinstance(item, dict)]
