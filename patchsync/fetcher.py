"""Transport used by the sync engine to talk to remote patch servers.

Fetchers report failures as ``(payload, error)`` tuples instead of raising,
and never retry on their own; retry policy lives in the engine.
"""

import logging
from abc import ABC, abstractmethod

import httpx

logger = logging.getLogger(__name__)


class Fetcher(ABC):
    """Capability to fetch bytes from a URI or check that it exists."""

    @abstractmethod
    async def fetch(self, uri: str) -> tuple[bytes | None, str | None]:
        """Download a URI.

        Args:
            uri: Absolute URI to download.

        Returns:
            Tuple of (payload, error_message). Exactly one is None.
        """
        pass

    @abstractmethod
    async def exists(self, uri: str) -> tuple[bool, str | None]:
        """Check that a URI is reachable.

        Args:
            uri: Absolute URI to check.

        Returns:
            Tuple of (exists, error_message).
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class HttpFetcher(Fetcher):
    """Fetcher over HTTP(S) using httpx.

    Any transport error or non-2xx status is reported as a failure.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "patchsync",
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds.
            user_agent: User-Agent header sent with every request.
            client: Optional preconfigured client (used by tests).
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, uri: str) -> tuple[bytes | None, str | None]:
        try:
            response = await self._get_client().get(uri)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"GET {uri} failed: {e}")
            return None, f"Request error for '{uri}': {e}"

        if not response.is_success:
            return None, f"HTTP {response.status_code} for '{uri}'"

        return response.content, None

    async def exists(self, uri: str) -> tuple[bool, str | None]:
        try:
            response = await self._get_client().head(uri)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"HEAD {uri} failed: {e}")
            return False, f"Request error for '{uri}': {e}"

        if not response.is_success:
            return False, f"HTTP {response.status_code} for '{uri}'"

        return True, None
