"""
HTTP fetch collaborator.

Any async callable with the signature of ``Fetch`` can be injected into
the change detector; ``HttpFetcher`` is the default implementation on top
of httpx. Failures are raised as ``FetchError`` with a classification so
operators can tell a timeout from an error page.
"""

from typing import Awaitable, Callable, Dict, Optional

import httpx
import structlog
from asyncio_throttle import Throttler
from pydantic import BaseModel, Field

from .exceptions import FetchError, FetchFailureKind

logger = structlog.get_logger(__name__)


class FetchResponse(BaseModel):
    """Decoded document returned by a fetch collaborator."""
    content: str = Field(..., description="Decoded document text")
    status_code: int = Field(..., description="HTTP status code")
    url: Optional[str] = Field(default=None, description="Final URL after redirects")


Fetch = Callable[[str, int, Optional[str]], Awaitable[FetchResponse]]


class HttpFetcher:
    """
    Fetches documents with httpx.

    No retries happen here: a failed fetch ends the cycle and the
    scheduler decides when to try again.
    """

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        throttler: Optional[Throttler] = None,
        follow_redirects: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the fetcher.

        Args:
            headers: Default request headers
            throttler: Optional rate limiter shared across fetches
            follow_redirects: Whether redirects are followed
            transport: Custom httpx transport (used by tests)
        """
        self.headers = dict(headers or {})
        self.throttler = throttler
        self.follow_redirects = follow_redirects
        self.transport = transport
        self.logger = logger.bind(component="http_fetcher")

    async def __call__(self, locator: str, timeout_ms: int, user_agent: Optional[str] = None) -> FetchResponse:
        if self.throttler is not None:
            async with self.throttler:
                return await self.fetch(locator, timeout_ms, user_agent)
        return await self.fetch(locator, timeout_ms, user_agent)

    async def fetch(self, locator: str, timeout_ms: int, user_agent: Optional[str] = None) -> FetchResponse:
        """
        Fetch and decode a document.

        Args:
            locator: URL to fetch
            timeout_ms: Timeout applied to connect, read, write and pool waits
            user_agent: Overrides the default User-Agent header

        Returns:
            FetchResponse with decoded content

        Raises:
            FetchError: Classified as network_unreachable, timeout,
                http_status or decode
        """
        headers = dict(self.headers)
        if user_agent:
            headers["User-Agent"] = user_agent

        client_config = {
            "timeout": httpx.Timeout(timeout_ms / 1000.0),
            "headers": headers,
            "follow_redirects": self.follow_redirects,
        }
        if self.transport is not None:
            client_config["transport"] = self.transport

        try:
            async with httpx.AsyncClient(**client_config) as client:
                response = await client.get(locator)
        except httpx.TimeoutException as e:
            raise FetchError(
                FetchFailureKind.TIMEOUT,
                f"Timed out after {timeout_ms} ms fetching {locator}"
            ) from e
        except httpx.DecodingError as e:
            raise FetchError(
                FetchFailureKind.DECODE,
                f"Could not decode the body of {locator}: {e}"
            ) from e
        except (httpx.TransportError, httpx.TooManyRedirects, httpx.InvalidURL) as e:
            raise FetchError(
                FetchFailureKind.NETWORK_UNREACHABLE,
                f"Could not reach {locator}: {e}"
            ) from e

        if not response.is_success:
            raise FetchError(
                FetchFailureKind.HTTP_STATUS,
                f"{locator} answered with HTTP {response.status_code}",
                status_code=response.status_code
            )

        content = self._decode(response, locator)

        self.logger.debug(
            "Fetched document",
            locator=locator,
            status_code=response.status_code,
            size_bytes=len(response.content)
        )

        return FetchResponse(
            content=content,
            status_code=response.status_code,
            url=str(response.url)
        )

    def _decode(self, response: httpx.Response, locator: str) -> str:
        """Strictly decode the body with the declared charset, falling back to UTF-8."""
        encoding = response.charset_encoding or "utf-8"
        try:
            return response.content.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            raise FetchError(
                FetchFailureKind.DECODE,
                f"Could not decode {locator} as {encoding}: {e}",
                status_code=response.status_code
            ) from e
