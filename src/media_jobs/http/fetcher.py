"""Shared async HTTP client and a size-capped artifact downloader."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_BYTES = 512 * 1024 * 1024
DEFAULT_USER_AGENT = "media-jobs/0.1"


@dataclass(slots=True)
class FetchResult:
    """Outcome of one download; ``error`` is set whenever ``is_success`` is false."""

    url: str
    status_code: int
    content: bytes
    content_type: str
    is_success: bool
    error: str | None = None

    @classmethod
    def failed(cls, url: str, error: str, *, status_code: int = 0) -> FetchResult:
        return cls(
            url=url,
            status_code=status_code,
            content=b"",
            content_type="",
            is_success=False,
            error=error,
        )


def build_async_client(
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Client shared by provider adapters and artifact downloads.

    ``max_retries`` only covers connection setup; HTTP-level retries belong
    to the job runner's backoff.
    """

    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds, connect=DEFAULT_CONNECT_TIMEOUT_SECONDS),
        headers={"User-Agent": user_agent},
        transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
        follow_redirects=True,
    )


class HttpFetcher:
    """Download provider artifacts without raising on network trouble."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._owns_client = client is None
        self._client = client or build_async_client()
        self.max_bytes = max_bytes

    async def fetch(self, url: str) -> FetchResult:
        """Stream ``url`` into memory, giving up once ``max_bytes`` is exceeded."""

        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    return FetchResult.failed(
                        url,
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        logger.warning("Artifact %s exceeds %d bytes", url, self.max_bytes)
                        return FetchResult.failed(
                            url,
                            f"artifact larger than {self.max_bytes} bytes",
                            status_code=response.status_code,
                        )
                return FetchResult(
                    url=url,
                    status_code=response.status_code,
                    content=bytes(body),
                    content_type=response.headers.get("content-type", ""),
                    is_success=True,
                )
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return FetchResult.failed(url, "timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return FetchResult.failed(url, str(exc))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
