"""
Fetcher

Downloads source documents with bounded retries and exponential backoff,
writes every successful body through to the cache store and falls back to the
last cached copy once all attempts are exhausted.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from tvcast.config import settings
from tvcast.errors import FetchError, NetworkError, ResponseTooLargeError
from tvcast.services.cache_store import CacheStore
from tvcast.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

# httpx logs every request URL verbatim, credentials included
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


class Fetcher:
    """Retrying, timeout-bounded HTTP retrieval backed by a CacheStore."""

    def __init__(
        self,
        cache: CacheStore,
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.max_retries = max_retries or settings.fetch_max_retries
        self.retry_delay = retry_delay or settings.fetch_retry_delay_sec
        self.timeout = timeout or settings.fetch_timeout_sec
        self.max_bytes = max_bytes or settings.fetch_max_bytes
        self._transport = transport
        self._sleep = sleep

    async def fetch(self, url: str, cache_key: str) -> bytes:
        """
        Download a document, caching it under cache_key

        Every error consumes one attempt; only the log level differs between
        transient failures (timeouts, connection errors, HTTP 5xx) and others.

        Args:
            url: URL to download from
            cache_key: Cache entry written on success and read on exhaustion

        Returns:
            Downloaded (or cached fallback) content

        Raises:
            FetchError: If all attempts failed and nothing is cached
        """
        safe_url = sanitize_url_for_logging(url)
        logger.info(f"Downloading from {safe_url} to cache as {cache_key}")

        delay = self.retry_delay
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            logger.info(f"Download attempt {attempt}/{self.max_retries}...")
            try:
                content = await asyncio.wait_for(self._download(url), timeout=self.timeout)
            except asyncio.TimeoutError:
                last_error = NetworkError(f"Request timed out after {self.timeout:.0f}s")
                logger.warning(f"Request timeout on attempt {attempt}")
            except NetworkError as e:
                last_error = e
                logger.warning(f"Connection error on attempt {attempt}: {e}")
            except (httpx.HTTPError, ResponseTooLargeError, ValueError) as e:
                last_error = e
                logger.error(f"Request error on attempt {attempt}: {e}")
            else:
                logger.info(f"Downloaded {len(content)} bytes, caching as {cache_key}")
                try:
                    await self.cache.put(cache_key, content)
                except OSError as cache_error:
                    logger.error(f"Error caching file {cache_key}: {cache_error}")
                return content

            if attempt < self.max_retries:
                logger.info(f"Retrying in {delay:g} seconds...")
                await self._sleep(delay)
                delay *= 2

        logger.error("Maximum retries reached. Could not download content.")
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.warning(f"Using cached copy of {cache_key} ({len(cached)} bytes)")
            return cached

        raise FetchError(url, cache_key, last_error)

    async def _download(self, url: str) -> bytes:
        """Single attempt: stream the body, enforcing the size cap."""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 500:
                        raise NetworkError(f"HTTP {response.status_code} (server error)")
                    response.raise_for_status()

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise ResponseTooLargeError(
                            f"Declared size {declared} bytes exceeds limit of {self.max_bytes}"
                        )

                    buffer = bytearray()
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > self.max_bytes:
                            raise ResponseTooLargeError(
                                f"Response exceeds limit of {self.max_bytes} bytes"
                            )
        except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as e:
            raise NetworkError(f"{type(e).__name__}: {e}") from e

        if not buffer:
            raise ValueError("Downloaded content was empty")
        return bytes(buffer)
