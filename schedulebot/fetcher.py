"""HTTP client for downloading ICS calendar files."""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import tzinfo
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import (
    CalendarFetchError,
    CalendarNetworkError,
    CalendarParseError,
    CalendarTimeoutError,
)
from .ics_parser import ICSEventParser
from .models import CalendarResult, CalendarSource

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

DEFAULT_HEADERS = {
    "User-Agent": "schedulebot/0.1 (+https://github.com/schedulebot/schedulebot)",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1",
}


class ICSFetcher:
    """Async HTTP client that downloads ICS text and turns it into a CalendarResult."""

    def __init__(self, settings: Any, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize ICS fetcher.

        Args:
            settings: Object with request_timeout, max_retries, retry_backoff_factor
            client: Optional externally owned client (not closed by the fetcher)
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self) -> ICSFetcher:
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = getattr(self.settings, "request_timeout", 30)
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0),
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    async def close(self) -> None:
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed HTTP client")
        if self._owns_client:
            self.client = None

    @staticmethod
    def validate_url(url: str) -> bool:
        """Only absolute http(s) URLs with a hostname are fetched."""
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.hostname)

    def _calculate_backoff(self, attempt: int, backoff_factor: float) -> float:
        """Exponential backoff with jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311
        return base_backoff + jitter

    async def fetch_text(self, source: CalendarSource) -> str:
        """Download the ICS text of ``source``.

        Retries timeouts and network errors; HTTP error statuses are not retried.

        Raises:
            CalendarFetchError: Non-2xx response (message is the response body)
            CalendarTimeoutError: All attempts timed out
            CalendarNetworkError: All attempts failed at the network level
        """
        if not self.validate_url(source.url):
            raise CalendarFetchError(f"Invalid calendar URL: {source.url!r}")

        client = await self._ensure_client()
        max_retries = int(getattr(self.settings, "max_retries", 3))
        backoff_factor = float(getattr(self.settings, "retry_backoff_factor", 1.5))
        headers = dict(source.custom_headers)

        attempt = 0
        while True:
            try:
                response = await client.get(source.url, headers=headers, timeout=source.timeout)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= max_retries:
                    logger.error("All %d attempts failed for %s: %s", attempt + 1, source.url, e)
                    if isinstance(e, httpx.TimeoutException):
                        raise CalendarTimeoutError(
                            f"Request timeout after {source.timeout}s"
                        ) from e
                    raise CalendarNetworkError(f"Network error: {e}") from e
                backoff_time = self._calculate_backoff(attempt, backoff_factor)
                logger.warning(
                    "Request failed (attempt %s/%s), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
                continue

            if not response.is_success:
                logger.warning("HTTP %d fetching %s", response.status_code, source.url)
                message = response.text.strip() or f"HTTP {response.status_code}"
                raise CalendarFetchError(message, response.status_code)

            logger.debug(
                "Fetched ICS from %s (attempt %d) - %d bytes",
                source.url,
                attempt + 1,
                len(response.content),
            )
            return response.text

    async def fetch_calendar(self, source: CalendarSource, tz: tzinfo) -> CalendarResult:
        """Fetch and parse ``source``; every failure becomes ``CalendarResult(error=...)``."""
        try:
            text = await self.fetch_text(source)
            events = ICSEventParser(tz).parse(text)
        except (CalendarFetchError, CalendarParseError) as e:
            logger.warning("Calendar %r unavailable: %s", source.name, e)
            return CalendarResult.failure(str(e))

        logger.info("Loaded calendar %r with %d records", source.name, len(events))
        return CalendarResult.success(events)
