"""HTTP fetching for the documentation scraper."""

from __future__ import annotations

import logging
from types import TracebackType
from urllib.parse import urljoin

import aiohttp

from webdna_docs.config import ScraperConfig

logger = logging.getLogger(__name__)


class DocFetcher:
    """Fetches documentation pages over a shared aiohttp session.

    Usage:
        async with DocFetcher(ScraperConfig()) as fetcher:
            html = await fetcher.fetch("/at-a-glance")
    """

    def __init__(self, config: ScraperConfig | None = None) -> None:
        self.config = config or ScraperConfig()
        self._session: aiohttp.ClientSession | None = None

    def absolute_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return urljoin(self.config.base_url.rstrip("/") + "/", url.lstrip("/"))

    async def __aenter__(self) -> "DocFetcher":
        self._session = aiohttp.ClientSession(
            headers={"User-Agent": self.config.user_agent},
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
            raise_for_status=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, url: str) -> str:
        """Return the body of `url`; raises `aiohttp.ClientError` on failure."""
        if self._session is None:
            raise RuntimeError("DocFetcher must be used as an async context manager")
        full_url = self.absolute_url(url)
        logger.debug("Fetching %s", full_url)
        async with self._session.get(full_url) as response:
            return await response.text()
