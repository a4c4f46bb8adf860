"""Scrape pipeline: at-a-glance page -> instruction pages -> store."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

import aiohttp

from webdna_docs.config import ScraperConfig
from webdna_docs.ingest.parser import parse_glance_page, parse_instruction_page
from webdna_docs.store.database import DocStore, StoreError
from webdna_docs.types import InstructionLink, NewEntry, ScrapeStats

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    def absolute_url(self, url: str) -> str: ...

    async def fetch(self, url: str) -> str: ...


class IngestPipeline:
    """Populates the store from the documentation site.

    Instructions whose source id is already stored are skipped, so a rerun
    only fetches pages that are missing. Related links are resolved once all
    pages are in, since they may point at entries scraped later.
    """

    def __init__(
        self,
        store: DocStore,
        fetcher: PageFetcher,
        config: ScraperConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._config = config or ScraperConfig()
        self._sleep = sleep

    async def run(self) -> ScrapeStats:
        started = time.monotonic()
        stats = ScrapeStats()
        logger.info("Starting WebDNA documentation scraping...")

        await self._store.initialize()
        glance = parse_glance_page(await self._fetcher.fetch(self._config.glance_path))
        total = sum(len(category.instructions) for category in glance)
        logger.info("Found %d categories with a total of %d instructions", len(glance), total)

        related: dict[int, list[str]] = {}
        for category in glance:
            category_id = await self._store.get_or_create_category(category.name)
            stats.categories += 1
            for link in category.instructions:
                if await self._store.entry_exists(link.webdna_id):
                    logger.info("Instruction %s already exists, skipping", link.name)
                    stats.skipped += 1
                    continue
                try:
                    entry_id, source_ids = await self._ingest_instruction(link, category_id)
                except (aiohttp.ClientError, TimeoutError, StoreError) as exc:
                    logger.error("Error scraping instruction %s: %s", link.name, exc)
                    stats.failed += 1
                except Exception:
                    # Unexpected markup fails one instruction, not the run.
                    logger.exception("Error parsing instruction %s", link.name)
                    stats.failed += 1
                else:
                    stats.inserted += 1
                    if source_ids:
                        related[entry_id] = source_ids
                await self._sleep(self._config.request_delay_seconds)

        stats.linked = await self._link_related(related)
        stats.duration_seconds = time.monotonic() - started
        logger.info(
            "Scraping complete: %d inserted, %d skipped, %d failed, %d linked in %.1fs",
            stats.inserted,
            stats.skipped,
            stats.failed,
            stats.linked,
            stats.duration_seconds,
        )
        return stats

    async def _ingest_instruction(
        self, link: InstructionLink, category_id: int
    ) -> tuple[int, list[str]]:
        url = self._fetcher.absolute_url(link.url)
        logger.info("Scraping instruction: %s (%s)", link.name, url)
        page = parse_instruction_page(await self._fetcher.fetch(url))
        entry_id = await self._store.insert_entry(
            NewEntry(
                instruction=link.name,
                category_id=category_id,
                description=page.description,
                syntax=page.syntax,
                parameters=page.parameters,
                examples=page.examples,
                url=url,
                webdna_id=link.webdna_id,
            )
        )
        return entry_id, page.related_source_ids

    async def _link_related(self, related: dict[int, list[str]]) -> int:
        if not related:
            return 0
        wanted = sorted({source_id for source_ids in related.values() for source_id in source_ids})
        known = await self._store.ids_for_source_ids(wanted)
        linked = 0
        for entry_id, source_ids in related.items():
            ids = [known[s] for s in source_ids if s in known and known[s] != entry_id]
            if ids:
                await self._store.set_related(entry_id, ids)
                linked += 1
        return linked
