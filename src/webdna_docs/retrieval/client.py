"""Cached, typed query operations over the documentation store."""

from __future__ import annotations

import logging
import re

from webdna_docs.config import CacheConfig
from webdna_docs.retrieval.fusion import MatchFusion
from webdna_docs.store.cache import QueryCache
from webdna_docs.store.database import DocStore
from webdna_docs.types import Category, DocEntry, EntrySummary, SearchPage

logger = logging.getLogger(__name__)

_NUMERIC_KEY = re.compile(r"^\d+$")


class DocumentationClient:
    """Search and lookup operations wrapped by a read-through cache.

    Store failures surface as `StoreError`; a missing entry is reported as
    `None` by `get_by_key`, never as an exception.
    """

    def __init__(
        self,
        store: DocStore,
        *,
        cache: QueryCache | None = None,
        fusion: MatchFusion | None = None,
    ) -> None:
        self.store = store
        self.cache = cache or QueryCache(CacheConfig())
        self.fusion = fusion or MatchFusion()

    async def search(
        self,
        query: str,
        *,
        category: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchPage:
        normalized = " ".join((query or "").split()).lower()
        category = (category or "").strip() or None
        limit = max(1, int(limit))
        offset = max(0, int(offset))

        if not normalized:
            return SearchPage(results=[], total_count=0, offset=offset, limit=limit)

        args = {"query": normalized, "category": category, "limit": limit, "offset": offset}

        async def _load() -> SearchPage:
            name_matches = await self.store.find_by_name(normalized, category=category)
            content_matches = await self.store.find_by_text(normalized, category=category)
            merged = self.fusion.merge(normalized, name_matches, content_matches)
            logger.debug(
                "Search %r: %d name matches, %d full-text matches, %d merged",
                normalized,
                len(name_matches),
                len(content_matches),
                len(merged),
            )
            return SearchPage(
                results=merged[offset : offset + limit],
                total_count=len(merged),
                offset=offset,
                limit=limit,
            )

        return await self.cache.get_or_load("search", args, _load)

    async def get_by_key(self, key: int | str) -> DocEntry | None:
        """Resolve a numeric store id, a source id, or an instruction name."""
        text = str(key).strip()
        if not text:
            return None

        async def _load() -> DocEntry | None:
            if isinstance(key, int) or _NUMERIC_KEY.match(text):
                entry = await self.store.get_entry("id", int(text))
            else:
                entry = await self.store.get_entry("webdna_id", text)
                if entry is None:
                    entry = await self.store.get_entry("instruction", text)
            if entry is None:
                return None
            entry.related_docs = await self.store.get_related(entry.related)
            return entry

        return await self.cache.get_or_load("get_by_key", {"key": text}, _load)

    async def list_categories(self) -> list[Category]:
        return await self.cache.get_or_load("list_categories", {}, self.store.list_categories)

    async def random_sample(self, limit: int = 5) -> list[EntrySummary]:
        limit = max(1, int(limit))
        return await self.cache.get_or_load(
            "random_sample", {"limit": limit}, lambda: self.store.sample(limit)
        )

    async def count(self) -> int:
        return await self.cache.get_or_load("count", {}, self.store.count_entries)
