"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Category:
    """A documentation category and the number of entries filed under it."""

    id: int
    name: str
    description: str | None = None
    instruction_count: int = 0


@dataclass(slots=True)
class RelatedDoc:
    id: int
    instruction: str
    url: str | None
    webdna_id: str | None


@dataclass(slots=True)
class DocEntry:
    """A fully resolved documentation entry."""

    id: int
    instruction: str
    category_id: int | None
    category_name: str
    description: str | None
    syntax: str | None
    parameters: str | None
    examples: str | None
    url: str | None
    webdna_id: str | None
    related: list[int] = field(default_factory=list)
    related_docs: list[RelatedDoc] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(slots=True)
class EntrySummary:
    """Row shape shared by both search routes and the random sample."""

    id: int
    instruction: str
    category: str
    description: str | None
    url: str | None
    webdna_id: str | None


@dataclass(slots=True)
class SearchHit:
    """A merged search result with its route and relevance score."""

    id: int
    instruction: str
    category: str
    description: str | None
    url: str | None
    webdna_id: str | None
    match_type: str
    relevance_score: float


@dataclass(slots=True)
class SearchPage:
    results: list[SearchHit]
    total_count: int
    offset: int
    limit: int


@dataclass(slots=True)
class NewEntry:
    """A scraped entry ready to be inserted into the store."""

    instruction: str
    category_id: int | None
    description: str
    syntax: str
    parameters: str
    examples: str
    url: str
    webdna_id: str
    related: list[int] = field(default_factory=list)


@dataclass(slots=True)
class InstructionLink:
    """One instruction listed on the at-a-glance page."""

    name: str
    url: str
    webdna_id: str


@dataclass(slots=True)
class GlanceCategory:
    name: str
    instructions: list[InstructionLink] = field(default_factory=list)


@dataclass(slots=True)
class InstructionPage:
    """Fields extracted from a single instruction page."""

    description: str = ""
    syntax: str = ""
    parameters: str = ""
    examples: str = ""
    related_source_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ScrapeStats:
    categories: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    linked: int = 0
    duration_seconds: float = 0.0


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
