"""WebDNA documentation tools exposed over the worker protocol."""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webdna_docs.agent.registry import ToolInvocationError, ToolRegistry, ToolSpec
from webdna_docs.retrieval.client import DocumentationClient


def _number_to_text(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# Limits and offsets carry no bounds here; DocumentationClient clamps them.


class SearchDocsInput(BaseModel):
    # `required` is advertised in the schema only; a missing query searches
    # for the empty string, which yields no results.
    model_config = ConfigDict(json_schema_extra={"required": ["query"]})

    query: str = Field(
        default="",
        description="The search query for WebDNA documentation (e.g., 'table', 'database', 'search')",
    )
    category: str | None = Field(default=None, description="Restrict results to this category name")
    limit: int = Field(default=20, description="Maximum number of results")
    offset: int = Field(default=0, description="Number of results to skip")

    query_as_text = field_validator("query", "category", mode="before")(_number_to_text)


class GetDocInput(BaseModel):
    model_config = ConfigDict(json_schema_extra={"required": ["id"]})

    id: str = Field(
        default="",
        description="The ID of the WebDNA instruction or context to retrieve documentation for",
    )

    id_as_text = field_validator("id", mode="before")(_number_to_text)


class EmptyInput(BaseModel):
    pass


class RandomDocsInput(BaseModel):
    limit: int = Field(default=5, description="Number of entries to return")


def register_documentation_tools(
    registry: ToolRegistry,
    client: DocumentationClient,
    *,
    server_version: str,
    started_at: float | None = None,
) -> None:
    """Register the documentation tool catalog.

    Tools:
    - `search-webdna-docs`: merged name + full-text search.
    - `get-webdna-doc`: one entry by store id, source id or name.
    - `get-webdna-categories`: categories with entry counts.
    - `get-random-webdna-docs`: a random sample of entries.
    - `get-webdna-stats`: totals and server information.
    """

    started = started_at if started_at is not None else time.monotonic()

    async def _search(input_data: SearchDocsInput) -> dict[str, Any]:
        page = await client.search(
            input_data.query,
            category=input_data.category,
            limit=input_data.limit,
            offset=input_data.offset,
        )
        return asdict(page)

    async def _get_doc(input_data: GetDocInput) -> dict[str, Any]:
        entry = await client.get_by_key(input_data.id)
        if entry is None:
            raise ToolInvocationError(
                f"Documentation not found for ID: {input_data.id}", code="NOT_FOUND"
            )
        return {"doc": asdict(entry)}

    async def _categories(input_data: EmptyInput) -> dict[str, Any]:
        categories = await client.list_categories()
        return {"categories": [asdict(category) for category in categories]}

    async def _random(input_data: RandomDocsInput) -> dict[str, Any]:
        docs = await client.random_sample(input_data.limit)
        return {"docs": [asdict(doc) for doc in docs]}

    async def _stats(input_data: EmptyInput) -> dict[str, Any]:
        total_docs = await client.count()
        categories = await client.list_categories()
        return {
            "total_docs": total_docs,
            "total_categories": len(categories),
            "server_uptime": int(time.monotonic() - started),
            "server_version": server_version,
            "cache_entries": len(client.cache),
            "cache": client.cache.summary(),
        }

    registry.register(
        ToolSpec(
            name="search-webdna-docs",
            description=(
                "Searches WebDNA documentation for specific instructions, contexts, or keywords. "
                "Returns matching documentation entries with descriptions and links to full documentation."
            ),
            args_schema=SearchDocsInput,
            handler=_search,
            tags=["search"],
        )
    )
    registry.register(
        ToolSpec(
            name="get-webdna-doc",
            description=(
                "Retrieves detailed documentation for a specific WebDNA instruction or context by its ID. "
                "Returns full documentation including syntax, parameters, examples, and related instructions."
            ),
            args_schema=GetDocInput,
            handler=_get_doc,
            tags=["lookup"],
        )
    )
    registry.register(
        ToolSpec(
            name="get-webdna-categories",
            description=(
                "Retrieves all WebDNA documentation categories with the count of instructions in each "
                "category. Useful for exploring the WebDNA framework structure."
            ),
            args_schema=EmptyInput,
            handler=_categories,
            tags=["browse"],
        )
    )
    registry.register(
        ToolSpec(
            name="get-random-webdna-docs",
            description="Returns a random selection of WebDNA documentation entries for exploration.",
            args_schema=RandomDocsInput,
            handler=_random,
            tags=["browse"],
        )
    )
    registry.register(
        ToolSpec(
            name="get-webdna-stats",
            description=(
                "Returns statistics about the WebDNA documentation store: entry and category totals, "
                "server uptime and version."
            ),
            args_schema=EmptyInput,
            handler=_stats,
            tags=["stats"],
        )
    )
