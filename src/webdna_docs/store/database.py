"""Async SQLite access for documentation entries and categories."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from webdna_docs.store.schema import FTS_WEIGHTS, SCHEMA_SQL
from webdna_docs.types import Category, DocEntry, EntrySummary, NewEntry, RelatedDoc

logger = logging.getLogger(__name__)

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)

_SUMMARY_COLUMNS = """
    d.id, d.instruction, d.description, d.url, d.webdna_id,
    c.name AS category_name
"""

_ENTRY_COLUMNS = """
    d.id, d.instruction, d.category_id, d.description, d.syntax, d.parameters,
    d.examples, d.related, d.url, d.webdna_id, d.created_at, d.updated_at,
    c.name AS category_name
"""

UNCATEGORIZED = "Uncategorized"


class StoreError(Exception):
    """Raised for any failure inside the relational store layer."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def build_fts_query(text: str) -> str:
    """Turn free text into an FTS5 query of quoted tokens (implicit AND)."""
    tokens = _WORD_PATTERN.findall(text)
    return " ".join(f'"{token}"' for token in tokens)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _summary_from_row(row: aiosqlite.Row) -> EntrySummary:
    return EntrySummary(
        id=row["id"],
        instruction=row["instruction"],
        category=row["category_name"] or UNCATEGORIZED,
        description=row["description"],
        url=row["url"],
        webdna_id=row["webdna_id"],
    )


def _entry_from_row(row: aiosqlite.Row) -> DocEntry:
    try:
        related = [int(item) for item in json.loads(row["related"] or "[]")]
    except (ValueError, TypeError):
        logger.warning("Ignoring malformed related list for entry %s", row["id"])
        related = []
    return DocEntry(
        id=row["id"],
        instruction=row["instruction"],
        category_id=row["category_id"],
        category_name=row["category_name"] or UNCATEGORIZED,
        description=row["description"],
        syntax=row["syntax"],
        parameters=row["parameters"],
        examples=row["examples"],
        url=row["url"],
        webdna_id=row["webdna_id"],
        related=related,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DocStore:
    """Thin query layer over the documentation database."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                yield db
        except sqlite3.Error as exc:
            raise StoreError(f"Store operation failed: {exc}", exc) from exc

    async def initialize(self) -> dict[str, int]:
        """Create tables, indexes and triggers if missing; return row counts."""
        async with self._connect() as db:
            await db.executescript(SCHEMA_SQL)
            await db.commit()
            counts: dict[str, int] = {}
            for table in ("categories", "documentation"):
                async with db.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
                    row = await cursor.fetchone()
                    counts[table] = int(row[0]) if row else 0
        logger.info(
            "Store ready at %s: %d categories, %d documentation entries",
            self.db_path,
            counts["categories"],
            counts["documentation"],
        )
        return counts

    # -- Reads ----------------------------------------------------------

    async def find_by_name(
        self, query: str, *, category: str | None = None
    ) -> list[EntrySummary]:
        """Case-insensitive substring match on the instruction name."""
        sql = f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM documentation d
            LEFT JOIN categories c ON c.id = d.category_id
            WHERE d.instruction LIKE ? ESCAPE '\\'
        """
        params: list[Any] = [f"%{_escape_like(query)}%"]
        if category:
            sql += " AND c.name = ? COLLATE NOCASE"
            params.append(category)
        sql += " ORDER BY d.instruction COLLATE NOCASE"
        return await self._fetch_summaries(sql, params)

    async def find_by_text(
        self, query: str, *, category: str | None = None
    ) -> list[EntrySummary]:
        """Full-text match over the weighted search index, best rank first."""
        fts_query = build_fts_query(query)
        if not fts_query:
            return []
        weights = ", ".join(str(weight) for weight in FTS_WEIGHTS)
        sql = f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM documentation_fts
            JOIN documentation d ON d.id = documentation_fts.rowid
            LEFT JOIN categories c ON c.id = d.category_id
            WHERE documentation_fts MATCH ?
        """
        params: list[Any] = [fts_query]
        if category:
            sql += " AND c.name = ? COLLATE NOCASE"
            params.append(category)
        sql += f" ORDER BY bm25(documentation_fts, {weights})"
        return await self._fetch_summaries(sql, params)

    async def get_entry(self, column: str, value: Any) -> DocEntry | None:
        if column not in {"id", "webdna_id", "instruction"}:
            raise ValueError(f"Unsupported lookup column: {column}")
        collate = " COLLATE NOCASE" if column == "instruction" else ""
        sql = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM documentation d
            LEFT JOIN categories c ON c.id = d.category_id
            WHERE d.{column} = ?{collate}
            LIMIT 1
        """
        async with self._connect() as db:
            async with db.execute(sql, (value,)) as cursor:
                row = await cursor.fetchone()
        return _entry_from_row(row) if row else None

    async def get_related(self, ids: list[int]) -> list[RelatedDoc]:
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        sql = f"""
            SELECT id, instruction, url, webdna_id
            FROM documentation
            WHERE id IN ({placeholders})
            ORDER BY instruction COLLATE NOCASE
        """
        async with self._connect() as db:
            async with db.execute(sql, ids) as cursor:
                rows = await cursor.fetchall()
        return [
            RelatedDoc(
                id=row["id"],
                instruction=row["instruction"],
                url=row["url"],
                webdna_id=row["webdna_id"],
            )
            for row in rows
        ]

    async def list_categories(self) -> list[Category]:
        sql = """
            SELECT c.id, c.name, c.description, COUNT(d.id) AS instruction_count
            FROM categories c
            LEFT JOIN documentation d ON d.category_id = c.id
            GROUP BY c.id, c.name, c.description
            ORDER BY c.name COLLATE NOCASE
        """
        async with self._connect() as db:
            async with db.execute(sql) as cursor:
                rows = await cursor.fetchall()
        return [
            Category(
                id=row["id"],
                name=row["name"],
                description=row["description"],
                instruction_count=int(row["instruction_count"]),
            )
            for row in rows
        ]

    async def sample(self, limit: int) -> list[EntrySummary]:
        sql = f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM documentation d
            LEFT JOIN categories c ON c.id = d.category_id
            ORDER BY RANDOM()
            LIMIT ?
        """
        return await self._fetch_summaries(sql, [limit])

    async def count_entries(self) -> int:
        async with self._connect() as db:
            async with db.execute("SELECT COUNT(*) FROM documentation") as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def _fetch_summaries(self, sql: str, params: list[Any]) -> list[EntrySummary]:
        async with self._connect() as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [_summary_from_row(row) for row in rows]

    # -- Writes (scraper side) ------------------------------------------

    async def get_or_create_category(self, name: str, description: str | None = None) -> int:
        async with self._connect() as db:
            async with db.execute("SELECT id FROM categories WHERE name = ?", (name,)) as cursor:
                row = await cursor.fetchone()
            if row:
                return int(row["id"])
            cursor = await db.execute(
                "INSERT INTO categories(name, description) VALUES(?, ?)",
                (name, description),
            )
            await db.commit()
            category_id = int(cursor.lastrowid)
        logger.info("Inserted category %s with id %d", name, category_id)
        return category_id

    async def entry_exists(self, webdna_id: str) -> bool:
        async with self._connect() as db:
            async with db.execute(
                "SELECT 1 FROM documentation WHERE webdna_id = ?", (webdna_id,)
            ) as cursor:
                return await cursor.fetchone() is not None

    async def insert_entry(self, entry: NewEntry) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                """
                INSERT INTO documentation(
                    instruction, category_id, description, syntax, parameters,
                    examples, related, url, webdna_id
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.instruction,
                    entry.category_id,
                    entry.description,
                    entry.syntax,
                    entry.parameters,
                    entry.examples,
                    json.dumps(entry.related),
                    entry.url,
                    entry.webdna_id,
                ),
            )
            await db.commit()
            return int(cursor.lastrowid)

    async def ids_for_source_ids(self, webdna_ids: list[str]) -> dict[str, int]:
        if not webdna_ids:
            return {}
        placeholders = ", ".join("?" for _ in webdna_ids)
        async with self._connect() as db:
            async with db.execute(
                f"SELECT id, webdna_id FROM documentation WHERE webdna_id IN ({placeholders})",
                webdna_ids,
            ) as cursor:
                rows = await cursor.fetchall()
        return {row["webdna_id"]: int(row["id"]) for row in rows}

    async def set_related(self, entry_id: int, related_ids: list[int]) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE documentation SET related = ? WHERE id = ?",
                (json.dumps(related_ids), entry_id),
            )
            await db.commit()
