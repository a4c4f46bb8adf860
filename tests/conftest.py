import asyncio
import os
import sys
from pathlib import Path

import pytest

from webdna_docs.store.database import DocStore
from webdna_docs.types import NewEntry

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
ECHO_WORKER = [sys.executable, str(FIXTURES_DIR / "echo_worker.py")]

BASE_URL = "https://docs.webdna.us"

# (instruction, category, description, syntax, source id)
SEED_ENTRIES = [
    ("table", "Database", "Displays records from a database in a loop", "[table name=x][/table]", "table"),
    ("foo", "Database", "Helper that uses a table", "[foo]", "foo"),
    ("sql", "Database", "Runs an SQL statement against a database", "[sql]...[/sql]", "sql"),
    ("date", "Date/Time", "Displays the current date", "[date]", "showdate"),
    ("Date Formats", "Date/Time", "Formatting options for dates", "", "date"),
    ("math", "Math", "Evaluates arithmetic expressions", "[math]1+1[/math]", "math"),
]


async def seed_store(store: DocStore) -> None:
    await store.initialize()
    for instruction, category, description, syntax, source_id in SEED_ENTRIES:
        category_id = await store.get_or_create_category(category)
        await store.insert_entry(
            NewEntry(
                instruction=instruction,
                category_id=category_id,
                description=description,
                syntax=syntax,
                parameters="",
                examples="",
                url=f"{BASE_URL}/{category.lower()}/{source_id}",
                webdna_id=source_id,
            )
        )


@pytest.fixture
def empty_store(tmp_path: Path) -> DocStore:
    store = DocStore(tmp_path / "docs.db")
    asyncio.run(store.initialize())
    return store


@pytest.fixture
def seeded_store(tmp_path: Path) -> DocStore:
    store = DocStore(tmp_path / "docs.db")
    asyncio.run(seed_store(store))
    return store


@pytest.fixture
def seed_ids(seeded_store: DocStore) -> dict[str, int]:
    # Rows get consecutive ids in insertion order on a fresh database.
    return {entry[0]: index for index, entry in enumerate(SEED_ENTRIES, start=1)}


@pytest.fixture
def echo_worker_command() -> list[str]:
    return list(ECHO_WORKER)


@pytest.fixture
def worker_pythonpath(monkeypatch: pytest.MonkeyPatch) -> None:
    """Lets a spawned `python -m webdna_docs` import the package from src/."""
    existing = os.environ.get("PYTHONPATH")
    value = str(SRC_DIR) if not existing else os.pathsep.join([str(SRC_DIR), existing])
    monkeypatch.setenv("PYTHONPATH", value)
