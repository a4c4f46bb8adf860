"""SQLite schema for categories, documentation entries and their FTS5 index."""

from __future__ import annotations

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT
);

CREATE TABLE IF NOT EXISTS documentation (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    instruction TEXT NOT NULL UNIQUE,
    category_id INTEGER REFERENCES categories(id),
    description TEXT,
    syntax TEXT,
    parameters TEXT,
    examples TEXT,
    related TEXT NOT NULL DEFAULT '[]',
    url TEXT UNIQUE,
    webdna_id TEXT UNIQUE,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_documentation_category ON documentation(category_id);

CREATE VIRTUAL TABLE IF NOT EXISTS documentation_fts USING fts5(
    instruction,
    description,
    syntax,
    parameters,
    examples,
    content='documentation',
    content_rowid='id',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS documentation_fts_insert AFTER INSERT ON documentation BEGIN
    INSERT INTO documentation_fts(rowid, instruction, description, syntax, parameters, examples)
    VALUES (new.id, new.instruction, new.description, new.syntax, new.parameters, new.examples);
END;

CREATE TRIGGER IF NOT EXISTS documentation_fts_delete AFTER DELETE ON documentation BEGIN
    INSERT INTO documentation_fts(documentation_fts, rowid, instruction, description, syntax, parameters, examples)
    VALUES ('delete', old.id, old.instruction, old.description, old.syntax, old.parameters, old.examples);
END;

CREATE TRIGGER IF NOT EXISTS documentation_fts_update AFTER UPDATE ON documentation BEGIN
    INSERT INTO documentation_fts(documentation_fts, rowid, instruction, description, syntax, parameters, examples)
    VALUES ('delete', old.id, old.instruction, old.description, old.syntax, old.parameters, old.examples);
    INSERT INTO documentation_fts(rowid, instruction, description, syntax, parameters, examples)
    VALUES (new.id, new.instruction, new.description, new.syntax, new.parameters, new.examples);
END;

CREATE TRIGGER IF NOT EXISTS documentation_touch_updated_at
AFTER UPDATE OF instruction, category_id, description, syntax, parameters, examples, related, url, webdna_id
ON documentation BEGIN
    UPDATE documentation SET updated_at = CURRENT_TIMESTAMP WHERE id = new.id;
END;
"""

# bm25 column weights: name > description > syntax/parameters > examples
FTS_WEIGHTS = (10.0, 4.0, 2.0, 2.0, 1.0)
