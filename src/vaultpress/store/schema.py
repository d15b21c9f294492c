"""Schema of the generated vault database.

Downstream query tools read this file directly, so any change to the tables
below must bump CURRENT_SCHEMA_VERSION; the version is stamped into the
`schema_metadata` table of every database built.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_metadata (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  hash TEXT NOT NULL,
  slug TEXT NOT NULL UNIQUE,
  title TEXT NOT NULL,
  file_name TEXT NOT NULL,
  original_path TEXT NOT NULL,
  html TEXT NOT NULL,
  markdown TEXT NOT NULL,
  plain_text TEXT NOT NULL,
  excerpt TEXT,
  word_count INTEGER NOT NULL DEFAULT 0,
  frontmatter_json TEXT,
  toc_json TEXT,
  links_json TEXT,
  backlinks_json TEXT,
  cover_json TEXT,
  created_at TEXT,
  modified_at TEXT,
  processed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(hash);

CREATE TABLE IF NOT EXISTS media (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  hash TEXT NOT NULL,
  original_path TEXT NOT NULL UNIQUE,
  output_path TEXT NOT NULL,
  file_name TEXT NOT NULL,
  type TEXT NOT NULL,
  mime_type TEXT,
  format TEXT,
  width INTEGER,
  height INTEGER,
  size INTEGER NOT NULL,
  original_size INTEGER NOT NULL,
  sizes_json TEXT
);

CREATE INDEX IF NOT EXISTS idx_media_hash ON media(hash);

CREATE TABLE IF NOT EXISTS embeddings (
  document_hash TEXT PRIMARY KEY,
  model TEXT NOT NULL,
  dimensions INTEGER NOT NULL,
  vector BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS media_embeddings (
  media_hash TEXT PRIMARY KEY,
  model TEXT NOT NULL,
  dimensions INTEGER NOT NULL,
  vector BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS similarity (
  document_hash TEXT NOT NULL,
  similar_hash TEXT NOT NULL,
  score REAL NOT NULL,
  rank INTEGER NOT NULL,
  PRIMARY KEY (document_hash, similar_hash)
);

CREATE INDEX IF NOT EXISTS idx_similarity_rank ON similarity(document_hash, rank);
"""

FTS_SQL = """
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
  title,
  plain_text,
  content='documents',
  content_rowid='id',
  tokenize='porter unicode61'
);
"""


class SchemaManager:
    """Creates the schema and records its version in `schema_metadata`."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create(self, fts: bool = True) -> bool:
        """Create all tables. Returns whether the FTS5 index could be created."""
        self._conn.executescript(SCHEMA_SQL)
        has_fts = False
        if fts:
            try:
                self._conn.executescript(FTS_SQL)
                has_fts = True
            except sqlite3.OperationalError as e:
                logger.warning(f"FTS5 unavailable, skipping full-text index: {e}")
        self.stamp("schema_version", str(CURRENT_SCHEMA_VERSION))
        self._conn.commit()
        return has_fts

    def stamp(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO schema_metadata (key, value, applied_at) VALUES (?, ?, ?)",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )

    def get_version(self) -> int:
        """Schema version of the database (0 if not set)."""
        try:
            row = self._conn.execute(
                "SELECT value FROM schema_metadata WHERE key = 'schema_version'"
            ).fetchone()
        except sqlite3.OperationalError:
            return 0
        if row is None:
            return 0
        return int(row[0])
