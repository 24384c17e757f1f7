"""On-demand schema provisioning for the prompt chain database.

The store never creates tables up front.  Instead, a statement that fails
because a table is missing triggers :func:`ensure_schema` once and the
statement is retried.  Every statement in :data:`SCHEMA_SQL` uses
``IF NOT EXISTS`` so overlapping provisioning attempts converge without error
and existing rows are never touched.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chains (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    tags TEXT,
    preview_image TEXT,
    created_at INTEGER,
    updated_at INTEGER
);
CREATE TABLE IF NOT EXISTS versions (
    id TEXT PRIMARY KEY,
    chain_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    base_prompt TEXT,
    negative_prompt TEXT,
    modules TEXT,
    params TEXT,
    created_at INTEGER,
    FOREIGN KEY (chain_id) REFERENCES chains(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS artists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    image_url TEXT
);
CREATE TABLE IF NOT EXISTS inspirations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    image_url TEXT,
    prompt TEXT,
    created_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_versions_chain_id ON versions(chain_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_versions_chain_version ON versions(chain_id, version);
"""

# Substrings of driver messages that mean "the relation does not exist".
_MISSING_RELATION_MARKERS = ("no such table", "object not found")


def is_missing_relation(exc: BaseException) -> bool:
    """Return ``True`` if *exc* reports a missing table or relation."""
    message = str(exc).lower()
    return any(marker in message for marker in _MISSING_RELATION_MARKERS)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes that do not exist yet.

    Safe to call any number of times.  ``executescript`` commits any pending
    transaction on *conn* before running, so callers should roll back their
    own failed work first.

    Args:
        conn: Open connection to the target database.
    """
    conn.executescript(SCHEMA_SQL)
    logger.info("Provisioned prompt chain schema")
