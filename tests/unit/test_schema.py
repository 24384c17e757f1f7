"""Tests for promptchain.core.schema — on-demand schema provisioning."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from promptchain.core.schema import ensure_schema, is_missing_relation


@pytest.fixture
def conn(temp_dir: Path):
    connection = sqlite3.connect(temp_dir / "schema.db")
    connection.execute("PRAGMA foreign_keys = ON")
    try:
        yield connection
    finally:
        connection.close()


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


class TestIsMissingRelation:
    def test_sqlite_missing_table(self, conn):
        with pytest.raises(sqlite3.OperationalError) as exc_info:
            conn.execute("SELECT * FROM chains")
        assert is_missing_relation(exc_info.value)

    def test_object_not_found_message(self):
        assert is_missing_relation(Exception("D1_ERROR: object not found: chains"))

    def test_other_errors_are_not_missing_relations(self):
        assert not is_missing_relation(sqlite3.OperationalError("database is locked"))
        assert not is_missing_relation(sqlite3.IntegrityError("UNIQUE constraint failed"))


class TestEnsureSchema:
    def test_creates_all_tables(self, conn):
        ensure_schema(conn)
        assert {"chains", "versions", "artists", "inspirations"} <= _tables(conn)

    def test_idempotent_and_preserves_rows(self, conn):
        ensure_schema(conn)
        conn.execute("INSERT INTO artists (id, name) VALUES ('a1', 'Mucha')")
        conn.commit()

        ensure_schema(conn)
        ensure_schema(conn)

        rows = conn.execute("SELECT id, name FROM artists").fetchall()
        assert rows == [("a1", "Mucha")]

    def test_version_numbers_unique_per_chain(self, conn):
        ensure_schema(conn)
        conn.execute("INSERT INTO chains (id, name) VALUES ('c1', 'Chain')")
        conn.execute("INSERT INTO versions (id, chain_id, version) VALUES ('v1', 'c1', 1)")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO versions (id, chain_id, version) VALUES ('v2', 'c1', 1)")

    def test_deleting_chain_cascades_to_versions(self, conn):
        ensure_schema(conn)
        conn.execute("INSERT INTO chains (id, name) VALUES ('c1', 'Chain')")
        conn.execute("INSERT INTO versions (id, chain_id, version) VALUES ('v1', 'c1', 1)")
        conn.execute("DELETE FROM chains WHERE id = 'c1'")
        assert conn.execute("SELECT COUNT(*) FROM versions").fetchone()[0] == 0
