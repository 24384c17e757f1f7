"""SQLite persistence for prompt chains, their versions, and reference records.

Chains are mutable containers; versions are append-only snapshots numbered
``1..k`` per chain, where ``k`` is the derived "latest" version.  Artists and
inspirations are plain reference records.

Every public operation runs as one unit of work on its own connection.  If the
unit fails because a table is missing, the schema is provisioned and the unit
is retried exactly once (see :mod:`promptchain.core.schema`).  Any other
database failure is raised as :class:`StoreError` straight away.

``tags``, ``modules`` and ``params`` are stored as JSON text and decoded on the
way out, so callers only ever see lists and dicts.  Rows are returned as
camelCase dictionaries ready for JSON serialisation.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from promptchain.core.config import PromptChainConfig
from promptchain.core.errors import (
    ChainNotFoundError,
    ConfigurationError,
    SchemaMissingError,
    StoreError,
)
from promptchain.core.schema import ensure_schema, is_missing_relation

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Seed version defaults.  Every new chain starts from this configuration.
# ---------------------------------------------------------------------------
DEFAULT_BASE_PROMPT = "masterpiece, best quality, {character}"
DEFAULT_NEGATIVE_PROMPT = "lowres, bad anatomy"
DEFAULT_PARAMS: dict[str, Any] = {
    "width": 832,
    "height": 1216,
    "steps": 28,
    "scale": 5,
    "sampler": "k_euler_ancestral",
}

# Attempts at allocating a version number before a conflict is surfaced.
_VERSION_ALLOCATION_ATTEMPTS = 3

# PUT payload key -> chains column.  Only these fields are updatable.
_CHAIN_META_COLUMNS = {
    "name": "name",
    "description": "description",
    "previewImage": "preview_image",
}


def default_modules() -> list[dict]:
    """Return the module list every seed version starts with."""
    return [
        {
            "id": str(uuid.uuid4()),
            "name": "Lighting",
            "content": "cinematic lighting",
            "isActive": True,
        }
    ]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _decode_json(text: str | None, default: Any) -> Any:
    """Decode a stored JSON column, returning *default* for empty values."""
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        logger.warning(f"Ignoring malformed JSON column value: {text[:80]!r}")
        return default


def _chain_row(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "tags": _decode_json(row["tags"], []),
        "previewImage": row["preview_image"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def _version_row(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "chainId": row["chain_id"],
        "version": row["version"],
        "basePrompt": row["base_prompt"],
        "negativePrompt": row["negative_prompt"],
        "modules": _decode_json(row["modules"], []),
        "params": _decode_json(row["params"], {}),
        "createdAt": row["created_at"],
    }


def _is_version_conflict(exc: StoreError) -> bool:
    cause = exc.__cause__
    return isinstance(cause, sqlite3.IntegrityError) and "UNIQUE" in str(cause)


class ChainStore:
    """Chain, version, artist and inspiration storage backed by SQLite.

    The store holds no state besides the database path; each operation opens
    and closes its own connection, so one instance can be shared freely.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the store.

        No tables are created here.  The schema is provisioned lazily by the
        first operation that needs it.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)

    @classmethod
    def from_config(cls, cfg: PromptChainConfig) -> ChainStore:
        """Build a store from configuration, validating the storage binding.

        Raises:
            ConfigurationError: 503 if no database is configured, 500 if the
                configured path cannot be a database file.
        """
        if cfg.db_path is None:
            raise ConfigurationError(
                "Database not configured. Set PROMPTCHAIN_DB_PATH to a SQLite file path."
            )
        if cfg.db_path.is_dir():
            raise ConfigurationError(
                f"Configuration Error: db_path '{cfg.db_path}' is a directory. "
                "It must point to a SQLite database file.",
                status_code=500,
            )
        return cls(cfg.db_path)

    # ------------------------------------------------------------------
    # Unit-of-work plumbing.
    # ------------------------------------------------------------------

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on any failure."""
        # IMMEDIATE takes the write lock at the first write of a transaction,
        # which serialises version allocation across processes.
        conn = sqlite3.connect(self.db_path, isolation_level="IMMEDIATE")
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _attempt(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        try:
            with self._connection() as conn:
                return operation(conn)
        except sqlite3.Error as e:
            if is_missing_relation(e):
                raise SchemaMissingError(str(e)) from e
            raise StoreError(str(e)) from e

    def _provision(self) -> None:
        try:
            with self._connection() as conn:
                ensure_schema(conn)
        except sqlite3.Error as e:
            raise StoreError(f"Schema provisioning failed: {e}") from e

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """Run *operation* in a transaction, provisioning the schema at most once.

        Args:
            operation: Callable receiving an open connection.  Its return
                value is returned once the transaction commits.

        Raises:
            StoreError: For any database failure, including a table that is
                still missing after provisioning.
        """
        try:
            return self._attempt(operation)
        except SchemaMissingError as e:
            logger.info(f"Table missing ({e}); provisioning schema and retrying")

        self._provision()

        try:
            return self._attempt(operation)
        except SchemaMissingError as e:
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Chains.
    # ------------------------------------------------------------------

    def list_chains(self) -> list[dict]:
        """Return every chain, newest activity first, with its latest version.

        The latest versions of all chains are fetched with one join against a
        per-chain ``MAX(version)`` subquery.

        Returns:
            Chain dictionaries, each with a ``latestVersion`` key holding a
            version dictionary or ``None``.
        """

        def operation(conn: sqlite3.Connection) -> list[dict]:
            chains = conn.execute("SELECT * FROM chains ORDER BY updated_at DESC").fetchall()
            latest = conn.execute("""
                SELECT v.* FROM versions v
                INNER JOIN (
                    SELECT chain_id, MAX(version) AS max_ver FROM versions GROUP BY chain_id
                ) grouped ON v.chain_id = grouped.chain_id AND v.version = grouped.max_ver
                """).fetchall()

            latest_by_chain = {row["chain_id"]: _version_row(row) for row in latest}

            result = []
            for row in chains:
                chain = _chain_row(row)
                chain["latestVersion"] = latest_by_chain.get(row["id"])
                result.append(chain)
            return result

        return self._run(operation)

    def create_chain(self, name: str, description: str | None = None) -> str:
        """Create a chain together with its seed version 1.

        Both rows are written in one transaction, so a chain is never visible
        without its seed version.

        Args:
            name: Display name of the chain
            description: Optional free-text description

        Returns:
            The new chain's identifier
        """
        chain_id = str(uuid.uuid4())
        version_id = str(uuid.uuid4())
        modules = json.dumps(default_modules())
        params = json.dumps(DEFAULT_PARAMS)

        def operation(conn: sqlite3.Connection) -> str:
            now = _now_ms()
            conn.execute(
                """
                INSERT INTO chains (id, name, description, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (chain_id, name, description, "[]", now, now),
            )
            conn.execute(
                """
                INSERT INTO versions
                    (id, chain_id, version, base_prompt, negative_prompt, modules, params, created_at)
                VALUES (?, ?, 1, ?, ?, ?, ?, ?)
                """,
                (
                    version_id,
                    chain_id,
                    DEFAULT_BASE_PROMPT,
                    DEFAULT_NEGATIVE_PROMPT,
                    modules,
                    params,
                    now,
                ),
            )
            return chain_id

        self._run(operation)
        logger.info(f"Created chain {chain_id} ({name!r})")
        return chain_id

    def update_chain_meta(self, chain_id: str, fields: dict[str, Any]) -> bool:
        """Apply a partial metadata update to a chain.

        Only ``name``, ``description`` and ``previewImage`` keys are applied;
        anything else is ignored.  ``updatedAt`` is bumped whenever at least
        one field is applied.

        Args:
            chain_id: Chain to update
            fields: Partial camelCase field mapping

        Returns:
            Always ``True``.  An update with no applicable fields is a no-op.
        """
        assignments = [
            (column, fields[key]) for key, column in _CHAIN_META_COLUMNS.items() if key in fields
        ]
        if not assignments:
            logger.debug(f"No metadata fields to update for chain {chain_id}")
            return True

        set_clause = ", ".join(f"{column} = ?" for column, _ in assignments)
        values = [value for _, value in assignments]

        def operation(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"""
                UPDATE chains
                SET {set_clause}, updated_at = MAX(?, COALESCE(updated_at, 0) + 1)
                WHERE id = ?
                """,
                (*values, _now_ms(), chain_id),
            )

        self._run(operation)
        return True

    def delete_chain(self, chain_id: str) -> bool:
        """Delete a chain.  Its versions are removed by ``ON DELETE CASCADE``."""

        def operation(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM chains WHERE id = ?", (chain_id,))

        self._run(operation)
        logger.info(f"Deleted chain {chain_id}")
        return True

    # ------------------------------------------------------------------
    # Versions.
    # ------------------------------------------------------------------

    def create_version(
        self,
        chain_id: str,
        base_prompt: str,
        negative_prompt: str,
        modules: list[dict],
        params: dict[str, Any],
    ) -> dict:
        """Append a new version to a chain and bump the chain's ``updatedAt``.

        The next number is computed as ``MAX(version) + 1`` inside the same
        ``INSERT`` statement that writes the row.  The unique
        ``(chain_id, version)`` index turns any remaining race into a
        conflict, which is retried with a fresh read.

        Args:
            chain_id: Parent chain identifier
            base_prompt: Positive base prompt
            negative_prompt: Negative prompt
            modules: Ordered prompt modules
            params: Generation parameters

        Returns:
            Dictionary with the new version's ``id`` and ``version`` number

        Raises:
            ChainNotFoundError: If the chain does not exist
            StoreError: On persistence failure or repeated version conflicts
        """
        modules_json = json.dumps(modules)
        params_json = json.dumps(params)

        for attempt in range(1, _VERSION_ALLOCATION_ATTEMPTS + 1):
            version_id = str(uuid.uuid4())

            def operation(conn: sqlite3.Connection) -> dict:
                exists = conn.execute("SELECT 1 FROM chains WHERE id = ?", (chain_id,)).fetchone()
                if exists is None:
                    raise ChainNotFoundError(f"Chain not found: {chain_id}")

                now = _now_ms()
                conn.execute(
                    """
                    INSERT INTO versions
                        (id, chain_id, version, base_prompt, negative_prompt,
                         modules, params, created_at)
                    SELECT ?, ?, COALESCE(MAX(version), 0) + 1, ?, ?, ?, ?, ?
                    FROM versions WHERE chain_id = ?
                    """,
                    (
                        version_id,
                        chain_id,
                        base_prompt,
                        negative_prompt,
                        modules_json,
                        params_json,
                        now,
                        chain_id,
                    ),
                )
                row = conn.execute(
                    "SELECT version FROM versions WHERE id = ?", (version_id,)
                ).fetchone()
                conn.execute(
                    "UPDATE chains SET updated_at = MAX(?, COALESCE(updated_at, 0) + 1) WHERE id = ?",
                    (now, chain_id),
                )
                return {"id": version_id, "version": row["version"]}

            try:
                created = self._run(operation)
            except StoreError as e:
                if not _is_version_conflict(e) or attempt == _VERSION_ALLOCATION_ATTEMPTS:
                    raise
                logger.warning(f"Version number conflict on chain {chain_id}, retrying")
                continue

            logger.info(f"Created version {created['version']} of chain {chain_id}")
            return created

        # The loop either returns or raises on its last attempt.
        raise StoreError(f"Could not allocate a version number for chain {chain_id}")

    def list_versions(self, chain_id: str) -> list[dict]:
        """Return every version of a chain in ascending version order."""

        def operation(conn: sqlite3.Connection) -> list[dict]:
            rows = conn.execute(
                "SELECT * FROM versions WHERE chain_id = ? ORDER BY version ASC",
                (chain_id,),
            ).fetchall()
            return [_version_row(row) for row in rows]

        return self._run(operation)

    def get_version(self, chain_id: str, version: int | None = None) -> dict | None:
        """Return one version of a chain.

        Args:
            chain_id: Parent chain identifier
            version: Version number, or ``None`` for the latest

        Returns:
            The version dictionary, or ``None`` if it does not exist
        """

        def operation(conn: sqlite3.Connection) -> dict | None:
            if version is None:
                row = conn.execute(
                    "SELECT * FROM versions WHERE chain_id = ? ORDER BY version DESC LIMIT 1",
                    (chain_id,),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM versions WHERE chain_id = ? AND version = ?",
                    (chain_id, version),
                ).fetchone()
            return _version_row(row) if row is not None else None

        return self._run(operation)

    # ------------------------------------------------------------------
    # Artists.
    # ------------------------------------------------------------------

    def list_artists(self) -> list[dict]:
        """Return all artists ordered by name."""

        def operation(conn: sqlite3.Connection) -> list[dict]:
            rows = conn.execute("SELECT * FROM artists ORDER BY name ASC").fetchall()
            return [
                {"id": row["id"], "name": row["name"], "imageUrl": row["image_url"]}
                for row in rows
            ]

        return self._run(operation)

    def upsert_artist(self, artist_id: str | None, name: str, image_url: str | None) -> str:
        """Insert or replace an artist, generating an id when none is given."""
        artist_id = artist_id or str(uuid.uuid4())

        def operation(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO artists (id, name, image_url) VALUES (?, ?, ?)",
                (artist_id, name, image_url),
            )

        self._run(operation)
        return artist_id

    def delete_artist(self, artist_id: str) -> bool:
        def operation(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM artists WHERE id = ?", (artist_id,))

        self._run(operation)
        return True

    # ------------------------------------------------------------------
    # Inspirations.
    # ------------------------------------------------------------------

    def list_inspirations(self) -> list[dict]:
        """Return all inspirations, newest first."""

        def operation(conn: sqlite3.Connection) -> list[dict]:
            rows = conn.execute("SELECT * FROM inspirations ORDER BY created_at DESC").fetchall()
            return [
                {
                    "id": row["id"],
                    "title": row["title"],
                    "imageUrl": row["image_url"],
                    "prompt": row["prompt"],
                    "createdAt": row["created_at"],
                }
                for row in rows
            ]

        return self._run(operation)

    def upsert_inspiration(
        self,
        inspiration_id: str | None,
        title: str,
        image_url: str | None,
        prompt: str | None,
        created_at: int | None = None,
    ) -> str:
        """Insert or replace an inspiration, filling in id and timestamp."""
        inspiration_id = inspiration_id or str(uuid.uuid4())
        created_at = created_at if created_at is not None else _now_ms()

        def operation(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT OR REPLACE INTO inspirations (id, title, image_url, prompt, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (inspiration_id, title, image_url, prompt, created_at),
            )

        self._run(operation)
        return inspiration_id

    def delete_inspiration(self, inspiration_id: str) -> bool:
        def operation(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM inspirations WHERE id = ?", (inspiration_id,))

        self._run(operation)
        return True
