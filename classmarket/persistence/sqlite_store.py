"""SQLite-backed durable ledger."""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from ..errors import PersistenceError
from .base import DocKey, Ledger, WriteOp, apply_writes, matches

logger = structlog.get_logger(__name__)


class SqliteLedger(Ledger):
    """
    Ledger stored as JSON documents in one SQLite table.

    Deleted documents stay behind as tombstones (NULL data) so their version
    keeps increasing. Batches and transaction commits run under
    BEGIN IMMEDIATE, which takes the database write lock before any
    version is compared.
    """

    def __init__(self, db_path: str = "ledger.db"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()

        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    key TEXT NOT NULL,
                    data TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, key)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)
            """)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn and conn.in_transaction:
                conn.rollback()
            logger.error("Database error", error=str(e), db_path=str(self.db_path))
            raise PersistenceError(f"Database error: {e}", operation="sqlite",
                                   target=str(self.db_path)) from e
        finally:
            if conn:
                conn.close()

    def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        doc, _version = self._read_versioned(collection, key)
        return doc

    def query(self, collection: str, **equals: Any) -> list[tuple[str, dict[str, Any]]]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT key, data FROM documents
                WHERE collection = ? AND data IS NOT NULL
                ORDER BY key
            """, (collection,)).fetchall()

        found = []
        for row in rows:
            doc = json.loads(row["data"])
            if matches(doc, equals):
                found.append((row["key"], doc))
        return found

    def commit_batch(self, ops: list[WriteOp]) -> None:
        self._commit(None, ops)

    def _read_versioned(self, collection: str, key: str) -> tuple[Optional[dict[str, Any]], int]:
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT data, version FROM documents WHERE collection = ? AND key = ?
            """, (collection, key)).fetchone()

        if row is None:
            return None, 0
        data = json.loads(row["data"]) if row["data"] is not None else None
        return data, row["version"]

    def _commit_if_unchanged(self, read_versions: dict[DocKey, int], ops: list[WriteOp]) -> bool:
        return self._commit(read_versions, ops)

    def _commit(self, read_versions: Optional[dict[DocKey, int]], ops: list[WriteOp]) -> bool:
        with self._lock, self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for (collection, key), expected in (read_versions or {}).items():
                    if self._version(conn, collection, key) != expected:
                        conn.rollback()
                        return False

                staged = apply_writes(ops, lambda doc_key: self._load(conn, doc_key))
                now = datetime.now(timezone.utc).isoformat()
                for (collection, key), doc in staged.items():
                    conn.execute("""
                        INSERT INTO documents (collection, key, data, version, updated_at)
                        VALUES (?, ?, ?, 1, ?)
                        ON CONFLICT(collection, key) DO UPDATE SET
                            data = excluded.data,
                            version = documents.version + 1,
                            updated_at = excluded.updated_at
                    """, (collection, key, json.dumps(doc) if doc is not None else None, now))

                conn.commit()
                return True
            except Exception:
                conn.rollback()
                raise

    def _version(self, conn: sqlite3.Connection, collection: str, key: str) -> int:
        row = conn.execute("""
            SELECT version FROM documents WHERE collection = ? AND key = ?
        """, (collection, key)).fetchone()
        return row["version"] if row else 0

    def _load(self, conn: sqlite3.Connection, doc_key: DocKey) -> Optional[dict[str, Any]]:
        row = conn.execute("""
            SELECT data FROM documents WHERE collection = ? AND key = ?
        """, doc_key).fetchone()
        if row is None or row["data"] is None:
            return None
        return json.loads(row["data"])
