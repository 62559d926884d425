"""Document stores for ShadowGraphRecords.

Provides InMemoryDocumentStore and SQLiteDocumentStore implementations of
the DocumentStore protocol.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from shadowgraph.core.errors import StorageError
from shadowgraph.models.snapshot import ShadowGraphRecord
from shadowgraph.report.serialize import record_from_dict, record_to_dict

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """In-memory DocumentStore for testing and single-process use.

    Records are stored as serialized dicts so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], dict] = {}
        self._lock = threading.Lock()

    def save(self, record: ShadowGraphRecord) -> None:
        """Insert or replace a record."""
        with self._lock:
            self._records[(record.project_id, record.shadow_id)] = record_to_dict(record)

    def get(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get a record, or None."""
        with self._lock:
            data = self._records.get((project_id, shadow_id))
        return record_from_dict(data) if data is not None else None

    def find_active(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get the record only while PENDING or ANALYZING."""
        record = self.get(project_id, shadow_id)
        return record if record is not None and record.status.is_active else None

    def list_by_project(self, project_id: str) -> list[ShadowGraphRecord]:
        """All records of a project, newest first."""
        with self._lock:
            rows = [d for (p, _), d in self._records.items() if p == project_id]
        records = [record_from_dict(d) for d in rows]
        return sorted(records, key=lambda r: (r.created_at, r.shadow_id), reverse=True)

    def find_expired(self, now: datetime) -> list[ShadowGraphRecord]:
        """Records whose expiry lies strictly before now."""
        with self._lock:
            rows = list(self._records.values())
        return [r for r in map(record_from_dict, rows) if r.is_expired(now)]

    def delete(self, project_id: str, shadow_id: str) -> bool:
        """Delete a record."""
        with self._lock:
            return self._records.pop((project_id, shadow_id), None) is not None


class SQLiteDocumentStore:
    """SQLite-backed DocumentStore for persistent storage.

    Schema:
        records(
            project_id TEXT NOT NULL,
            shadow_id TEXT NOT NULL,
            status TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT,
            body TEXT NOT NULL,  -- record as JSON
            PRIMARY KEY(project_id, shadow_id)
        )

    Timestamps are stored as ISO-8601 UTC strings, which sort correctly as
    text. Expiry queries therefore run in SQL.

    Thread Safety: the connection is shared across threads. Every statement,
    its fetch and its commit run under one lock.
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialize SQLite document store.

        Args:
            db_path: Path to SQLite database file, or ":memory:". Created if
                it doesn't exist.
        """
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.debug("document_store_opened path=%s", self._db_path)

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS records (
                project_id TEXT NOT NULL,
                shadow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT,
                body TEXT NOT NULL,
                PRIMARY KEY(project_id, shadow_id)
            )
        """)
        self._execute(
            """
            CREATE INDEX IF NOT EXISTS idx_records_expires_at
            ON records(expires_at)
            """,
            commit=True,
        )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and translate sqlite errors into StorageError."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.OperationalError as e:
                locked = "locked" in str(e).lower()
                raise StorageError(
                    "execute", str(e), retryable=locked, retry_after_seconds=1 if locked else None
                ) from e
            except sqlite3.DatabaseError as e:
                raise StorageError("execute", str(e)) from e

    def _execute(self, sql: str, params: tuple = (), commit: bool = False) -> int:
        """Run a statement. Returns the affected row count."""
        with self._connection() as conn:
            cursor = conn.execute(sql, params)
            if commit:
                conn.commit()
            return cursor.rowcount

    def _fetch(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._connection() as conn:
            return conn.execute(sql, params).fetchall()

    def save(self, record: ShadowGraphRecord) -> None:
        """Insert or replace a record."""
        data = record_to_dict(record)
        self._execute(
            """
            INSERT OR REPLACE INTO records (project_id, shadow_id, status, created_at, expires_at, body)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.project_id,
                record.shadow_id,
                record.status.value,
                data["created_at"],
                data["expires_at"],
                json.dumps(data),
            ),
            commit=True,
        )

    def get(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get a record, or None."""
        rows = self._fetch(
            "SELECT body FROM records WHERE project_id = ? AND shadow_id = ?",
            (project_id, shadow_id),
        )
        return self._row_to_record(rows[0]) if rows else None

    def find_active(self, project_id: str, shadow_id: str) -> ShadowGraphRecord | None:
        """Get the record only while PENDING or ANALYZING."""
        rows = self._fetch(
            """
            SELECT body FROM records
            WHERE project_id = ? AND shadow_id = ? AND status IN ('PENDING', 'ANALYZING')
            """,
            (project_id, shadow_id),
        )
        return self._row_to_record(rows[0]) if rows else None

    def list_by_project(self, project_id: str) -> list[ShadowGraphRecord]:
        """All records of a project, newest first."""
        rows = self._fetch(
            "SELECT body FROM records WHERE project_id = ? ORDER BY created_at DESC, shadow_id DESC",
            (project_id,),
        )
        return [self._row_to_record(row) for row in rows]

    def find_expired(self, now: datetime) -> list[ShadowGraphRecord]:
        """Records whose expiry lies strictly before now."""
        rows = self._fetch(
            "SELECT body FROM records WHERE expires_at IS NOT NULL AND expires_at < ?",
            (now.isoformat(),),
        )
        return [self._row_to_record(row) for row in rows]

    def delete(self, project_id: str, shadow_id: str) -> bool:
        """Delete a record."""
        deleted = self._execute(
            "DELETE FROM records WHERE project_id = ? AND shadow_id = ?",
            (project_id, shadow_id),
            commit=True,
        )
        return deleted > 0

    def _row_to_record(self, row: sqlite3.Row) -> ShadowGraphRecord:
        """Convert database row to ShadowGraphRecord."""
        try:
            return record_from_dict(json.loads(row["body"]))
        except (ValueError, KeyError) as e:
            raise StorageError("load", f"corrupt record: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteDocumentStore":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Context manager exit - close connection."""
        self.close()
