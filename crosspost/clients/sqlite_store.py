"""SQLite-backed key/value records with optional expiry."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Optional


class SQLiteStore:
    """Key/value store keyed by (pk, sk), used as the durable side of caches."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_records (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    expires_at REAL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put_item(
        self,
        *,
        partition_key: str,
        sort_key: str,
        item: Dict[str, Any],
        ttl_seconds: Optional[int] = None,
    ) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        data_json = json.dumps(item, default=str)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (pk, sk, data, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET
                    data = excluded.data,
                    expires_at = excluded.expires_at
                """,
                (partition_key, sort_key, data_json, expires_at),
            )

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data, expires_at FROM kv_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchone()
            if not row:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= time.time():
                conn.execute(
                    "DELETE FROM kv_records WHERE pk = ? AND sk = ?",
                    (partition_key, sort_key),
                )
                return None
        return json.loads(row["data"])

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool:
        """Delete a record, returning whether this call removed it."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM kv_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            )
        return cursor.rowcount > 0

    def purge_expired(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM kv_records WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (time.time(),),
            )
        return cursor.rowcount


__all__ = ["SQLiteStore"]
