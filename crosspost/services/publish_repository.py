"""SQLite-backed audit trail of publish records."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple

from crosspost.models.oauth import utcnow
from crosspost.models.publish import PublishRecord, PublishStatus, as_utc


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so lexical order matches time order.
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="microseconds")


def _next_retry_at(record: PublishRecord) -> Optional[str]:
    pending = [
        result.next_retry_at
        for result in record.results
        if result.retry_scheduled and result.next_retry_at is not None
    ]
    return _timestamp(min(pending)) if pending else None


class PublishRepository:
    """Store publish records as JSON documents indexed by owner and status.

    Records are never deleted. Reads are always scoped to the owning user so
    a record belonging to someone else is indistinguishable from a missing one.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS publish_records (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    next_retry_at TEXT
                )
                """
            )
            columns = {
                row["name"] for row in conn.execute("PRAGMA table_info(publish_records)")
            }
            if "next_retry_at" not in columns:
                conn.execute("ALTER TABLE publish_records ADD COLUMN next_retry_at TEXT")
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_publish_records_user
                ON publish_records (user_id, created_at)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_publish_records_retry
                ON publish_records (next_retry_at)
                """
            )

    def _insert(self, record: PublishRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO publish_records
                    (id, user_id, status, data, created_at, updated_at, next_retry_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.status.value,
                    record.model_dump_json(),
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                    _next_retry_at(record),
                ),
            )

    def _update(self, record: PublishRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE publish_records
                SET status = ?, data = ?, updated_at = ?, next_retry_at = ?
                WHERE id = ?
                """,
                (
                    record.status.value,
                    record.model_dump_json(),
                    record.updated_at.isoformat(),
                    _next_retry_at(record),
                    record.id,
                ),
            )

    def _get(self, publish_id: str, user_id: str) -> Optional[PublishRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM publish_records WHERE id = ? AND user_id = ?",
                (publish_id, user_id),
            ).fetchone()
        if not row:
            return None
        return PublishRecord.model_validate_json(row["data"])

    def _list(
        self,
        user_id: str,
        offset: int,
        limit: int,
        status: Optional[PublishStatus],
    ) -> Tuple[List[PublishRecord], int]:
        where = "WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status is not None:
            where += " AND status = ?"
            params.append(status.value)
        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM publish_records {where}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT data FROM publish_records {where}
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [PublishRecord.model_validate_json(row["data"]) for row in rows], total

    def _list_due_retries(self, now: datetime, limit: int) -> List[PublishRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT data FROM publish_records
                WHERE next_retry_at IS NOT NULL AND next_retry_at <= ?
                ORDER BY next_retry_at ASC
                LIMIT ?
                """,
                (_timestamp(now), limit),
            ).fetchall()
        return [PublishRecord.model_validate_json(row["data"]) for row in rows]

    async def create(self, record: PublishRecord) -> PublishRecord:
        await asyncio.to_thread(self._insert, record)
        return record

    async def save(self, record: PublishRecord) -> PublishRecord:
        record.updated_at = utcnow()
        await asyncio.to_thread(self._update, record)
        return record

    async def get(self, publish_id: str, user_id: str) -> Optional[PublishRecord]:
        return await asyncio.to_thread(self._get, publish_id, user_id)

    async def list_for_user(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        status: Optional[PublishStatus] = None,
    ) -> Tuple[List[PublishRecord], int]:
        offset = max(page - 1, 0) * limit
        return await asyncio.to_thread(self._list, user_id, offset, limit, status)

    async def list_due_retries(
        self, now: datetime, *, limit: int = 50
    ) -> List[PublishRecord]:
        """Records with at least one target whose retry is due, across all users."""
        return await asyncio.to_thread(self._list_due_retries, now, limit)


__all__ = ["PublishRepository"]
