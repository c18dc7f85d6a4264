"""SQLite-backed store of posts waiting to be published."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from crosspost.models.oauth import utcnow
from crosspost.models.publish import ScheduledPost, ScheduleStatus, as_utc


def _timestamp(value: datetime) -> str:
    # Fixed width so lexical order matches time order.
    return as_utc(value).isoformat(timespec="microseconds")


class ScheduledPostRepository:
    """Store scheduled posts as JSON documents indexed by owner, status and time.

    The platform list is also kept as a JSON array of platform names so the
    list endpoint can filter on it without decoding every document.
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
                CREATE TABLE IF NOT EXISTS scheduled_posts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    scheduled_time TEXT NOT NULL,
                    platforms TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_scheduled_posts_due
                ON scheduled_posts (status, scheduled_time)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_scheduled_posts_user
                ON scheduled_posts (user_id, scheduled_time)
                """
            )

    @staticmethod
    def _columns(post: ScheduledPost) -> dict[str, Any]:
        return {
            "id": post.id,
            "user_id": post.user_id,
            "status": post.status.value,
            "scheduled_time": _timestamp(post.scheduled_time),
            "platforms": json.dumps(
                sorted({target.platform.lower() for target in post.platforms})
            ),
            "data": post.model_dump_json(),
            "created_at": post.created_at.isoformat(),
            "updated_at": post.updated_at.isoformat(),
        }

    def _insert(self, post: ScheduledPost) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO scheduled_posts (
                    id, user_id, status, scheduled_time, platforms, data,
                    created_at, updated_at
                ) VALUES (
                    :id, :user_id, :status, :scheduled_time, :platforms, :data,
                    :created_at, :updated_at
                )
                """,
                self._columns(post),
            )

    def _update(self, post: ScheduledPost, expected: Optional[ScheduleStatus]) -> bool:
        columns = self._columns(post)
        query = """
            UPDATE scheduled_posts
            SET status = :status, scheduled_time = :scheduled_time,
                platforms = :platforms, data = :data, updated_at = :updated_at
            WHERE id = :id
        """
        if expected is not None:
            query += " AND status = :expected"
            columns["expected"] = expected.value
        with self._connect() as conn:
            cursor = conn.execute(query, columns)
        return cursor.rowcount > 0

    def _get(self, post_id: str, user_id: str) -> Optional[ScheduledPost]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM scheduled_posts WHERE id = ? AND user_id = ?",
                (post_id, user_id),
            ).fetchone()
        if not row:
            return None
        return ScheduledPost.model_validate_json(row["data"])

    def _list(
        self,
        user_id: str,
        status: Optional[ScheduleStatus],
        start: Optional[datetime],
        end: Optional[datetime],
        platform: Optional[str],
    ) -> List[ScheduledPost]:
        where = "WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status is not None:
            where += " AND status = ?"
            params.append(status.value)
        if start is not None:
            where += " AND scheduled_time >= ?"
            params.append(_timestamp(start))
        if end is not None:
            where += " AND scheduled_time <= ?"
            params.append(_timestamp(end))
        if platform:
            where += " AND EXISTS (SELECT 1 FROM json_each(platforms) WHERE value = ?)"
            params.append(platform.lower())
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT data FROM scheduled_posts {where} ORDER BY scheduled_time ASC",
                params,
            ).fetchall()
        return [ScheduledPost.model_validate_json(row["data"]) for row in rows]

    def _list_due(self, now: datetime, limit: int) -> List[ScheduledPost]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT data FROM scheduled_posts
                WHERE status = ? AND scheduled_time <= ?
                ORDER BY scheduled_time ASC
                LIMIT ?
                """,
                (ScheduleStatus.PENDING.value, _timestamp(now), limit),
            ).fetchall()
        return [ScheduledPost.model_validate_json(row["data"]) for row in rows]

    async def create(self, post: ScheduledPost) -> ScheduledPost:
        await asyncio.to_thread(self._insert, post)
        return post

    async def save(
        self, post: ScheduledPost, *, expected: Optional[ScheduleStatus] = None
    ) -> bool:
        """Persist ``post``; with ``expected`` only if the stored status still matches.

        Returns whether a row was written.
        """
        post.updated_at = utcnow()
        return await asyncio.to_thread(self._update, post, expected)

    async def get(self, post_id: str, user_id: str) -> Optional[ScheduledPost]:
        return await asyncio.to_thread(self._get, post_id, user_id)

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: Optional[ScheduleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        platform: Optional[str] = None,
    ) -> List[ScheduledPost]:
        return await asyncio.to_thread(self._list, user_id, status, start, end, platform)

    async def list_due(self, now: datetime, *, limit: int = 50) -> List[ScheduledPost]:
        return await asyncio.to_thread(self._list_due, now, limit)


__all__ = ["ScheduledPostRepository"]
