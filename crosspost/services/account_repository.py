"""SQLite-backed storage for linked social accounts."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from crosspost.models.oauth import (
    AccountFields,
    AccountStatus,
    LinkedAccount,
    TokenRecord,
    utcnow,
)
from crosspost.services.token_cipher import TokenCipherService


def _ensure_directory(db_path: Path) -> None:
    if db_path.parent and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)


class AccountRepository:
    """Persist linked accounts with their tokens encrypted at rest.

    Accounts are unique per ``(platform, user_id, provider_user_id)``: linking
    the same provider identity twice refreshes the existing row. Revoking an
    account keeps the row for history but clears its tokens.
    """

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        _ensure_directory(self._db_path)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS linked_accounts (
                    id TEXT PRIMARY KEY,
                    platform TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    provider_user_id TEXT NOT NULL,
                    display_name TEXT,
                    access_token TEXT,
                    refresh_token TEXT,
                    access_token_fingerprint TEXT,
                    expires_at TEXT,
                    scope TEXT,
                    profile TEXT,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (platform, user_id, provider_user_id)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_linked_accounts_fingerprint
                ON linked_accounts (platform, access_token_fingerprint)
                """
            )

    def _row_to_account(self, row: sqlite3.Row) -> LinkedAccount:
        return LinkedAccount(
            id=row["id"],
            platform=row["platform"],
            user_id=row["user_id"],
            provider_user_id=row["provider_user_id"],
            display_name=row["display_name"],
            access_token=self._cipher.decrypt(row["access_token"]),
            refresh_token=self._cipher.decrypt(row["refresh_token"]),
            expires_at=datetime.fromisoformat(row["expires_at"])
            if row["expires_at"]
            else None,
            scope=json.loads(row["scope"] or "[]"),
            profile=json.loads(row["profile"] or "{}"),
            status=AccountStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _fingerprint(self, token: Optional[str]) -> Optional[str]:
        return self._cipher.fingerprint(token) if token else None

    # Blocking implementations, run in worker threads by the async API below.

    def _save(
        self,
        platform: str,
        user_id: str,
        tokens: TokenRecord,
        fields: AccountFields,
        expires_at: datetime,
    ) -> LinkedAccount:
        now = utcnow().isoformat()
        values: dict[str, Any] = {
            "display_name": fields.display_name,
            "access_token": self._cipher.encrypt(tokens.access_token),
            "refresh_token": self._cipher.encrypt(tokens.refresh_token),
            "access_token_fingerprint": self._fingerprint(tokens.access_token),
            "expires_at": expires_at.isoformat(),
            "scope": json.dumps(tokens.scope),
            "profile": json.dumps(fields.profile, default=str),
        }
        with self._connect() as conn:
            existing = conn.execute(
                """
                SELECT id FROM linked_accounts
                WHERE platform = ? AND user_id = ? AND provider_user_id = ?
                """,
                (platform, user_id, fields.provider_user_id),
            ).fetchone()
            if existing:
                account_id = existing["id"]
                conn.execute(
                    """
                    UPDATE linked_accounts SET
                        display_name = :display_name,
                        access_token = :access_token,
                        refresh_token = :refresh_token,
                        access_token_fingerprint = :access_token_fingerprint,
                        expires_at = :expires_at,
                        scope = :scope,
                        profile = :profile,
                        status = :status,
                        updated_at = :updated_at
                    WHERE id = :id
                    """,
                    {
                        **values,
                        "status": AccountStatus.ACTIVE.value,
                        "updated_at": now,
                        "id": account_id,
                    },
                )
            else:
                account_id = uuid.uuid4().hex
                conn.execute(
                    """
                    INSERT INTO linked_accounts (
                        id, platform, user_id, provider_user_id, display_name,
                        access_token, refresh_token, access_token_fingerprint,
                        expires_at, scope, profile, status, created_at, updated_at
                    ) VALUES (
                        :id, :platform, :user_id, :provider_user_id, :display_name,
                        :access_token, :refresh_token, :access_token_fingerprint,
                        :expires_at, :scope, :profile, :status, :created_at, :updated_at
                    )
                    """,
                    {
                        **values,
                        "id": account_id,
                        "platform": platform,
                        "user_id": user_id,
                        "provider_user_id": fields.provider_user_id,
                        "status": AccountStatus.ACTIVE.value,
                        "created_at": now,
                        "updated_at": now,
                    },
                )
            row = conn.execute(
                "SELECT * FROM linked_accounts WHERE id = ?", (account_id,)
            ).fetchone()
        return self._row_to_account(row)

    def _get(self, platform: str, account_id: str) -> Optional[LinkedAccount]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM linked_accounts WHERE id = ? AND platform = ?",
                (account_id, platform),
            ).fetchone()
        return self._row_to_account(row) if row else None

    def _update_tokens(
        self,
        account_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE linked_accounts SET
                    access_token = ?,
                    refresh_token = ?,
                    access_token_fingerprint = ?,
                    expires_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    self._cipher.encrypt(access_token),
                    self._cipher.encrypt(refresh_token),
                    self._fingerprint(access_token),
                    expires_at.isoformat(),
                    utcnow().isoformat(),
                    account_id,
                ),
            )

    def _find_by_access_token(
        self, platform: str, access_token: str
    ) -> Optional[LinkedAccount]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM linked_accounts
                WHERE platform = ? AND access_token_fingerprint = ?
                """,
                (platform, self._fingerprint(access_token)),
            ).fetchone()
        return self._row_to_account(row) if row else None

    def _mark_revoked(self, account_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE linked_accounts SET
                    status = ?,
                    access_token = NULL,
                    refresh_token = NULL,
                    access_token_fingerprint = NULL,
                    updated_at = ?
                WHERE id = ?
                """,
                (AccountStatus.REVOKED.value, utcnow().isoformat(), account_id),
            )

    def _list_for_user(self, user_id: str, active_only: bool) -> List[LinkedAccount]:
        query = "SELECT * FROM linked_accounts WHERE user_id = ?"
        params: list[Any] = [user_id]
        if active_only:
            query += " AND status = ?"
            params.append(AccountStatus.ACTIVE.value)
        query += " ORDER BY platform, created_at"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_account(row) for row in rows]

    async def save_linked_account(
        self,
        *,
        platform: str,
        user_id: str,
        tokens: TokenRecord,
        fields: AccountFields,
        expires_at: datetime,
    ) -> LinkedAccount:
        return await asyncio.to_thread(
            self._save, platform, user_id, tokens, fields, expires_at
        )

    async def get(self, platform: str, account_id: str) -> Optional[LinkedAccount]:
        return await asyncio.to_thread(self._get, platform, account_id)

    async def update_tokens(
        self,
        account_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
    ) -> None:
        await asyncio.to_thread(
            self._update_tokens, account_id, access_token, refresh_token, expires_at
        )

    async def find_by_access_token(
        self, platform: str, access_token: str
    ) -> Optional[LinkedAccount]:
        return await asyncio.to_thread(
            self._find_by_access_token, platform, access_token
        )

    async def mark_revoked(self, account_id: str) -> None:
        await asyncio.to_thread(self._mark_revoked, account_id)

    async def list_for_user(
        self, user_id: str, *, active_only: bool = True
    ) -> List[LinkedAccount]:
        return await asyncio.to_thread(self._list_for_user, user_id, active_only)


__all__ = ["AccountRepository"]
