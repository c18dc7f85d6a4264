try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import sqlite3
from datetime import timedelta

import pytest

from crosspost.models.oauth import AccountFields, AccountStatus, TokenRecord, utcnow
from crosspost.services.account_repository import AccountRepository


@pytest.fixture()
def repository(tmp_path, token_cipher):
    db_path = tmp_path / "accounts.db"
    return AccountRepository(str(db_path), token_cipher), db_path


async def _link(repository, *, access="access-1", refresh="refresh-1", provider_id="p-1"):
    return await repository.save_linked_account(
        platform="linkedin",
        user_id="user-1",
        tokens=TokenRecord(access_token=access, refresh_token=refresh, scope=["openid"]),
        fields=AccountFields(provider_user_id=provider_id, display_name="Ada"),
        expires_at=utcnow() + timedelta(hours=1),
    )


@pytest.mark.asyncio
async def test_tokens_are_encrypted_at_rest(repository) -> None:
    repo, db_path = repository
    account = await _link(repo)

    with sqlite3.connect(db_path) as conn:
        stored_access, stored_refresh = conn.execute(
            "SELECT access_token, refresh_token FROM linked_accounts WHERE id = ?",
            (account.id,),
        ).fetchone()

    assert stored_access != "access-1"
    assert stored_refresh != "refresh-1"

    loaded = await repo.get("linkedin", account.id)
    assert loaded is not None
    assert loaded.access_token == "access-1"
    assert loaded.refresh_token == "refresh-1"
    assert loaded.scope == ["openid"]


@pytest.mark.asyncio
async def test_relinking_same_identity_updates_existing_row(repository) -> None:
    repo, _ = repository
    first = await _link(repo)
    second = await _link(repo, access="access-2", refresh="refresh-2")

    assert first.id == second.id
    assert second.access_token == "access-2"
    assert len(await repo.list_for_user("user-1")) == 1


@pytest.mark.asyncio
async def test_find_by_access_token_and_revoke(repository) -> None:
    repo, _ = repository
    account = await _link(repo)

    found = await repo.find_by_access_token("linkedin", "access-1")
    assert found is not None and found.id == account.id
    assert await repo.find_by_access_token("facebook", "access-1") is None

    await repo.mark_revoked(account.id)
    revoked = await repo.get("linkedin", account.id)
    assert revoked.status == AccountStatus.REVOKED
    assert revoked.access_token is None
    assert await repo.find_by_access_token("linkedin", "access-1") is None
    assert await repo.list_for_user("user-1") == []
    assert len(await repo.list_for_user("user-1", active_only=False)) == 1


@pytest.mark.asyncio
async def test_update_tokens_changes_lookup_fingerprint(repository) -> None:
    repo, _ = repository
    account = await _link(repo)
    expires_at = utcnow() + timedelta(days=2)

    await repo.update_tokens(
        account.id, access_token="access-new", refresh_token="refresh-new", expires_at=expires_at
    )

    assert await repo.find_by_access_token("linkedin", "access-1") is None
    updated = await repo.find_by_access_token("linkedin", "access-new")
    assert updated is not None
    assert updated.refresh_token == "refresh-new"
    assert updated.expires_at == expires_at
