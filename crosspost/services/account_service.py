"""Read and manage the social accounts a user has connected."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List

from crosspost.clients.platforms import PlatformRegistry
from crosspost.core.errors import NotFoundError
from crosspost.schemas import ConnectedAccount, ConnectedPlatform
from crosspost.services.account_repository import AccountRepository
from crosspost.services.auth_orchestrator import AuthOrchestrator

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(
        self,
        *,
        registry: PlatformRegistry,
        accounts: AccountRepository,
        auth: AuthOrchestrator,
    ) -> None:
        self._registry = registry
        self._accounts = accounts
        self._auth = auth

    async def get_connected_platforms(self, user_id: str) -> List[ConnectedPlatform]:
        grouped: Dict[str, List[ConnectedAccount]] = defaultdict(list)
        for account in await self._accounts.list_for_user(user_id):
            grouped[account.platform].append(
                ConnectedAccount(
                    id=account.id,
                    name=account.display_name,
                    provider_user_id=account.provider_user_id,
                )
            )
        return [
            ConnectedPlatform(platform=platform, accounts=accounts)
            for platform, accounts in sorted(grouped.items())
        ]

    async def disconnect(self, user_id: str, platform: str, account_id: str) -> None:
        """Revoke the account's token and mark it revoked.

        The account is revoked locally even if the provider rejects the
        revocation; the provider error is still raised to the caller.
        """
        client = self._registry.require(platform)
        account = await self._accounts.get(client.name, account_id)
        if account is None or account.user_id != user_id:
            raise NotFoundError(f"No {client.name} account {account_id}")

        try:
            if account.access_token:
                await self._auth.revoke_token(client.name, account.access_token)
        finally:
            await self._accounts.mark_revoked(account.id)
            logger.info("Disconnected %s account %s", client.name, account.id)

    async def get_post_metrics(
        self, user_id: str, platform: str, account_id: str, post_id: str
    ) -> Dict[str, Any]:
        client = self._registry.require(platform)
        account, access_token = await self._auth.get_valid_access_token(
            client.name, account_id, user_id
        )
        return await client.get_post_metrics(account, access_token, post_id)

    async def get_account_metrics(
        self, user_id: str, platform: str, account_id: str
    ) -> Dict[str, Any]:
        client = self._registry.require(platform)
        account, access_token = await self._auth.get_valid_access_token(
            client.name, account_id, user_id
        )
        return await client.get_account_metrics(account, access_token)


__all__ = ["AccountService"]
