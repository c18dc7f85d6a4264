"""
OAuth token lifecycle across every supported platform.

The orchestrator owns the authorization-code flow (state issue, callback,
code exchange, profile fetch, account upsert) and the lifecycle operations
that follow it: refresh, revoke and "give me a usable token" for publishing.
Provider differences live in the platform clients; nothing here branches on
a platform name.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from typing import Optional, Tuple

from crosspost.clients.platforms import PlatformClient, PlatformRegistry
from crosspost.core.errors import (
    AuthenticationError,
    NotFoundError,
    PlatformError,
    RateLimitError,
)
from crosspost.models.oauth import AuthFlowState, LinkedAccount, TokenRecord, utcnow
from crosspost.services.account_repository import AccountRepository
from crosspost.services.state_store import OAuthStateStore
from crosspost.services.token_cache import TokenCacheService

logger = logging.getLogger(__name__)

_PASSTHROUGH = (PlatformError, RateLimitError)


_FAILURE_STATES = frozenset(
    {
        AuthFlowState.STATE_INVALID,
        AuthFlowState.EXCHANGE_FAILED,
        AuthFlowState.PROFILE_FETCH_FAILED,
    }
)


def _log_flow(state: AuthFlowState, platform: str, **context: object) -> None:
    details = " ".join(f"{key}={value}" for key, value in context.items())
    level = logging.WARNING if state in _FAILURE_STATES else logging.INFO
    logger.log(level, "OAuth flow %s platform=%s %s", state.value, platform, details)


class AuthOrchestrator:
    """Coordinates state, token cache, platform clients and account storage."""

    def __init__(
        self,
        *,
        registry: PlatformRegistry,
        state_store: OAuthStateStore,
        token_cache: TokenCacheService,
        accounts: AccountRepository,
        refresh_window_seconds: int = 300,
    ) -> None:
        self._registry = registry
        self._states = state_store
        self._cache = token_cache
        self._accounts = accounts
        self._refresh_window = timedelta(seconds=refresh_window_seconds)
        self._refresh_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def supported_platforms(self) -> list[str]:
        return self._registry.names()

    @staticmethod
    def _expires_at(client: PlatformClient, tokens: TokenRecord) -> datetime:
        return utcnow() + timedelta(seconds=tokens.expires_in or client.default_expires_in)

    async def get_authorization_url(self, platform: str, user_id: str) -> str:
        """Issue a state token for ``user_id`` and return the consent URL."""
        client = self._registry.require(platform)
        state = await self._states.create(client.name, user_id)
        try:
            url = client.build_authorization_url(state)
        except Exception as exc:
            raise PlatformError(
                client.name, "Failed to generate authorization URL", exc
            ) from exc
        _log_flow(AuthFlowState.INITIATED, client.name, user=user_id)
        return url

    async def handle_callback(self, platform: str, code: str, state: str) -> TokenRecord:
        """Complete the authorization-code flow and link the account.

        The state is consumed before anything else, so a replayed or forged
        callback never reaches the provider.
        """
        client = self._registry.require(platform)
        oauth_state = await self._states.consume(state)
        if oauth_state is None or oauth_state.platform != client.name:
            _log_flow(AuthFlowState.STATE_INVALID, client.name)
            raise AuthenticationError("Invalid or expired OAuth state")
        _log_flow(AuthFlowState.CALLBACK_RECEIVED, client.name, user=oauth_state.user_id)

        try:
            cache_key = self._cache.key("access", client.name, code)
            tokens = await self._cache.get(cache_key)
            if tokens is None:
                try:
                    tokens = await client.exchange_code(code)
                except Exception:
                    _log_flow(AuthFlowState.EXCHANGE_FAILED, client.name, user=oauth_state.user_id)
                    raise
                await self._cache.set(cache_key, tokens)
            _log_flow(AuthFlowState.TOKEN_EXCHANGED, client.name, user=oauth_state.user_id)

            try:
                profile = await client.fetch_user_info(tokens.access_token)
                fields = client.build_account_fields(tokens, profile)
            except Exception:
                _log_flow(
                    AuthFlowState.PROFILE_FETCH_FAILED, client.name, user=oauth_state.user_id
                )
                raise

            account = await self._accounts.save_linked_account(
                platform=client.name,
                user_id=oauth_state.user_id,
                tokens=tokens,
                fields=fields,
                expires_at=self._expires_at(client, tokens),
            )
        except _PASSTHROUGH:
            raise
        except Exception as exc:
            raise PlatformError(client.name, "Failed to complete authorization", exc) from exc

        _log_flow(
            AuthFlowState.ACCOUNT_LINKED,
            client.name,
            user=oauth_state.user_id,
            account=account.id,
        )
        return tokens

    def _refresh_lock(self, platform: str, account_id: str) -> asyncio.Lock:
        # Entries vanish once no refresh holds or awaits the lock.
        key = (platform, account_id)
        lock = self._refresh_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[key] = lock
        return lock

    async def refresh_token(
        self, platform: str, account_id: str, user_id: str
    ) -> TokenRecord:
        """Refresh the tokens of an account owned by ``user_id``.

        The provider is called at most once per submitted token. Calls for
        the same account are serialized; a caller that waited on the lock
        finds the previous caller's result in the cache under the token it
        was about to submit, writes it to the account and returns it.
        """
        client = self._registry.require(platform)
        account = await self._accounts.get(client.name, account_id)
        if account is None or account.user_id != user_id:
            raise NotFoundError(f"No {client.name} account {account_id}")

        submitted = account.refresh_token
        if not submitted and client.refresh_reuses_access_token:
            submitted = account.access_token
        if not submitted:
            raise AuthenticationError(
                f"No refresh token stored for {client.name} account {account_id}"
            )

        lock = self._refresh_lock(client.name, account_id)
        async with lock:
            cache_key = self._cache.key("refresh", client.name, submitted)
            cached = await self._cache.get(cache_key)
            if cached is not None:
                if not cached.refresh_token:
                    cached = cached.model_copy(update={"refresh_token": submitted})
                await self._accounts.update_tokens(
                    account.id,
                    access_token=cached.access_token,
                    refresh_token=cached.refresh_token,
                    expires_at=self._expires_at(client, cached),
                )
                logger.info(
                    "Reusing refreshed tokens for %s account %s", client.name, account_id
                )
                return cached

            try:
                tokens = await client.refresh(submitted)
            except _PASSTHROUGH:
                raise
            except Exception as exc:
                raise PlatformError(client.name, "Failed to refresh token", exc) from exc

            if not tokens.refresh_token:
                tokens = tokens.model_copy(update={"refresh_token": submitted})

            await self._accounts.update_tokens(
                account.id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=self._expires_at(client, tokens),
            )
            await self._cache.set(cache_key, tokens)

        logger.info("Refreshed tokens for %s account %s", client.name, account_id)
        return tokens

    async def revoke_token(self, platform: str, token: str) -> None:
        """Revoke ``token`` at the provider and forget it locally.

        Local cleanup happens even when the provider call fails; the provider
        failure is raised afterwards.
        """
        client = self._registry.require(platform)
        failure: Optional[Exception] = None
        try:
            await client.revoke(token)
        except Exception as exc:
            failure = exc
            logger.warning("Provider revoke failed for %s: %s", client.name, exc)

        await self._cache.delete(self._cache.key("access", client.name, token))
        await self._cache.delete(self._cache.key("refresh", client.name, token))
        account = await self._accounts.find_by_access_token(client.name, token)
        if account is not None:
            await self._accounts.mark_revoked(account.id)
            logger.info("Marked %s account %s as revoked", client.name, account.id)

        if isinstance(failure, PlatformError):
            raise failure
        if failure is not None:
            raise PlatformError(client.name, "Failed to revoke token", failure) from failure

    async def get_valid_access_token(
        self, platform: str, account_id: str, user_id: str
    ) -> Tuple[LinkedAccount, str]:
        """Return the user's account and an access token safe to use now."""
        client = self._registry.require(platform)
        account = await self._accounts.get(client.name, account_id)
        if account is None or account.user_id != user_id:
            raise NotFoundError(f"No {client.name} account {account_id}")
        if not account.is_active or not account.access_token:
            raise AuthenticationError(
                f"{client.display_name} account {account_id} must be reconnected"
            )

        if account.expires_at and account.expires_at <= utcnow() + self._refresh_window:
            tokens = await self.refresh_token(client.name, account_id, user_id)
            return account, tokens.access_token
        return account, account.access_token


__all__ = ["AuthOrchestrator"]
