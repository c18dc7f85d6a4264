"""
Base platform client.

Every social network is reached through a :class:`PlatformClient` subclass.
Providers disagree on how the code exchange is encoded, how scopes are
delimited, whether a distinct refresh token exists and how many media items a
post needs; those differences are declared as class attributes here and
overridden per provider, so orchestration code never branches on a platform
name.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlencode

import httpx

from crosspost.core.config import PlatformOAuthSettings
from crosspost.core.errors import PlatformError, RateLimitError
from crosspost.models.oauth import AccountFields, LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, PostResult
from crosspost.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)

_SCOPE_SPLIT = re.compile(r"[,\s]+")


class PlatformClient(ABC):
    """OAuth and publishing operations for one social platform."""

    name: str = "base"
    display_name: str = "Base"

    # OAuth quirks
    scope_delimiter: str = ","
    exchange_method: str = "POST"
    client_id_param: str = "client_id"
    refresh_reuses_access_token: bool = False
    default_expires_in: int = 3600

    # Publishing policy
    min_media_items: int = 0
    max_media_items: int = 10
    accepted_mime_types: tuple[str, ...] = ()

    def __init__(
        self,
        settings: PlatformOAuthSettings,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self.settings = settings
        self._timeout = timeout
        self._transport = transport
        self._retry = retry_config or RetryConfig()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def authorization_params(self, state: str, scopes: Sequence[str]) -> Dict[str, str]:
        return {
            self.client_id_param: self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "scope": self.scope_delimiter.join(scopes),
            "state": state,
        }

    def build_authorization_url(
        self, state: str, scopes: Optional[Sequence[str]] = None
    ) -> str:
        """Construct the provider consent URL carrying ``state``."""
        if not self.settings.is_configured:
            raise ValueError(
                f"{self.display_name} OAuth client is not configured "
                "(client id, secret and redirect URI are required)."
            )
        params = self.authorization_params(state, scopes or self.settings.scopes)
        return f"{self.settings.authorize_url}?{urlencode(params)}"

    def exchange_params(self, code: str) -> Dict[str, str]:
        return {
            self.client_id_param: self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.redirect_uri,
        }

    async def exchange_code(self, code: str) -> TokenRecord:
        """Exchange an authorization code for a normalized token record."""
        params = self.exchange_params(code)
        if self.exchange_method == "GET":
            payload = await self._request_json(
                "GET", self.settings.token_url, params=params
            )
        else:
            payload = await self._request_json(
                "POST", self.settings.token_url, data=params
            )
        return self.normalize_token(payload)

    def refresh_params(self, refresh_token: str) -> Dict[str, str]:
        return {
            self.client_id_param: self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }

    async def refresh(self, refresh_token: str) -> TokenRecord:
        payload = await self._request_json(
            "POST", self.settings.token_url, data=self.refresh_params(refresh_token)
        )
        return self.normalize_token(payload)

    async def revoke(self, token: str) -> None:
        await self._request_json(
            "POST",
            self.settings.revoke_url,
            data={
                self.client_id_param: self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "token": token,
            },
        )

    @abstractmethod
    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        """Return the raw profile of the token's owner."""

    @abstractmethod
    def build_account_fields(
        self, tokens: TokenRecord, profile: Mapping[str, Any]
    ) -> AccountFields:
        """Map a provider profile onto the fields stored with a linked account."""

    def normalize_token(self, payload: Mapping[str, Any]) -> TokenRecord:
        access_token = payload.get("access_token")
        if not access_token:
            raise PlatformError(self.name, "Token response did not include an access token")
        refresh_token = payload.get("refresh_token")
        if not refresh_token and self.refresh_reuses_access_token:
            refresh_token = access_token
        expires_in = payload.get("expires_in")
        scope = payload.get("scope") or ""
        if isinstance(scope, str):
            scopes = [item for item in _SCOPE_SPLIT.split(scope) if item]
        else:
            scopes = list(scope)
        provider_user_id = payload.get("user_id")
        return TokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(expires_in) if expires_in else None,
            token_type=payload.get("token_type"),
            scope=scopes,
            provider_user_id=str(provider_user_id) if provider_user_id else None,
            open_id=payload.get("open_id"),
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def check_media_policy(self, media: Sequence[MediaDescriptor]) -> Optional[str]:
        """Return a reason the media list cannot be posted here, or None."""
        if len(media) < self.min_media_items:
            noun = "item" if self.min_media_items == 1 else "items"
            return (
                f"{self.display_name} requires at least {self.min_media_items} "
                f"media {noun}"
            )
        if self.accepted_mime_types and media:
            if not any(item.mime_type in self.accepted_mime_types for item in media):
                found = ", ".join(sorted({item.mime_type for item in media}))
                return (
                    f"{self.display_name} media must be one of "
                    f"{', '.join(self.accepted_mime_types)}; found {found}"
                )
        return None

    @abstractmethod
    async def post(
        self,
        account: LinkedAccount,
        access_token: str,
        content: str,
        media: List[MediaDescriptor],
        params: Mapping[str, Any],
    ) -> PostResult:
        """Publish ``content`` with ``media`` to ``account``."""

    async def get_post_metrics(
        self, account: LinkedAccount, access_token: str, post_id: str
    ) -> Dict[str, Any]:
        raise PlatformError(self.name, "Post metrics are not supported")

    async def get_account_metrics(
        self, account: LinkedAccount, access_token: str
    ) -> Dict[str, Any]:
        raise PlatformError(self.name, "Account metrics are not supported")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _request(
        self, method: str, url: str, *, retry: bool = False, **kwargs: Any
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                if retry:
                    response = await request_with_retry(
                        client.request, method, url, retry_config=self._retry, **kwargs
                    )
                else:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise PlatformError(self.name, "Provider request timed out", exc) from exc
        except httpx.HTTPError as exc:
            raise PlatformError(self.name, "Provider request failed", exc) from exc
        self._raise_for_status(response)
        return response

    async def _request_json(
        self, method: str, url: str, *, retry: bool = False, **kwargs: Any
    ) -> Dict[str, Any]:
        response = await self._request(method, url, retry=retry, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise PlatformError(self.name, "Provider returned invalid JSON", exc) from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        # Only the path is reported; some providers take tokens as query params.
        path = response.request.url.path
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"{self.display_name} rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 400:
            logger.warning(
                "%s call to %s failed with HTTP %s: %s",
                self.name,
                path,
                response.status_code,
                response.text[:500],
            )
            raise PlatformError(
                self.name,
                f"{response.request.method} {path} failed with HTTP {response.status_code}",
            )

    @staticmethod
    def _bearer(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"


__all__ = ["PlatformClient"]
