"""Facebook Pages client built on the Graph API."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping

from crosspost.clients.platforms.base import PlatformClient
from crosspost.core.errors import PlatformError
from crosspost.models.oauth import AccountFields, LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, MediaType, PostResult

logger = logging.getLogger(__name__)

SIXTY_DAYS = 60 * 24 * 60 * 60


def _latest_insight_values(payload: Mapping[str, Any]) -> Dict[str, Any]:
    metrics: Dict[str, Any] = {}
    for entry in payload.get("data", []):
        values = entry.get("values") or []
        if values:
            metrics[entry.get("name")] = values[-1].get("value")
    return metrics


class FacebookClient(PlatformClient):
    """Publishes to a Facebook Page the linked user manages.

    Facebook has no separate refresh token: a long-lived user token is
    re-exchanged through ``fb_exchange_token`` to extend it. Posts are made
    with the page token, fetched on demand so page tokens never sit in
    storage.
    """

    name = "facebook"
    display_name = "Facebook"
    exchange_method = "GET"
    refresh_reuses_access_token = True
    default_expires_in = SIXTY_DAYS

    def _api(self, path: str) -> str:
        return f"{self.settings.api_base_url}/{path.lstrip('/')}"

    async def refresh(self, refresh_token: str) -> TokenRecord:
        payload = await self._request_json(
            "GET",
            self.settings.token_url,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "fb_exchange_token": refresh_token,
            },
        )
        return self.normalize_token(payload)

    async def revoke(self, token: str) -> None:
        await self._request_json(
            "DELETE", self.settings.revoke_url, params={"access_token": token}
        )

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        profile = await self._request_json(
            "GET",
            self._api("me"),
            params={"fields": "id,name,email", "access_token": access_token},
            retry=True,
        )
        pages = await self._request_json(
            "GET",
            self._api("me/accounts"),
            params={"fields": "id,name,category", "access_token": access_token},
            retry=True,
        )
        profile["pages"] = pages.get("data", [])
        return profile

    def build_account_fields(
        self, tokens: TokenRecord, profile: Mapping[str, Any]
    ) -> AccountFields:
        provider_user_id = profile.get("id") or tokens.provider_user_id
        if not provider_user_id:
            raise PlatformError(self.name, "Profile response did not include an id")
        return AccountFields(
            provider_user_id=str(provider_user_id),
            display_name=profile.get("name"),
            profile={
                "email": profile.get("email"),
                "pages": [
                    {"id": page.get("id"), "name": page.get("name")}
                    for page in profile.get("pages", [])
                ],
            },
        )

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def _page_id(self, account: LinkedAccount, params: Mapping[str, Any]) -> str:
        page_id = params.get("page_id") or params.get("pageId")
        if page_id:
            return str(page_id)
        pages = account.profile.get("pages") or []
        if not pages:
            raise PlatformError(self.name, "No Facebook page is linked to this account")
        return str(pages[0]["id"])

    async def _page_token(self, page_id: str, access_token: str) -> str:
        payload = await self._request_json(
            "GET",
            self._api(page_id),
            params={"fields": "access_token", "access_token": access_token},
            retry=True,
        )
        page_token = payload.get("access_token")
        if not page_token:
            raise PlatformError(self.name, "Page access token is unavailable")
        return page_token

    async def post(
        self,
        account: LinkedAccount,
        access_token: str,
        content: str,
        media: List[MediaDescriptor],
        params: Mapping[str, Any],
    ) -> PostResult:
        page_id = self._page_id(account, params)
        page_token = await self._page_token(page_id, access_token)

        images = [item for item in media if item.media_type == MediaType.IMAGE]
        videos = [item for item in media if item.media_type == MediaType.VIDEO]

        if videos:
            payload = await self._request_json(
                "POST",
                self._api(f"{page_id}/videos"),
                data={
                    "file_url": videos[0].url,
                    "description": content,
                    "access_token": page_token,
                },
            )
        elif len(images) == 1:
            payload = await self._request_json(
                "POST",
                self._api(f"{page_id}/photos"),
                data={
                    "url": images[0].url,
                    "caption": content,
                    "access_token": page_token,
                },
            )
        else:
            data: Dict[str, Any] = {"message": content, "access_token": page_token}
            if params.get("link"):
                data["link"] = params["link"]
            if images:
                attached = [
                    {"media_fbid": await self._upload_unpublished_photo(page_id, page_token, item)}
                    for item in images
                ]
                data["attached_media"] = json.dumps(attached)
            payload = await self._request_json(
                "POST", self._api(f"{page_id}/feed"), data=data
            )

        post_id = payload.get("post_id") or payload.get("id")
        if not post_id:
            raise PlatformError(self.name, "Publish response did not include a post id")
        logger.info("Published Facebook post %s to page %s", post_id, page_id)
        return PostResult(
            platform_post_id=str(post_id),
            url=f"https://www.facebook.com/{post_id}",
        )

    async def _upload_unpublished_photo(
        self, page_id: str, page_token: str, item: MediaDescriptor
    ) -> str:
        payload = await self._request_json(
            "POST",
            self._api(f"{page_id}/photos"),
            data={"url": item.url, "published": "false", "access_token": page_token},
        )
        return str(payload["id"])

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def get_post_metrics(
        self, account: LinkedAccount, access_token: str, post_id: str
    ) -> Dict[str, Any]:
        page_id = post_id.split("_", 1)[0] if "_" in post_id else self._page_id(account, {})
        page_token = await self._page_token(page_id, access_token)
        payload = await self._request_json(
            "GET",
            self._api(f"{post_id}/insights"),
            params={
                "metric": "post_impressions,post_impressions_unique,"
                "post_reactions_by_type_total,post_clicks",
                "access_token": page_token,
            },
            retry=True,
        )
        return _latest_insight_values(payload)

    async def get_account_metrics(
        self, account: LinkedAccount, access_token: str
    ) -> Dict[str, Any]:
        page_id = self._page_id(account, {})
        page_token = await self._page_token(page_id, access_token)
        payload = await self._request_json(
            "GET",
            self._api(f"{page_id}/insights"),
            params={
                "metric": "page_impressions,page_post_engagements,page_fans",
                "period": "day",
                "access_token": page_token,
            },
            retry=True,
        )
        return _latest_insight_values(payload)


__all__ = ["FacebookClient"]
