"""Instagram professional account client (Instagram Graph API)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping

from crosspost.clients.platforms.facebook import FacebookClient, _latest_insight_values
from crosspost.core.errors import PlatformError
from crosspost.models.oauth import AccountFields, LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, MediaType, PostResult

logger = logging.getLogger(__name__)


class InstagramClient(FacebookClient):
    """Publishes to the Instagram business account behind a Facebook Page.

    Instagram shares Facebook's login and token extension flow. Publishing is
    a two step process: media containers are created from public URLs, then
    the (carousel) container is published. Video containers are processed
    asynchronously and are polled until ready.
    """

    name = "instagram"
    display_name = "Instagram"
    min_media_items = 1
    accepted_mime_types = ("image/jpeg", "image/png", "video/mp4")
    max_media_items = 10

    status_poll_interval: float = 2.0
    status_poll_attempts: int = 30

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        return await self._request_json(
            "GET",
            self._api("me"),
            params={
                "fields": "id,name,accounts{instagram_business_account{id,username}}",
                "access_token": access_token,
            },
            retry=True,
        )

    def build_account_fields(
        self, tokens: TokenRecord, profile: Mapping[str, Any]
    ) -> AccountFields:
        business_accounts = []
        for page in (profile.get("accounts") or {}).get("data", []):
            ig_account = page.get("instagram_business_account")
            if ig_account:
                business_accounts.append(
                    {
                        "id": ig_account.get("id"),
                        "username": ig_account.get("username"),
                        "page_id": page.get("id"),
                    }
                )
        if not business_accounts:
            raise PlatformError(
                self.name, "No Instagram business account is connected to this login"
            )
        primary = business_accounts[0]
        return AccountFields(
            provider_user_id=str(primary["id"]),
            display_name=primary.get("username"),
            profile={
                "facebook_user_id": profile.get("id"),
                "business_accounts": business_accounts,
            },
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def post(
        self,
        account: LinkedAccount,
        access_token: str,
        content: str,
        media: List[MediaDescriptor],
        params: Mapping[str, Any],
    ) -> PostResult:
        ig_user_id = str(
            params.get("instagram_account_id") or account.provider_user_id
        )
        usable = [item for item in media if item.mime_type in self.accepted_mime_types]
        usable = usable[: self.max_media_items]
        if not usable:
            raise PlatformError(self.name, "No publishable media for Instagram")

        if len(usable) == 1:
            creation_id = await self._create_container(
                ig_user_id, access_token, usable[0], caption=content
            )
        else:
            children = [
                await self._create_container(
                    ig_user_id, access_token, item, carousel_item=True
                )
                for item in usable
            ]
            creation_id = await self._create_carousel(
                ig_user_id, access_token, children, content
            )

        payload = await self._request_json(
            "POST",
            self._api(f"{ig_user_id}/media_publish"),
            data={"creation_id": creation_id, "access_token": access_token},
        )
        media_id = payload.get("id")
        if not media_id:
            raise PlatformError(self.name, "Publish response did not include a media id")
        logger.info("Published Instagram media %s for %s", media_id, ig_user_id)
        return PostResult(platform_post_id=str(media_id))

    async def _create_container(
        self,
        ig_user_id: str,
        access_token: str,
        item: MediaDescriptor,
        *,
        caption: str | None = None,
        carousel_item: bool = False,
    ) -> str:
        data: Dict[str, Any] = {"access_token": access_token}
        is_video = item.media_type == MediaType.VIDEO
        if is_video:
            data["media_type"] = "VIDEO" if carousel_item else "REELS"
            data["video_url"] = item.url
        else:
            data["image_url"] = item.url
        if carousel_item:
            data["is_carousel_item"] = "true"
        if caption:
            data["caption"] = caption

        payload = await self._request_json(
            "POST", self._api(f"{ig_user_id}/media"), data=data
        )
        container_id = str(payload["id"])
        if is_video:
            await self._wait_until_ready(container_id, access_token)
        return container_id

    async def _create_carousel(
        self, ig_user_id: str, access_token: str, children: List[str], caption: str
    ) -> str:
        payload = await self._request_json(
            "POST",
            self._api(f"{ig_user_id}/media"),
            data={
                "media_type": "CAROUSEL",
                "children": ",".join(children),
                "caption": caption,
                "access_token": access_token,
            },
        )
        return str(payload["id"])

    async def _wait_until_ready(self, container_id: str, access_token: str) -> None:
        for _ in range(self.status_poll_attempts):
            payload = await self._request_json(
                "GET",
                self._api(container_id),
                params={"fields": "status_code", "access_token": access_token},
                retry=True,
            )
            status = payload.get("status_code")
            if status == "FINISHED":
                return
            if status in {"ERROR", "EXPIRED"}:
                raise PlatformError(
                    self.name, f"Media container {container_id} failed with {status}"
                )
            await asyncio.sleep(self.status_poll_interval)
        raise PlatformError(
            self.name, f"Media container {container_id} was not ready in time"
        )

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def get_post_metrics(
        self, account: LinkedAccount, access_token: str, post_id: str
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET",
            self._api(f"{post_id}/insights"),
            params={
                "metric": "reach,likes,comments,saved,shares",
                "access_token": access_token,
            },
            retry=True,
        )
        return _latest_insight_values(payload)

    async def get_account_metrics(
        self, account: LinkedAccount, access_token: str
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET",
            self._api(f"{account.provider_user_id}/insights"),
            params={
                "metric": "reach,follower_count",
                "period": "day",
                "access_token": access_token,
            },
            retry=True,
        )
        return _latest_insight_values(payload)


__all__ = ["InstagramClient"]
