"""TikTok Login Kit and Content Posting API client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from crosspost.clients.platforms.base import PlatformClient
from crosspost.core.errors import PlatformError
from crosspost.models.oauth import AccountFields, LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, PostResult

logger = logging.getLogger(__name__)

_VIDEO_METRIC_FIELDS = (
    "id",
    "like_count",
    "comment_count",
    "share_count",
    "view_count",
)

_USER_METRIC_FIELDS = (
    "open_id",
    "follower_count",
    "following_count",
    "likes_count",
    "video_count",
)

MAX_TITLE_LENGTH = 2200


class TikTokClient(PlatformClient):
    """Direct-posts videos that TikTok pulls from a public URL."""

    name = "tiktok"
    display_name = "TikTok"
    client_id_param = "client_key"
    min_media_items = 1
    max_media_items = 1
    accepted_mime_types = ("video/mp4",)

    def _api(self, path: str) -> str:
        return f"{self.settings.api_base_url}/{path.lstrip('/')}"

    def _check_envelope(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        error = payload.get("error") or {}
        if error.get("code") not in (None, "ok"):
            raise PlatformError(
                self.name, error.get("message") or f"TikTok error {error.get('code')}"
            )
        return payload.get("data") or {}

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET",
            self._api("user/info/"),
            params={"fields": "open_id,union_id,avatar_url,display_name"},
            headers=self._bearer(access_token),
            retry=True,
        )
        return self._check_envelope(payload).get("user", {})

    def build_account_fields(
        self, tokens: TokenRecord, profile: Mapping[str, Any]
    ) -> AccountFields:
        open_id = tokens.open_id or profile.get("open_id")
        if not open_id:
            raise PlatformError(self.name, "Neither token nor profile carried an open_id")
        return AccountFields(
            provider_user_id=str(open_id),
            display_name=profile.get("display_name"),
            profile={
                "avatar_url": profile.get("avatar_url"),
                "union_id": profile.get("union_id"),
            },
        )

    async def post(
        self,
        account: LinkedAccount,
        access_token: str,
        content: str,
        media: List[MediaDescriptor],
        params: Mapping[str, Any],
    ) -> PostResult:
        video = next(
            (item for item in media if item.mime_type in self.accepted_mime_types), None
        )
        if video is None:
            raise PlatformError(self.name, "No publishable video for TikTok")

        post_info: Dict[str, Any] = {
            "title": content[:MAX_TITLE_LENGTH],
            "privacy_level": params.get("privacy_level", "SELF_ONLY"),
            "disable_duet": bool(params.get("disable_duet", False)),
            "disable_stitch": bool(params.get("disable_stitch", False)),
            "disable_comment": bool(params.get("disable_comment", False)),
        }
        if "video_cover_timestamp_ms" in params:
            post_info["video_cover_timestamp_ms"] = int(params["video_cover_timestamp_ms"])

        payload = await self._request_json(
            "POST",
            self._api("post/publish/video/init/"),
            headers={
                **self._bearer(access_token),
                "Content-Type": "application/json; charset=UTF-8",
            },
            json={
                "post_info": post_info,
                "source_info": {"source": "PULL_FROM_URL", "video_url": video.url},
            },
        )
        publish_id = self._check_envelope(payload).get("publish_id")
        if not publish_id:
            raise PlatformError(self.name, "Publish response did not include a publish id")
        logger.info("Started TikTok publish %s for %s", publish_id, account.provider_user_id)
        return PostResult(platform_post_id=str(publish_id))

    async def get_post_metrics(
        self, account: LinkedAccount, access_token: str, post_id: str
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "POST",
            self._api("video/query/"),
            params={"fields": ",".join(_VIDEO_METRIC_FIELDS)},
            headers=self._bearer(access_token),
            json={"filters": {"video_ids": [post_id]}},
            retry=True,
        )
        videos = self._check_envelope(payload).get("videos") or []
        if not videos:
            raise PlatformError(self.name, f"Video {post_id} was not found")
        return {field: videos[0].get(field) for field in _VIDEO_METRIC_FIELDS[1:]}

    async def get_account_metrics(
        self, account: LinkedAccount, access_token: str
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET",
            self._api("user/info/"),
            params={"fields": ",".join(_USER_METRIC_FIELDS)},
            headers=self._bearer(access_token),
            retry=True,
        )
        user = self._check_envelope(payload).get("user", {})
        return {field: user.get(field) for field in _USER_METRIC_FIELDS[1:]}


__all__ = ["TikTokClient"]
