"""LinkedIn member and organization sharing client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping
from urllib.parse import quote

from crosspost.clients.platforms.base import PlatformClient
from crosspost.core.errors import PlatformError
from crosspost.models.oauth import AccountFields, LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, MediaType, PostResult

logger = logging.getLogger(__name__)

API_VERSION = "202405"

_UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"


class LinkedInClient(PlatformClient):
    """Posts through the versioned ``/rest/posts`` API.

    Posts are authored by the member unless an ``organization_id`` is given
    in the target parameters. Media is registered as an asset, the bytes are
    copied from the media URL to LinkedIn's upload URL, then referenced from
    the post.
    """

    name = "linkedin"
    display_name = "LinkedIn"
    scope_delimiter = " "

    def _api(self, path: str) -> str:
        return f"{self.settings.api_base_url}/{path.lstrip('/')}"

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            **self._bearer(access_token),
            "X-Restli-Protocol-Version": "2.0.0",
            "LinkedIn-Version": API_VERSION,
        }

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        return await self._request_json(
            "GET",
            self._api("v2/userinfo"),
            headers=self._bearer(access_token),
            retry=True,
        )

    def build_account_fields(
        self, tokens: TokenRecord, profile: Mapping[str, Any]
    ) -> AccountFields:
        subject = profile.get("sub") or profile.get("id")
        if not subject:
            raise PlatformError(self.name, "Profile response did not include a subject")
        name = profile.get("name") or " ".join(
            part
            for part in (profile.get("given_name"), profile.get("family_name"))
            if part
        )
        return AccountFields(
            provider_user_id=str(subject),
            display_name=name or None,
            profile={
                "email": profile.get("email"),
                "picture": profile.get("picture"),
            },
        )

    @staticmethod
    def _author(account: LinkedAccount, params: Mapping[str, Any]) -> str:
        organization_id = params.get("organization_id") or params.get("organizationId")
        if organization_id:
            return f"urn:li:organization:{organization_id}"
        return f"urn:li:person:{account.provider_user_id}"

    async def _upload_asset(
        self, access_token: str, author: str, item: MediaDescriptor
    ) -> str:
        recipe = (
            "urn:li:digitalmediaRecipe:feedshare-video"
            if item.media_type == MediaType.VIDEO
            else "urn:li:digitalmediaRecipe:feedshare-image"
        )
        registration = await self._request_json(
            "POST",
            self._api("v2/assets"),
            params={"action": "registerUpload"},
            headers=self._headers(access_token),
            json={
                "registerUploadRequest": {
                    "recipes": [recipe],
                    "owner": author,
                    "serviceRelationships": [
                        {
                            "relationshipType": "OWNER",
                            "identifier": "urn:li:userGeneratedContent",
                        }
                    ],
                }
            },
        )
        value = registration.get("value") or {}
        try:
            upload_url = value["uploadMechanism"][_UPLOAD_MECHANISM]["uploadUrl"]
            asset = value["asset"]
        except KeyError as exc:
            raise PlatformError(self.name, "Asset registration response was incomplete") from exc

        source = await self._request("GET", item.url, retry=True)
        await self._request(
            "PUT",
            upload_url,
            content=source.content,
            headers={
                **self._bearer(access_token),
                "Content-Type": item.mime_type,
            },
        )
        return asset

    async def post(
        self,
        account: LinkedAccount,
        access_token: str,
        content: str,
        media: List[MediaDescriptor],
        params: Mapping[str, Any],
    ) -> PostResult:
        author = self._author(account, params)
        body: Dict[str, Any] = {
            "author": author,
            "commentary": content,
            "visibility": params.get("visibility", "PUBLIC"),
            "distribution": {
                "feedDistribution": "MAIN_FEED",
                "targetEntities": [],
                "thirdPartyDistributionChannels": [],
            },
            "lifecycleState": "PUBLISHED",
            "isReshareDisabledByAuthor": False,
        }

        uploadable = [
            item for item in media if item.media_type != MediaType.DOCUMENT
        ][: self.max_media_items]
        if uploadable:
            assets = [
                await self._upload_asset(access_token, author, item)
                for item in uploadable
            ]
            if len(assets) == 1:
                body["content"] = {"media": {"id": assets[0]}}
            else:
                body["content"] = {
                    "multiImage": {"images": [{"id": asset} for asset in assets]}
                }

        response = await self._request(
            "POST",
            self._api("rest/posts"),
            headers=self._headers(access_token),
            json=body,
        )
        post_urn = response.headers.get("x-restli-id")
        if not post_urn and response.content:
            post_urn = response.json().get("id")
        if not post_urn:
            raise PlatformError(self.name, "Publish response did not include a post id")
        logger.info("Published LinkedIn post %s as %s", post_urn, author)
        return PostResult(
            platform_post_id=post_urn,
            url=f"https://www.linkedin.com/feed/update/{post_urn}",
        )

    async def get_post_metrics(
        self, account: LinkedAccount, access_token: str, post_id: str
    ) -> Dict[str, Any]:
        payload = await self._request_json(
            "GET",
            self._api(f"v2/socialActions/{quote(post_id, safe='')}"),
            headers=self._headers(access_token),
            retry=True,
        )
        return {
            "likes": (payload.get("likesSummary") or {}).get("totalLikes", 0),
            "comments": (payload.get("commentsSummary") or {}).get(
                "aggregatedTotalComments", 0
            ),
        }


__all__ = ["LinkedInClient"]
