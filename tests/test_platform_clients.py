try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from crosspost.clients.platforms import (
    FacebookClient,
    InstagramClient,
    LinkedInClient,
    TikTokClient,
    build_default_registry,
)
from crosspost.core.config import (
    AppSettings,
    FacebookSettings,
    InstagramSettings,
    LinkedInSettings,
    TikTokSettings,
)
from crosspost.core.errors import PlatformError, RateLimitError
from crosspost.models.oauth import LinkedAccount, TokenRecord
from crosspost.models.publish import MediaDescriptor, MediaType
from crosspost.utils.http import RetryConfig

CREDENTIALS = {
    "client_id": "cid",
    "client_secret": "csecret",
    "redirect_uri": "https://example.com/callback",
}


class Recorder:
    """Mock transport handler that replays queued responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _media(mime_type: str, url: str = "https://media.example.com/a") -> MediaDescriptor:
    return MediaDescriptor(
        id="m1",
        url=url,
        key="media/u/a",
        mime_type=mime_type,
        size=10,
        media_type=MediaType.from_mime_type(mime_type),
    )


def _account(platform: str, **overrides) -> LinkedAccount:
    values = {
        "id": "acc-1",
        "platform": platform,
        "user_id": "user-1",
        "provider_user_id": "provider-1",
        "access_token": "token",
    }
    values.update(overrides)
    return LinkedAccount(**values)


def test_facebook_authorization_url_uses_comma_scopes() -> None:
    client = FacebookClient(FacebookSettings(**CREDENTIALS, scopes="a,b"))

    url = urlparse(client.build_authorization_url("state-1"))
    query = parse_qs(url.query)

    assert url.netloc == "www.facebook.com"
    assert url.path == "/v18.0/dialog/oauth"
    assert query["scope"] == ["a,b"]
    assert query["client_id"] == ["cid"]
    assert query["state"] == ["state-1"]


def test_linkedin_and_tiktok_authorization_quirks() -> None:
    linkedin = LinkedInClient(LinkedInSettings(**CREDENTIALS, scopes="openid,profile"))
    tiktok = TikTokClient(TikTokSettings(**CREDENTIALS))

    linkedin_query = parse_qs(urlparse(linkedin.build_authorization_url("s")).query)
    tiktok_query = parse_qs(urlparse(tiktok.build_authorization_url("s")).query)

    assert linkedin_query["scope"] == ["openid profile"]
    assert tiktok_query["client_key"] == ["cid"]
    assert "client_id" not in tiktok_query


def test_unconfigured_client_refuses_to_build_url() -> None:
    client = LinkedInClient(LinkedInSettings(client_id="", client_secret="", redirect_uri=""))

    with pytest.raises(ValueError):
        client.build_authorization_url("s")


@pytest.mark.asyncio
async def test_facebook_exchange_is_get_and_reuses_access_token() -> None:
    recorder = Recorder(
        httpx.Response(200, json={"access_token": "long-lived", "token_type": "bearer"})
    )
    client = FacebookClient(FacebookSettings(**CREDENTIALS), transport=recorder.transport)

    tokens = await client.exchange_code("the-code")

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.params["code"] == "the-code"
    assert tokens.refresh_token == "long-lived"
    assert tokens.expires_in is None
    assert client.default_expires_in == 60 * 24 * 60 * 60


@pytest.mark.asyncio
async def test_facebook_refresh_uses_token_exchange_grant() -> None:
    recorder = Recorder(httpx.Response(200, json={"access_token": "extended", "expires_in": 5183944}))
    client = FacebookClient(FacebookSettings(**CREDENTIALS), transport=recorder.transport)

    tokens = await client.refresh("long-lived")

    params = recorder.requests[0].url.params
    assert params["grant_type"] == "fb_exchange_token"
    assert params["fb_exchange_token"] == "long-lived"
    assert tokens.access_token == "extended"
    assert tokens.refresh_token == "extended"


@pytest.mark.asyncio
async def test_tiktok_exchange_is_form_post_with_client_key() -> None:
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "access_token": "act",
                "refresh_token": "rft",
                "expires_in": 86400,
                "open_id": "open-1",
                "scope": "user.info.basic,video.publish",
            },
        )
    )
    client = TikTokClient(TikTokSettings(**CREDENTIALS), transport=recorder.transport)

    tokens = await client.exchange_code("code")

    request = recorder.requests[0]
    body = parse_qs(request.content.decode())
    assert request.method == "POST"
    assert str(request.url) == "https://open.tiktokapis.com/v2/oauth/token/"
    assert body["client_key"] == ["cid"]
    assert body["grant_type"] == ["authorization_code"]
    assert tokens.open_id == "open-1"
    assert tokens.scope == ["user.info.basic", "video.publish"]


@pytest.mark.asyncio
async def test_rate_limit_maps_to_rate_limit_error() -> None:
    recorder = Recorder(httpx.Response(429, headers={"Retry-After": "42"}, json={}))
    client = LinkedInClient(LinkedInSettings(**CREDENTIALS), transport=recorder.transport)

    with pytest.raises(RateLimitError) as excinfo:
        await client.exchange_code("code")

    assert excinfo.value.retry_after == 42


@pytest.mark.asyncio
async def test_provider_errors_do_not_leak_tokens() -> None:
    recorder = Recorder(httpx.Response(400, json={"error": {"message": "bad"}}))
    client = FacebookClient(FacebookSettings(**CREDENTIALS), transport=recorder.transport)

    with pytest.raises(PlatformError) as excinfo:
        await client.refresh("secret-token-value")

    assert "secret-token-value" not in str(excinfo.value)
    assert excinfo.value.platform == "facebook"


@pytest.mark.asyncio
async def test_transport_failure_becomes_platform_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = LinkedInClient(
        LinkedInSettings(**CREDENTIALS), transport=httpx.MockTransport(handler)
    )

    with pytest.raises(PlatformError):
        await client.exchange_code("code")


@pytest.mark.asyncio
async def test_profile_fetch_retries_server_errors() -> None:
    recorder = Recorder(
        httpx.Response(503),
        httpx.Response(200, json={"sub": "member-9", "name": "Grace Hopper"}),
    )
    client = LinkedInClient(
        LinkedInSettings(**CREDENTIALS),
        transport=recorder.transport,
        retry_config=RetryConfig(attempts=3, backoff_seconds=0),
    )

    profile = await client.fetch_user_info("token")
    fields = client.build_account_fields(TokenRecord(access_token="token"), profile)

    assert len(recorder.requests) == 2
    assert recorder.requests[1].headers["Authorization"] == "Bearer token"
    assert fields.provider_user_id == "member-9"
    assert fields.display_name == "Grace Hopper"


def test_instagram_account_fields_use_business_account() -> None:
    client = InstagramClient(InstagramSettings(**CREDENTIALS))
    profile = {
        "id": "fb-user",
        "accounts": {
            "data": [
                {"id": "page-1"},
                {"id": "page-2", "instagram_business_account": {"id": "ig-7", "username": "brand"}},
            ]
        },
    }

    fields = client.build_account_fields(TokenRecord(access_token="t"), profile)

    assert fields.provider_user_id == "ig-7"
    assert fields.display_name == "brand"
    assert fields.profile["business_accounts"][0]["page_id"] == "page-2"


def test_media_policies() -> None:
    instagram = InstagramClient(InstagramSettings(**CREDENTIALS))
    tiktok = TikTokClient(TikTokSettings(**CREDENTIALS))
    facebook = FacebookClient(FacebookSettings(**CREDENTIALS))

    assert "media" in instagram.check_media_policy([])
    assert instagram.check_media_policy([_media("image/jpeg")]) is None
    assert "media" in tiktok.check_media_policy([_media("image/png")])
    assert tiktok.check_media_policy([_media("video/mp4")]) is None
    assert facebook.check_media_policy([]) is None


@pytest.mark.asyncio
async def test_tiktok_post_pulls_video_from_url() -> None:
    recorder = Recorder(
        httpx.Response(200, json={"data": {"publish_id": "pub-1"}, "error": {"code": "ok"}})
    )
    client = TikTokClient(TikTokSettings(**CREDENTIALS), transport=recorder.transport)

    result = await client.post(
        _account("tiktok"),
        "token",
        "Launch day",
        [_media("video/mp4", url="https://media.example.com/v.mp4")],
        {"privacy_level": "PUBLIC_TO_EVERYONE"},
    )

    body = json.loads(recorder.requests[0].content)
    assert result.platform_post_id == "pub-1"
    assert body["source_info"] == {
        "source": "PULL_FROM_URL",
        "video_url": "https://media.example.com/v.mp4",
    }
    assert body["post_info"]["privacy_level"] == "PUBLIC_TO_EVERYONE"


@pytest.mark.asyncio
async def test_tiktok_error_envelope_is_a_platform_error() -> None:
    recorder = Recorder(
        httpx.Response(
            200, json={"data": {}, "error": {"code": "spam_risk", "message": "Too many posts"}}
        )
    )
    client = TikTokClient(TikTokSettings(**CREDENTIALS), transport=recorder.transport)

    with pytest.raises(PlatformError) as excinfo:
        await client.post(_account("tiktok"), "token", "x", [_media("video/mp4")], {})

    assert "Too many posts" in str(excinfo.value)


@pytest.mark.asyncio
async def test_facebook_single_photo_post_uses_page_token() -> None:
    recorder = Recorder(
        httpx.Response(200, json={"access_token": "page-token", "id": "page-1"}),
        httpx.Response(200, json={"id": "photo-1", "post_id": "page-1_post-1"}),
    )
    client = FacebookClient(FacebookSettings(**CREDENTIALS), transport=recorder.transport)
    account = _account("facebook", profile={"pages": [{"id": "page-1", "name": "Shop"}]})

    result = await client.post(account, "user-token", "Hello", [_media("image/png")], {})

    publish_request = recorder.requests[1]
    form = parse_qs(publish_request.content.decode())
    assert publish_request.url.path == "/v18.0/page-1/photos"
    assert form["access_token"] == ["page-token"]
    assert form["caption"] == ["Hello"]
    assert result.platform_post_id == "page-1_post-1"


@pytest.mark.asyncio
async def test_linkedin_post_reads_id_from_header() -> None:
    recorder = Recorder(
        httpx.Response(201, headers={"x-restli-id": "urn:li:share:123"}),
    )
    client = LinkedInClient(LinkedInSettings(**CREDENTIALS), transport=recorder.transport)

    result = await client.post(
        _account("linkedin"), "token", "Text only", [], {"organization_id": "42"}
    )

    body = json.loads(recorder.requests[0].content)
    assert body["author"] == "urn:li:organization:42"
    assert body["commentary"] == "Text only"
    assert recorder.requests[0].headers["LinkedIn-Version"]
    assert result.platform_post_id == "urn:li:share:123"


def test_default_registry_has_every_platform() -> None:
    registry = build_default_registry(AppSettings())

    assert registry.names() == ["facebook", "instagram", "linkedin", "tiktok"]
    assert "LinkedIn" in registry
    assert registry.get("myspace") is None
