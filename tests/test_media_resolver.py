try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from crosspost.clients.media_storage import LocalMediaStorage
from crosspost.core.errors import ValidationError
from crosspost.models.publish import MediaUpload
from crosspost.services.media_resolver import MediaResolver

CHUNK = b"\x89PNG" + b"\x00" * 508


class ChunkedBody:
    """Async response body that records how much of it was consumed."""

    def __init__(self, chunks: int) -> None:
        self.total = chunks
        self.sent = 0

    async def __aiter__(self):
        for _ in range(self.total):
            self.sent += 1
            yield CHUNK


def _resolver(tmp_path, handler, *, max_bytes: int = 2048) -> MediaResolver:
    return MediaResolver(
        LocalMediaStorage(str(tmp_path / "media"), "https://media.example.com"),
        max_bytes=max_bytes,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_url_is_downloaded_and_stored(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/png"}, content=CHUNK)

    resolver = _resolver(tmp_path, handler)

    media = await resolver.resolve_url("user-1", "https://cdn.example.com/img/chart.png")

    assert media.mime_type == "image/png"
    assert media.size == len(CHUNK)
    assert media.original_filename == "chart.png"
    assert media.source_url == "https://cdn.example.com/img/chart.png"
    assert media.url.startswith("https://media.example.com/media/user-1/")


@pytest.mark.asyncio
async def test_declared_oversize_download_is_rejected_before_reading(tmp_path) -> None:
    body = ChunkedBody(chunks=100)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "image/png", "content-length": str(100 * len(CHUNK))},
            content=body,
        )

    resolver = _resolver(tmp_path, handler)

    with pytest.raises(ValidationError) as excinfo:
        await resolver.resolve_url("user-1", "https://cdn.example.com/huge.png")

    assert "huge.png" in excinfo.value.errors[0]
    assert body.sent == 0
    assert not (tmp_path / "media").exists()


@pytest.mark.asyncio
async def test_undeclared_oversize_download_stops_at_the_limit(tmp_path) -> None:
    body = ChunkedBody(chunks=100)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/png"}, content=body)

    resolver = _resolver(tmp_path, handler, max_bytes=2048)

    with pytest.raises(ValidationError):
        await resolver.resolve_url("user-1", "https://cdn.example.com/stream.png")

    assert body.sent <= 5
    assert not (tmp_path / "media").exists()


@pytest.mark.asyncio
async def test_resolve_all_keeps_order_and_skips_failures(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("missing.png"):
            return httpx.Response(404)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=CHUNK)

    resolver = _resolver(tmp_path, handler)
    upload = MediaUpload(filename="local.gif", content_type="image/gif", data=b"GIF89a")

    media = await resolver.resolve_all(
        "user-1",
        [upload],
        ["https://cdn.example.com/missing.png", "https://cdn.example.com/ok.png"],
    )

    assert [item.original_filename for item in media] == ["local.gif", "ok.png"]
    assert media[0].source_url is None
