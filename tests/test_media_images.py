import io

import httpx
import pytest
from PIL import Image

from conftest import png_bytes
from mls_sync.adapters.media.images import (
    cover_fit,
    download_image,
    process_image_bytes,
    process_listing_image,
)
from mls_sync.domain.errors import MediaDecodeError, MediaDownloadError, MediaEncodeError


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_variants_from_large_source():
    processed = process_image_bytes(png_bytes(4000, 3000))

    assert (processed.source_width, processed.source_height) == (4000, 3000)
    assert processed.original.format == "WEBP"
    assert (processed.original.width, processed.original.height) == (4000, 3000)

    sizes = {name: (v.width, v.height, v.format) for name, v in processed.variants.items()}
    assert sizes == {
        "thumbnail": (200, 150, "JPEG"),
        "medium": (800, 600, "WEBP"),
        "large": (1920, 1440, "WEBP"),
    }
    assert processed.variants["thumbnail"].content_type == "image/jpeg"
    assert processed.variants["large"].extension == "webp"

    decoded = Image.open(io.BytesIO(processed.variants["medium"].data))
    assert decoded.size == (800, 600)


def test_cover_fit_crops_to_target_aspect():
    out = cover_fit(Image.new("RGB", (3000, 1000)), 800, 600)
    assert out.size == (800, 600)


def test_small_source_is_never_upscaled():
    processed = process_image_bytes(png_bytes(640, 480))

    assert (processed.variants["thumbnail"].width, processed.variants["thumbnail"].height) == (200, 150)
    assert (processed.variants["medium"].width, processed.variants["medium"].height) == (640, 480)
    assert (processed.variants["large"].width, processed.variants["large"].height) == (640, 480)


def test_non_image_payload_is_a_decode_error():
    with pytest.raises(MediaDecodeError):
        process_image_bytes(b"<html>not an image</html>")


def test_source_past_webp_limit_is_an_encode_error():
    with pytest.raises(MediaEncodeError, match="17000x20"):
        process_image_bytes(png_bytes(17000, 20))


@pytest.mark.asyncio
async def test_download_rejects_non_2xx():
    async with _client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(MediaDownloadError):
            await download_image("https://img.test/missing.jpg", client=client)


@pytest.mark.asyncio
async def test_download_rejects_declared_oversize():
    def handler(request):
        return httpx.Response(200, headers={"Content-Length": "5000"}, content=b"x" * 5000)

    async with _client(handler) as client:
        with pytest.raises(MediaDownloadError):
            await download_image("https://img.test/big.jpg", client=client, max_bytes=1000)


@pytest.mark.asyncio
async def test_download_rejects_streamed_oversize():
    async def body():
        for _ in range(10):
            yield b"x" * 500

    def handler(request):
        return httpx.Response(200, content=body())

    async with _client(handler) as client:
        with pytest.raises(MediaDownloadError):
            await download_image("https://img.test/chunked.jpg", client=client, max_bytes=1000)


@pytest.mark.asyncio
async def test_download_maps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(MediaDownloadError):
            await download_image("https://img.test/down.jpg", client=client)


@pytest.mark.asyncio
async def test_process_listing_image_end_to_end():
    payload = png_bytes(1600, 1200)

    async with _client(lambda request: httpx.Response(200, content=payload)) as client:
        processed = await process_listing_image("https://img.test/ok.png", client=client)

    assert processed.source_width == 1600
    assert set(processed.variants) == {"thumbnail", "medium", "large"}
