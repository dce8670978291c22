# mls_sync/adapters/media/images.py
from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from ...config import settings
from ...domain.errors import MediaDecodeError, MediaDownloadError, MediaEncodeError
from ..clients.http_resilience import build_timeout, http_verify

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantSpec:
    width: int
    height: int
    format: str  # Pillow format name


# cover fit, never upscaled
VARIANTS: dict[str, VariantSpec] = {
    "thumbnail": VariantSpec(200, 150, "JPEG"),
    "medium": VariantSpec(800, 600, "WEBP"),
    "large": VariantSpec(1920, 1440, "WEBP"),
}

_EXT = {"JPEG": "jpg", "WEBP": "webp"}
_CONTENT_TYPE = {"JPEG": "image/jpeg", "WEBP": "image/webp"}


@dataclass
class EncodedImage:
    data: bytes
    width: int
    height: int
    format: str

    @property
    def extension(self) -> str:
        return _EXT[self.format]

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPE[self.format]

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ProcessedImage:
    original: EncodedImage
    variants: dict[str, EncodedImage] = field(default_factory=dict)
    source_width: int = 0
    source_height: int = 0


# -------------------------
# Download
# -------------------------

async def download_image(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    max_bytes: int | None = None,
    timeout_s: float | None = None,
) -> bytes:
    """
    Bounded GET. Content-Length is checked before reading the body and the
    streamed byte count is checked while reading it.
    """
    limit = int(max_bytes if max_bytes is not None else settings.MEDIA_MAX_BYTES)
    timeout = build_timeout(timeout_s if timeout_s is not None else settings.MEDIA_DOWNLOAD_TIMEOUT_S)

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True, verify=http_verify())

    try:
        async with client.stream("GET", url, timeout=timeout) as resp:
            if not 200 <= resp.status_code < 300:
                raise MediaDownloadError(f"GET {url} returned {resp.status_code}")

            declared = resp.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise MediaDownloadError(f"{url} is {declared} bytes, limit is {limit}")

            buf = bytearray()
            async for chunk in resp.aiter_bytes():
                buf.extend(chunk)
                if len(buf) > limit:
                    raise MediaDownloadError(f"{url} exceeded {limit} bytes")
            return bytes(buf)
    except httpx.HTTPError as e:
        raise MediaDownloadError(f"GET {url} failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()


# -------------------------
# Decode / resize / encode (CPU bound, run in a worker thread)
# -------------------------

def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise MediaDecodeError(f"not a decodable image: {e}") from e

    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
    return img


def cover_fit(img: Image.Image, width: int, height: int) -> Image.Image:
    """
    Scale to cover width x height then center crop. A source smaller than the
    target in a dimension keeps its size in that dimension.
    """
    w, h = img.size
    scale = min(1.0, max(width / w, height / h))
    sw, sh = max(1, round(w * scale)), max(1, round(h * scale))
    if (sw, sh) != (w, h):
        img = img.resize((sw, sh), Image.Resampling.LANCZOS)

    cw, ch = min(sw, width), min(sh, height)
    left = (sw - cw) // 2
    top = (sh - ch) // 2
    if (cw, ch) != (sw, sh):
        img = img.crop((left, top, left + cw, top + ch))
    return img


def encode_image(img: Image.Image, fmt: str, quality: int) -> EncodedImage:
    if fmt == "JPEG" and img.mode != "RGB":
        img = img.convert("RGB")

    out = io.BytesIO()
    try:
        if fmt == "JPEG":
            img.save(out, format="JPEG", quality=quality, optimize=True, progressive=True)
        else:
            img.save(out, format=fmt, quality=quality)
    except (OSError, ValueError) as e:
        raise MediaEncodeError(f"cannot encode {img.width}x{img.height} image as {fmt}: {e}") from e
    return EncodedImage(data=out.getvalue(), width=img.width, height=img.height, format=fmt)


def process_image_bytes(
    data: bytes,
    *,
    original_quality: int | None = None,
    variant_quality: int | None = None,
) -> ProcessedImage:
    oq = int(original_quality if original_quality is not None else settings.MEDIA_ORIGINAL_QUALITY)
    vq = int(variant_quality if variant_quality is not None else settings.MEDIA_VARIANT_QUALITY)

    img = decode_image(data)

    processed = ProcessedImage(
        original=encode_image(img, "WEBP", oq),
        source_width=img.width,
        source_height=img.height,
    )
    for name, spec in VARIANTS.items():
        processed.variants[name] = encode_image(cover_fit(img, spec.width, spec.height), spec.format, vq)
    return processed


async def process_listing_image(
    source_url: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> ProcessedImage:
    data = await download_image(source_url, client=client)
    processed = await asyncio.to_thread(process_image_bytes, data)
    log.debug(
        "processed %s (%sx%s, %s bytes)",
        source_url,
        processed.source_width,
        processed.source_height,
        len(data),
    )
    return processed
