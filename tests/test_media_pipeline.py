import pytest

from conftest import MemoryBlobStorage, png_bytes
from mls_sync.adapters.media.images import process_image_bytes
from mls_sync.adapters.storage.local import LocalBlobStorage
from mls_sync.domain.errors import MediaDownloadError, StorageError
from mls_sync.domain.types import MediaKind, MediaRef
from mls_sync.service_layer.media_pipeline import MediaPipeline


class RecordingMediaRepo:
    def __init__(self):
        self.records = []

    async def create(self, record):
        self.records.append(record)
        return record


def _processor(source: bytes):
    async def process(url: str):
        if "broken" in url:
            raise MediaDownloadError(f"GET {url} returned 404")
        return process_image_bytes(source)

    return process


@pytest.mark.asyncio
async def test_pipeline_uploads_variants_and_records_completed():
    storage = MemoryBlobStorage()
    repo = RecordingMediaRepo()
    pipeline = MediaPipeline(storage, processor=_processor(png_bytes(1000, 750)), enabled=True)

    res = await pipeline.sync_property_media(
        7, [MediaRef(url="https://img.test/a.jpg", order=0, caption="Front")], repo
    )

    assert (res.downloaded, res.failed, res.skipped) == (1, 0, 0)
    assert set(storage.objects) == {
        "properties/7/image-0-original.webp",
        "properties/7/image-0-thumbnail.jpg",
        "properties/7/image-0-medium.webp",
        "properties/7/image-0-large.webp",
    }

    rec = repo.records[0]
    assert rec.processing_status == "completed"
    assert rec.source_url == "https://img.test/a.jpg"
    assert rec.media_url == "https://media.test/properties/7/image-0-original.webp"
    assert rec.thumbnail_url.endswith("image-0-thumbnail.jpg")
    assert (rec.width, rec.height) == (1000, 750)
    assert rec.caption == "Front"
    assert rec.metadata["variants"]["medium"]["width"] == 800


@pytest.mark.asyncio
async def test_one_bad_item_does_not_fail_the_rest():
    repo = RecordingMediaRepo()
    pipeline = MediaPipeline(MemoryBlobStorage(), processor=_processor(png_bytes(400, 300)), enabled=True)

    media = [
        MediaRef(url="https://img.test/2.jpg", order=2),
        MediaRef(url="https://img.test/broken.jpg", order=1),
        MediaRef(url="https://img.test/0.jpg", order=0),
        MediaRef(url="https://video.test/walkthrough", kind=MediaKind.video, order=3),
    ]
    res = await pipeline.sync_property_media(1, media, repo)

    assert (res.downloaded, res.failed, res.skipped) == (2, 1, 1)
    assert [r.display_order for r in repo.records] == [0, 1, 2, 3]
    assert [r.processing_status for r in repo.records] == ["completed", "failed", "completed", "skipped"]
    assert "404" in repo.records[1].processing_error


@pytest.mark.asyncio
async def test_unexpected_processor_error_is_recorded_as_failed():
    repo = RecordingMediaRepo()

    async def process(url: str):
        if "panorama" in url:
            return process_image_bytes(png_bytes(17000, 20))
        raise RuntimeError("worker thread died")

    pipeline = MediaPipeline(MemoryBlobStorage(), processor=process, enabled=True)
    media = [
        MediaRef(url="https://img.test/panorama.png", order=0),
        MediaRef(url="https://img.test/front.png", order=1),
    ]
    res = await pipeline.sync_property_media(5, media, repo)

    assert (res.downloaded, res.failed) == (0, 2)
    assert [r.processing_status for r in repo.records] == ["failed", "failed"]
    assert "WEBP" in repo.records[0].processing_error
    assert repo.records[1].processing_error == "worker thread died"


@pytest.mark.asyncio
async def test_disabled_processing_keeps_source_urls():
    repo = RecordingMediaRepo()
    storage = MemoryBlobStorage()
    pipeline = MediaPipeline(storage, processor=_processor(b""), enabled=False)

    res = await pipeline.sync_property_media(1, [MediaRef(url="https://img.test/a.jpg")], repo)

    assert (res.downloaded, res.skipped) == (0, 1)
    assert storage.objects == {}
    assert repo.records[0].processing_status == "pending"
    assert repo.records[0].media_url == "https://img.test/a.jpg"


@pytest.mark.asyncio
async def test_local_storage_writes_under_root(tmp_path):
    storage = LocalBlobStorage(str(tmp_path), base_url="http://cdn.test/media/", cdn_base_url="https://cdn.test")

    res = await storage.upload(b"abc", folder="properties/3", filename="image-0-original.webp", content_type="image/webp")

    assert (tmp_path / "properties" / "3" / "image-0-original.webp").read_bytes() == b"abc"
    assert res.url == "http://cdn.test/media/properties/3/image-0-original.webp"
    assert res.public_url == "https://cdn.test/properties/3/image-0-original.webp"


@pytest.mark.asyncio
async def test_local_storage_rejects_escaping_keys(tmp_path):
    storage = LocalBlobStorage(str(tmp_path / "media"))
    with pytest.raises(StorageError):
        await storage.upload(b"x", folder="../outside", filename="a.webp", content_type="image/webp")
