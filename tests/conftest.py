# tests/conftest.py
import io
from collections.abc import Callable
from typing import Any

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from mls_sync.adapters.providers.mock import MockProvider
from mls_sync.domain.ports import UploadResult
from mls_sync.domain.types import ProviderConfig, ProviderKind
from mls_sync.models import Base
from mls_sync.service_layer.admin import SyncCoordinator
from mls_sync.service_layer.credentials import StaticCredentialSource
from mls_sync.service_layer.unit_of_work import SqlAlchemyUnitOfWork


def raw_listing(n: int, **overrides: Any) -> dict[str, Any]:
    """RESO-shaped provider row."""
    row = {
        "ListingKey": f"L{n:04d}",
        "UnparsedAddress": f"{100 + n} Main St",
        "City": "Seattle",
        "StateOrProvince": "WA",
        "PostalCode": "98101",
        "PropertyType": "House",
        "StandardStatus": "ACT",
        "ListPrice": 400000 + n * 1000,
        "BedroomsTotal": 3,
        "BathroomsTotalInteger": 2,
        "LivingArea": "1,850",
        "PublicRemarks": f"Listing {n}",
        "ModificationTimestamp": "2024-03-01T12:00:00Z",
    }
    row.update(overrides)
    return row


def make_config(provider_id: str = "mock-mls", **overrides: Any) -> ProviderConfig:
    kwargs: dict[str, Any] = {
        "provider_id": provider_id,
        "provider_name": f"{provider_id} (test)",
        "provider_type": ProviderKind.mock,
        "login_url": "mock://localhost",
        "include_media": False,
    }
    kwargs.update(overrides)
    return ProviderConfig(**kwargs)


def png_bytes(width: int, height: int, color: tuple[int, int, int] = (200, 80, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class MemoryBlobStorage:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        content_type: str,
        public: bool = True,
    ) -> UploadResult:
        key = f"{folder}/{filename}"
        self.objects[key] = (data, content_type)
        return UploadResult(url=f"https://media.test/{key}")


@pytest.fixture
async def engine(tmp_path):
    """
    Fresh SQLite file per test. Background runs and the test body use separate
    connections, the same way the app does.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'mls_sync_test.db'}",
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
def uow_factory(async_session_maker) -> Callable[[], SqlAlchemyUnitOfWork]:
    return lambda: SqlAlchemyUnitOfWork(async_session_maker)


@pytest.fixture
def mock_providers() -> dict[str, MockProvider]:
    """provider_id -> MockProvider; tests put adapters here before syncing."""
    return {}


@pytest.fixture
def coordinator(uow_factory, mock_providers) -> SyncCoordinator:
    def _factory(config: ProviderConfig) -> MockProvider:
        provider = mock_providers.get(config.provider_id)
        if provider is None:
            provider = MockProvider(config, listings=[])
            mock_providers[config.provider_id] = provider
        # adapters keep the config they were built with; refresh it per run
        provider.config = config
        return provider

    return SyncCoordinator(
        uow_factory=uow_factory,
        credentials=StaticCredentialSource(),
        provider_factory=_factory,
    )
