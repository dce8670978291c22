import httpx
import pytest

from conftest import make_config, raw_listing
from mls_sync.adapters.providers.mock import MockProvider
from mls_sync.config import settings
from mls_sync.entrypoints.fastapi_app import create_app


@pytest.fixture
async def client(coordinator):
    app = create_app(coordinator, create_tables=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _register(coordinator, mock_providers, provider_id="mock-mls", latency_s=0.0):
    config = make_config(provider_id)
    mock_providers[provider_id] = MockProvider(
        config, listings=[raw_listing(1), raw_listing(2)], latency_s=latency_s
    )
    await coordinator.register_provider(config)


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_trigger_status_history_flow(client, coordinator, mock_providers):
    await _register(coordinator, mock_providers)

    r = await client.post("/mls/admin/sync/mock-mls", json={"sync_type": "full"})
    assert r.status_code == 202
    body = r.json()
    assert body["success"] is True
    assert body["data"]["provider_id"] == "mock-mls"
    assert body["data"]["sync_type"] == "full"
    await coordinator.wait_idle()

    r = await client.get("/mls/admin/status/mock-mls")
    data = r.json()["data"]
    assert data["last_sync_status"] == "success"
    assert data["statistics"]["added_last_sync"] == 2
    assert data["health"]["success_rate"] == "100.00%"

    r = await client.get("/mls/admin/history/mock-mls")
    rows = r.json()["data"]
    assert rows[0]["sync_id"] == body["data"]["sync_id"]
    assert rows[0]["properties_added"] == 2

    r = await client.get("/mls/admin/history", params={"limit": 5})
    assert len(r.json()["data"]) == 1

    r = await client.get("/mls/admin/statistics")
    assert r.json()["data"]["sync_statistics"]["total_syncs"] == 1

    r = await client.get("/mls/admin/status")
    assert [s["provider_id"] for s in r.json()["data"]] == ["mock-mls"]


@pytest.mark.asyncio
async def test_trigger_defaults_to_incremental_without_body(client, coordinator, mock_providers):
    await _register(coordinator, mock_providers)

    r = await client.post("/mls/admin/sync/mock-mls")
    assert r.status_code == 202
    assert r.json()["data"]["sync_type"] == "incremental"
    await coordinator.wait_idle()


@pytest.mark.asyncio
async def test_second_trigger_conflicts(client, coordinator, mock_providers):
    await _register(coordinator, mock_providers, latency_s=0.2)

    first = await client.post("/mls/admin/sync/mock-mls", json={"sync_type": "full"})
    second = await client.post("/mls/admin/sync/mock-mls", json={"sync_type": "full"})
    await coordinator.wait_idle()

    assert first.status_code == 202
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "SYNC_IN_PROGRESS"


@pytest.mark.asyncio
async def test_not_found_and_validation_errors(client, coordinator, mock_providers):
    r = await client.post("/mls/admin/sync/unknown")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "PROVIDER_NOT_FOUND"

    await _register(coordinator, mock_providers)

    r = await client.post("/mls/admin/sync/mock-mls/cancel")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "NO_ACTIVE_SYNC"

    r = await client.patch("/mls/admin/providers/mock-mls/interval", json={"interval_hours": 30})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_INTERVAL"

    r = await client.post("/mls/admin/sync/mock-mls", json={"sync_type": "everything"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_provider_settings(client, coordinator, mock_providers):
    await _register(coordinator, mock_providers)

    r = await client.patch("/mls/admin/providers/mock-mls/interval", json={"interval_hours": 8})
    assert r.status_code == 200
    assert r.json()["data"]["sync_interval_hours"] == 8

    r = await client.patch("/mls/admin/providers/mock-mls/enabled", json={"enabled": False})
    assert r.json()["data"]["sync_enabled"] is False


@pytest.mark.asyncio
async def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret-key")

    r = await client.get("/mls/admin/status")
    assert r.status_code == 401

    r = await client.get("/mls/admin/status", headers={"X-API-Key": "s3cret-key"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": []}
