"""Tests for the admin API (sync triggers, status, history, overrides)."""

import pytest
from httpx import ASGITransport, AsyncClient

from affsync.main import app
from affsync.networks.base import AdvertiserRecord
from affsync.services.orchestrator import SyncOrchestrator, get_orchestrator
from conftest import FakeAdapter


@pytest.fixture
def orchestrator(store, image_cache) -> SyncOrchestrator:
    adapter = FakeAdapter(
        "CJ",
        advertisers=[AdvertiserRecord(network="CJ", network_id="1", name="Alpha", categories=["Outdoor"])],
    )
    return SyncOrchestrator(store, {"CJ": adapter}, image_cache=image_cache, use_redis_lock=False)


@pytest.fixture
async def client(orchestrator):
    """Test client with the orchestrator dependency overridden."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_network_sync_and_status(client: AsyncClient):
    response = await client.post("/v1/admin/sync/cj")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["networks"]["CJ"]["advertisers"]["new"] == 1
    assert data["networks"]["CJ"]["status"] == "complete"

    status = (await client.get("/v1/admin/sync/status")).json()
    assert status["is_running"] is False
    assert status["networks"]["CJ"]["status"] == "complete"


@pytest.mark.asyncio
async def test_unknown_network_is_404(client: AsyncClient):
    response = await client.post("/v1/admin/sync/impact")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_sync_while_running_is_409(client: AsyncClient, orchestrator: SyncOrchestrator):
    async with orchestrator.state.single_flight("full"):
        response = await client.post("/v1/admin/sync")
        assert response.status_code == 409
        response = await client.post("/v1/admin/reconcile")
        assert response.status_code == 409


@pytest.mark.asyncio
async def test_full_sync_history_and_reconcile(client: AsyncClient):
    assert (await client.post("/v1/admin/sync")).status_code == 200

    history = (await client.get("/v1/admin/sync/history", params={"network": "CJ", "limit": 5})).json()
    assert history["network"] == "CJ"
    assert len(history["logs"]) == 1
    assert history["logs"][0]["stats"]["advertisers"]["new"] == 1

    reconcile = (await client.post("/v1/admin/reconcile")).json()
    assert reconcile["success"] is True
    assert reconcile["stats"]["checked"] == 1
    assert reconcile["stats"]["skipped"] == 1


@pytest.mark.asyncio
async def test_global_settings_roundtrip(client: AsyncClient):
    response = await client.put("/v1/admin/settings", json={"brand_lookup_quota": 10})
    assert response.status_code == 200
    assert (await client.get("/v1/admin/settings")).json()["brand_lookup_quota"] == 10


@pytest.mark.asyncio
async def test_manual_overrides_survive_sync(client: AsyncClient):
    await client.post("/v1/admin/sync/CJ")

    upload = await client.post(
        "/v1/admin/advertisers/CJ/1/logo",
        files={"file": ("logo.png", b"\x89PNG fake", "image/png")},
    )
    assert upload.status_code == 200
    logo_url = upload.json()["url"]
    assert logo_url.startswith("/uploads/manual_uploads/")

    categories = await client.put("/v1/admin/advertisers/CJ/1/categories", json={"categories": ["Curated"]})
    assert categories.json()["advertiser"]["is_manual_category"] is True

    description = await client.put("/v1/admin/advertisers/CJ/1/description", json={"description": "Hand written"})
    assert description.json()["advertiser"]["manual_description"] == "Hand written"

    await client.post("/v1/admin/sync/CJ")

    status = (await client.get("/v1/admin/sync/status")).json()
    assert status["networks"]["CJ"]["advertisers"]["skipped"] == 1

    reset = await client.delete("/v1/admin/advertisers/CJ/1/categories")
    assert reset.json()["advertiser"]["is_manual_category"] is False

    logo_reset = await client.delete("/v1/admin/advertisers/CJ/1/logo")
    advertiser = logo_reset.json()["advertiser"]
    assert advertiser["logo_url"] is None
    assert advertiser["is_manual_logo"] is False


@pytest.mark.asyncio
async def test_overrides_for_missing_advertiser_are_404(client: AsyncClient):
    response = await client.put("/v1/admin/advertisers/CJ/999/home-link", json={"home_link": "https://x.test"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_non_image_upload_is_rejected(client: AsyncClient):
    await client.post("/v1/admin/sync/CJ")
    response = await client.post(
        "/v1/admin/advertisers/CJ/1/logo",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unhandled_errors_use_error_envelope(orchestrator: SyncOrchestrator, monkeypatch: pytest.MonkeyPatch):
    def broken_status():
        raise RuntimeError("state unavailable")

    monkeypatch.setattr(orchestrator, "get_status", broken_status)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
        ) as ac:
            response = await ac.get("/v1/admin/sync/status")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"
