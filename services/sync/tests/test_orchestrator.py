import asyncio
from io import BytesIO

import httpx
import pytest
import respx
from PIL import Image

from affsync.networks.base import AdvertiserRecord, OfferRecord, ProductRecord
from affsync.services.image_cache import ImageCache
from affsync.services.keys import EntityKind
from affsync.services.orchestrator import SyncOrchestrator
from affsync.services.sync_state import SyncInProgressError, SyncStatus, UnknownNetworkError
from affsync.stores.objects import LocalObjectStore
from conftest import FakeAdapter


def _advertisers(*names):
    return [AdvertiserRecord(network="CJ", network_id=str(i), name=name) for i, name in enumerate(names, 1)]


def _orchestrator(store, image_cache, *adapters) -> SyncOrchestrator:
    return SyncOrchestrator(
        store,
        {adapter.network: adapter for adapter in adapters},
        image_cache=image_cache,
        use_redis_lock=False,
    )


async def test_repeat_runs_are_change_detected(store, image_cache):
    adapter = FakeAdapter("CJ", advertisers=_advertisers("Alpha", "Beta"))
    orchestrator = _orchestrator(store, image_cache, adapter)

    first = await orchestrator.run_network_sync("CJ")
    assert first["networks"]["CJ"]["advertisers"]["new"] == 2

    adapter.advertisers = _advertisers("Alpha", "Beta Renamed", "Gamma")
    second = await orchestrator.run_network_sync("cj")
    counters = second["networks"]["CJ"]["advertisers"]
    assert (counters["new"], counters["updated"], counters["skipped"]) == (1, 1, 1)

    third = await orchestrator.run_network_sync("CJ")
    counters = third["networks"]["CJ"]["advertisers"]
    assert (counters["checked"], counters["skipped"]) == (3, 3)
    assert third["networks"]["CJ"]["status"] == "complete"


async def test_full_pipeline_with_reconciliation(store, image_cache):
    adapter = FakeAdapter(
        "CJ",
        advertisers=_advertisers("Alpha"),
        offers=[
            OfferRecord(network="CJ", link="https://x.test/o1", advertiser_id="1", code="N/A", description="Use code SAVE20"),
            OfferRecord(network="CJ", link="https://x.test/o1", advertiser_id="1", code="N/A", description="Use code SAVE25"),
            OfferRecord(network="CJ", link="https://x.test/o2", advertiser_id="1", description="Free shipping"),
        ],
        product_pages=[
            [
                ProductRecord(network="CJ", name="Tent", link="https://x.test/p1", network_id="p1", advertiser_id="1",
                              price=300.0, sale_price=250.0, image_url="https://images.test/tent.jpg"),
                ProductRecord(network="CJ", name="Stove", link="https://x.test/p2", network_id="p2", advertiser_id="1",
                              price=50.0),
            ],
            [ProductRecord(network="CJ", name="No identity", link=None)],
        ],
    )
    orchestrator = _orchestrator(store, image_cache, adapter)

    result = await orchestrator.run_full_sync()

    cj = result["networks"]["CJ"]
    assert cj["offers"]["new"] == 2
    assert cj["products"]["new"] == 2
    assert result["reconcile"]["checked"] == 1

    advertiser = await store.get_advertiser("CJ", "1")
    assert advertiser["product_count"] == 2
    assert advertiser["sale_product_count"] == 1
    assert advertiser["offer_count"] == 2
    assert advertiser["has_promo_codes"] is True
    assert advertiser["has_sale_items"] is True

    offers = await store.list_advertiser_offers("CJ", "1")
    assert sorted(o["code"] or "" for o in offers) == ["", "SAVE25"]

    tent = await store.get(EntityKind.PRODUCTS, "CJ-p1")
    assert tent["storage_image_url"].startswith("/uploads/products/")
    assert "tent" in tent["search_keywords"]

    # Unchanged image is not fetched again; dropped offers are pruned.
    adapter.offers = adapter.offers[:1]
    calls_before = len(image_cache.calls)
    second = await orchestrator.run_full_sync()
    assert len(image_cache.calls) == calls_before
    assert second["networks"]["CJ"]["offers"]["pruned"] == 1
    assert second["networks"]["CJ"]["products"]["skipped"] == 2


async def test_failing_network_does_not_stop_others(store, image_cache):
    broken = FakeAdapter("AWIN", advertisers=[AdvertiserRecord(network="AWIN", network_id="9", name="Broken")])
    broken.offer_error = RuntimeError("promotions endpoint exploded")
    healthy = FakeAdapter(
        "CJ",
        advertisers=_advertisers("Alpha"),
        product_pages=[[ProductRecord(network="CJ", name="Tent", link="https://x.test/p1", network_id="p1", advertiser_id="1")]],
    )
    orchestrator = _orchestrator(store, image_cache, broken, healthy)

    result = await orchestrator.run_full_sync()

    assert result["networks"]["AWIN"]["status"] == "error"
    assert result["networks"]["AWIN"]["error"] == "promotions endpoint exploded"
    assert result["networks"]["AWIN"]["advertisers"]["new"] == 1
    assert result["networks"]["CJ"]["status"] == "complete"
    assert result["networks"]["CJ"]["products"]["new"] == 1

    history = await orchestrator.get_history("all", 10)
    statuses = {log["network"]: log["stats"]["status"] for log in history}
    assert statuses == {"AWIN": "error", "CJ": "complete"}

    status = orchestrator.get_status()
    assert status["is_running"] is False


async def test_concurrent_runs_are_rejected(store, image_cache):
    release = asyncio.Event()

    class SlowAdapter(FakeAdapter):
        async def fetch_advertisers(self):
            await release.wait()
            return await super().fetch_advertisers()

    orchestrator = _orchestrator(store, image_cache, SlowAdapter("CJ", advertisers=_advertisers("Alpha")))
    running = asyncio.create_task(orchestrator.run_network_sync("CJ"))
    while not orchestrator.state.is_running:
        await asyncio.sleep(0)

    with pytest.raises(SyncInProgressError):
        await orchestrator.run_full_sync()
    with pytest.raises(SyncInProgressError):
        await orchestrator.reconcile_all()
    assert orchestrator.get_status()["networks"]["CJ"]["status"] == "running"

    release.set()
    result = await running
    assert result["networks"]["CJ"]["status"] == "complete"
    assert orchestrator.state.get("CJ").status == SyncStatus.COMPLETE
    assert not orchestrator.state.is_running


async def test_unknown_network(store, image_cache):
    orchestrator = _orchestrator(store, image_cache, FakeAdapter("CJ"))
    with pytest.raises(UnknownNetworkError):
        await orchestrator.run_network_sync("Impact")
    assert orchestrator.resolve_network("cj") == "CJ"


async def test_empty_pass_keeps_stored_records(store, image_cache):
    adapter = FakeAdapter("CJ", advertisers=_advertisers("Alpha"))
    orchestrator = _orchestrator(store, image_cache, adapter)
    await orchestrator.run_network_sync("CJ")

    adapter.advertisers = []
    result = await orchestrator.run_network_sync("CJ")

    assert result["networks"]["CJ"]["advertisers"]["pruned"] == 0
    assert await store.get_advertiser("CJ", "1") is not None


async def test_redis_lock_held_elsewhere_rejects_run(store, image_cache, monkeypatch):
    from affsync.services import orchestrator as orchestrator_module

    async def held(key, ttl):
        return None

    monkeypatch.setattr(orchestrator_module, "acquire_lock", held)
    orchestrator = SyncOrchestrator(store, {"CJ": FakeAdapter("CJ")}, image_cache=image_cache)

    with pytest.raises(SyncInProgressError):
        await orchestrator.run_network_sync("CJ")
    assert not orchestrator.state.is_running


async def test_missing_redis_falls_back_to_in_process_guard(store, image_cache):
    # redis is never initialized in tests, so acquire_lock raises RuntimeError
    orchestrator = SyncOrchestrator(store, {"CJ": FakeAdapter("CJ", advertisers=_advertisers("Alpha"))}, image_cache=image_cache)

    result = await orchestrator.run_network_sync("CJ")

    assert result["networks"]["CJ"]["status"] == "complete"


async def test_oversized_logo_does_not_fail_the_network(store, tmp_path, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    buffer = BytesIO()
    Image.new("RGB", (64, 64)).save(buffer, format="PNG")
    logo = "https://images.test/huge.png"

    advertisers = _advertisers("Alpha", "Beta")
    advertisers[0].logo_url = logo
    adapter = FakeAdapter("CJ", advertisers=advertisers)
    image_cache = ImageCache(
        LocalObjectStore(tmp_path / "uploads", "/uploads"),
        fallback_store=LocalObjectStore(tmp_path / "fallback", "/fallback"),
    )
    orchestrator = _orchestrator(store, image_cache, adapter)

    async with respx.mock(assert_all_called=True) as router:
        router.get(logo).mock(
            return_value=httpx.Response(200, content=buffer.getvalue(), headers={"content-type": "image/png"})
        )
        result = await orchestrator.run_network_sync("CJ")

    assert result["networks"]["CJ"]["status"] == "complete"
    assert result["networks"]["CJ"]["advertisers"]["new"] == 2
    alpha = await store.get_advertiser("CJ", "1")
    assert alpha["logo_url"] == logo
    assert not alpha.get("storage_logo_url")
    await image_cache.close()


async def test_offer_without_usable_identity_is_skipped(store, image_cache):
    adapter = FakeAdapter(
        "CJ",
        advertisers=_advertisers("Alpha"),
        offers=[
            OfferRecord(network="CJ", network_id="   ", link=None, advertiser_id="1", description="Blank id"),
            OfferRecord(network="CJ", link="https://x.test/o1", advertiser_id="1", description="Free shipping"),
        ],
    )
    orchestrator = _orchestrator(store, image_cache, adapter)

    result = await orchestrator.run_network_sync("CJ")

    cj = result["networks"]["CJ"]
    assert cj["status"] == "complete"
    assert cj["offers"]["new"] == 1
    assert len(await store.list_advertiser_offers("CJ", "1")) == 1
