import gzip
import json

import httpx
import pytest
import respx

from affsync.networks.awin import AwinAdapter
from affsync.networks.base import AdvertiserRecord, SyncContext

BASE = "https://api.awin.com"


@pytest.fixture
def adapter() -> AwinAdapter:
    return AwinAdapter("token", "998877", feed_delay=0)


def _jsonl(*rows) -> bytes:
    return "\n".join(row if isinstance(row, str) else json.dumps(row) for row in rows).encode()


def test_feed_locale():
    assert AwinAdapter.feed_locale("GB") == "en_GB"
    assert AwinAdapter.feed_locale("uk") == "en_GB"
    assert AwinAdapter.feed_locale("US") == "en_US"
    assert AwinAdapter.feed_locale(None) == "en_US"


async def test_unconfigured_adapter_returns_nothing():
    adapter = AwinAdapter("", "")
    assert await adapter.fetch_advertisers() == []
    assert await adapter.fetch_offers(SyncContext()) == []
    assert await adapter.fetch_products(SyncContext()) == []


async def test_fetch_advertisers(adapter):
    programmes = [
        {
            "id": 1234,
            "name": "Brit Boots",
            "displayUrl": "https://britboots.test",
            "logoUrl": "https://ui.awin.com/logos/1234.png",
            "primaryRegion": {"name": "United Kingdom", "countryCode": "GB"},
            "primarySector": "Fashion",
            "status": "Active",
        }
    ]
    async with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{BASE}/publishers/998877/programmes").mock(
            return_value=httpx.Response(200, json=programmes)
        )
        records = await adapter.fetch_advertisers()

    assert route.calls.last.request.url.params["relationship"] == "joined"
    assert route.calls.last.request.headers["Authorization"] == "Bearer token"
    record = records[0]
    assert record.network_id == "1234"
    assert record.country == "GB"
    assert record.categories == ["Fashion"]
    assert record.logo_url == "https://ui.awin.com/logos/1234.png"
    await adapter.close()


async def test_fetch_offers_maps_vouchers_and_promotions(adapter):
    promotions = {
        "data": [
            {
                "promotionId": 501,
                "type": "voucher",
                "title": "Winter sale",
                "description": "10% off boots",
                "voucher": {"code": "WINTER10"},
                "urlTracking": "https://www.awin1.com/cread.php?p=501",
                "startDate": "2025-01-01T00:00:00",
                "endDate": "2025-02-01T00:00:00",
                "advertiser": {"id": 1234, "name": "Brit Boots"},
            },
            {
                "promotionId": 502,
                "type": "promotion",
                "title": "Free delivery",
                "voucher": {"code": "SHOULD-NOT-USE"},
                "url": "https://britboots.test/delivery",
                "advertiser": {"id": 1234},
            },
        ]
    }
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(f"{BASE}/publisher/998877/promotions").mock(
            return_value=httpx.Response(200, json=promotions)
        )
        offers = await adapter.fetch_offers(SyncContext())

    body = json.loads(route.calls.last.request.content)
    assert body["filters"]["membership"] == "joined"

    voucher, promotion = offers
    assert voucher.network_id == "501"
    assert voucher.code == "WINTER10"
    assert voucher.description == "Winter sale - 10% off boots"
    assert voucher.link == "https://www.awin1.com/cread.php?p=501"
    assert voucher.advertiser_id == "1234"

    assert promotion.code is None
    assert promotion.description == "Free delivery"
    assert promotion.link == "https://britboots.test/delivery"
    await adapter.close()


async def test_gzipped_feed_skips_bad_lines(adapter):
    feed = gzip.compress(
        _jsonl(
            {"id": "A1", "title": "Chelsea Boot", "price": "95.00 GBP", "sale_price": "80.00 GBP", "link": "https://x.test/a1"},
            "{not json",
            {"error": "feed unavailable"},
            {"id": "A2", "title": "Wellington", "price": "40.00", "currency": "GBP", "link": "https://x.test/a2"},
        )
    )
    context = SyncContext(
        advertisers=[AdvertiserRecord(network="AWIN", network_id="1234", name="Brit Boots", country="GB")]
    )
    async with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE}/publishers/998877/awinfeeds/download/1234-retail-en_GB.jsonl").mock(
            return_value=httpx.Response(200, content=feed)
        )
        pages = [page async for page in adapter.iter_product_pages(context)]

    assert len(pages) == 1
    boot, wellington = pages[0]
    assert boot.network_id == "A1"
    assert boot.price == 95.0
    assert boot.sale_price == 80.0
    assert boot.currency == "GBP"
    assert boot.advertiser_id == "1234"
    assert boot.advertiser_name == "Brit Boots"
    assert wellington.currency == "GBP"
    await adapter.close()


async def test_missing_feed_is_skipped(adapter):
    context = SyncContext(
        advertisers=[
            AdvertiserRecord(network="AWIN", network_id="1", country="US"),
            AdvertiserRecord(network="AWIN", network_id="2", country="US"),
        ]
    )
    async with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE}/publishers/998877/awinfeeds/download/1-retail-en_US.jsonl").mock(
            return_value=httpx.Response(404)
        )
        router.get(f"{BASE}/publishers/998877/awinfeeds/download/2-retail-en_US.jsonl").mock(
            return_value=httpx.Response(200, content=_jsonl({"id": "B1", "title": "Hat", "price": "10.00 USD"}))
        )
        products = await adapter.fetch_products(context)

    assert [p.network_id for p in products] == ["B1"]
    await adapter.close()
