import httpx
import respx

from affsync.networks.base import AdvertiserRecord
from affsync.services.advertiser_policy import (
    build_advertiser_candidate,
    resolve_categories,
    resolve_logo,
)
from affsync.services.brand_lookup import BrandLookup, extract_domain


def _record(**overrides) -> AdvertiserRecord:
    values = {"network": "AWIN", "network_id": "77", "name": "Shop", "url": None, "logo_url": None}
    values.update(overrides)
    return AdvertiserRecord(**values)


def test_categories_non_regression():
    existing = {"categories": ["Fashion"]}
    assert resolve_categories([], existing) == ["Fashion"]
    assert resolve_categories(["Shoes"], existing) == ["Shoes"]
    assert resolve_categories(None, None) == []


def test_manual_categories_win():
    existing = {"categories": ["Curated"], "is_manual_category": True}
    assert resolve_categories(["Network"], existing) == ["Curated"]


async def test_manual_logo_is_sticky(image_cache):
    existing = {"logo_url": "/uploads/manual_uploads/x.png", "storage_logo_url": "/uploads/manual_uploads/x.png", "is_manual_logo": True}
    logo, stored = await resolve_logo(_record(logo_url="https://cdn.test/new.png"), existing, image_cache)
    assert (logo, stored) == (existing["logo_url"], existing["storage_logo_url"])
    assert image_cache.calls == []


async def test_unchanged_cached_logo_is_not_refetched(image_cache):
    existing = {"logo_url": "https://cdn.test/a.png", "storage_logo_url": "/uploads/advertisers/a.webp"}
    logo, stored = await resolve_logo(_record(logo_url="https://cdn.test/a.png"), existing, image_cache)
    assert stored == "/uploads/advertisers/a.webp"
    assert image_cache.calls == []


async def test_changed_logo_is_cached(image_cache):
    existing = {"logo_url": "https://cdn.test/a.png", "storage_logo_url": "/uploads/advertisers/a.webp"}
    logo, stored = await resolve_logo(_record(logo_url="https://cdn.test/b.png"), existing, image_cache)
    assert logo == "https://cdn.test/b.png"
    assert stored.startswith("/uploads/advertisers/")
    assert stored != existing["storage_logo_url"]
    assert image_cache.calls == [("https://cdn.test/b.png", "advertisers")]


async def test_changed_logo_that_fails_clears_cached_copy():
    from conftest import FakeImageCache

    existing = {"logo_url": "https://cdn.test/a.png", "storage_logo_url": "/uploads/advertisers/a.webp"}
    logo, stored = await resolve_logo(_record(logo_url="https://cdn.test/b.png"), existing, FakeImageCache(fail=True))
    assert logo == "https://cdn.test/b.png"
    assert stored is None


async def test_brand_lookup_fallback_respects_quota(image_cache):
    lookup = BrandLookup(quota=1)
    async with respx.mock() as router:
        route = router.head(url__startswith="https://cdn.brandfetch.io/").mock(return_value=httpx.Response(200))
        first = await resolve_logo(_record(url="https://www.shop-one.test"), None, image_cache, lookup)
        second = await resolve_logo(_record(url="https://shop-two.test"), None, image_cache, lookup)

    assert first[0].startswith("https://cdn.brandfetch.io/shop-one.test")
    assert first[1] is not None
    assert second == (None, None)
    assert route.call_count == 1
    assert lookup.remaining == 0
    await lookup.close()


async def test_brand_lookup_miss(image_cache):
    lookup = BrandLookup(quota=5)
    async with respx.mock() as router:
        router.head(url__startswith="https://cdn.brandfetch.io/").mock(return_value=httpx.Response(404))
        assert await lookup.find_logo("https://unknown.test/about") is None
    assert lookup.used == 1
    await lookup.close()


def test_extract_domain():
    assert extract_domain("https://www.example.com/path") == "example.com"
    assert extract_domain("shop.example.co.uk") == "shop.example.co.uk"
    assert extract_domain("") is None


async def test_candidate_carries_derived_and_operator_fields(image_cache):
    existing = {
        "description": "Stored description",
        "manual_description": "Operator text",
        "product_count": 12,
        "has_promo_codes": True,
        "affiliate_home_url": "https://track.test/home",
        "categories": ["Fashion"],
    }
    candidate = await build_advertiser_candidate(
        _record(description=None, categories=[]),
        existing,
        image_cache=image_cache,
    )
    assert candidate["description"] == "Stored description"
    assert candidate["manual_description"] == "Operator text"
    assert candidate["product_count"] == 12
    assert candidate["has_promo_codes"] is True
    assert candidate["affiliate_home_url"] == "https://track.test/home"
    assert candidate["categories"] == ["Fashion"]
    assert candidate["raw_data"] is None


async def test_candidate_uses_fresh_home_link(image_cache):
    candidate = await build_advertiser_candidate(
        _record(),
        {"affiliate_home_url": "https://track.test/old"},
        image_cache=image_cache,
        home_link="https://track.test/new",
    )
    assert candidate["affiliate_home_url"] == "https://track.test/new"
