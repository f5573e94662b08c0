"""Advertiser candidate building: logo, category and home-link policy.

A sync pass owns only the network-sourced profile of an advertiser. Every
other field (derived counters, operator overrides, sticky flags) is carried
forward from the stored document so the upsert compares like with like.

Logo priority:
1. is_manual_logo on the stored document: keep logo_url/storage_logo_url
2. Network logo (else the stored one): cache it when it changed or was never
   cached; a changed logo that fails to cache clears the cached copy
3. Still nothing cached: brand lookup by domain (quota-limited per run)

Categories:
- is_manual_category: stored categories win
- Non-empty network categories are authoritative
- Empty network categories never erase stored ones
"""

import logging
from typing import Any

from affsync.networks.base import AdvertiserRecord
from affsync.services.brand_lookup import BrandLookup
from affsync.services.image_cache import ImageCache

logger = logging.getLogger("uvicorn.error")

LOGO_FOLDER = "advertisers"

# Written by reconciliation, never by the advertiser pass.
DERIVED_FIELDS = (
    "product_count",
    "offer_count",
    "sale_product_count",
    "has_promo_codes",
    "has_sale_items",
)

# Written only through operator overrides.
OPERATOR_FIELDS = (
    "manual_description",
    "manual_home_url",
    "is_manual_logo",
    "is_manual_category",
)


def resolve_categories(record_categories: list[str] | None, existing: dict[str, Any] | None) -> list[str]:
    existing = existing or {}
    stored = existing.get("categories") or []
    if existing.get("is_manual_category"):
        return list(stored)
    fresh = [c for c in (record_categories or []) if c]
    if fresh:
        return fresh
    return list(stored)


async def resolve_logo(
    record: AdvertiserRecord,
    existing: dict[str, Any] | None,
    image_cache: ImageCache,
    brand_lookup: BrandLookup | None = None,
) -> tuple[str | None, str | None]:
    """Return (logo_url, storage_logo_url) for an advertiser candidate."""
    existing = existing or {}
    stored_logo = existing.get("logo_url")
    stored_cached = existing.get("storage_logo_url")

    if existing.get("is_manual_logo"):
        return stored_logo, stored_cached

    logo_url = record.logo_url or stored_logo
    storage_logo_url = stored_cached

    if logo_url and (logo_url != stored_logo or not stored_cached):
        cached = await image_cache.cache(logo_url, LOGO_FOLDER)
        if cached:
            storage_logo_url = cached
        elif logo_url != stored_logo:
            storage_logo_url = None

    if not storage_logo_url and brand_lookup is not None and record.url:
        found = await brand_lookup.find_logo(record.url)
        if found:
            cached = await image_cache.cache(found, LOGO_FOLDER)
            if cached:
                logo_url, storage_logo_url = found, cached

    return logo_url, storage_logo_url


async def build_advertiser_candidate(
    record: AdvertiserRecord,
    existing: dict[str, Any] | None,
    *,
    image_cache: ImageCache,
    brand_lookup: BrandLookup | None = None,
    home_link: str | None = None,
) -> dict[str, Any]:
    """Build the full advertiser document to upsert for one network record."""
    existing = existing or {}
    logo_url, storage_logo_url = await resolve_logo(record, existing, image_cache, brand_lookup)

    candidate: dict[str, Any] = {
        "network": record.network,
        "network_id": str(record.network_id),
        "name": record.name,
        "status": record.status,
        "url": record.url,
        "country": record.country,
        "description": record.description or existing.get("description"),
        "categories": resolve_categories(record.categories, existing),
        "logo_url": logo_url,
        "storage_logo_url": storage_logo_url,
        "affiliate_home_url": home_link or existing.get("affiliate_home_url"),
        "raw_data": record.raw_data or None,
        "network_updated_at": record.network_updated_at,
    }
    for name in DERIVED_FIELDS + OPERATOR_FIELDS:
        candidate[name] = existing.get(name)
    return candidate
