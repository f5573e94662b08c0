"""Operator overrides for advertisers.

The admin tools never write advertiser rows directly: every override goes
through RecordStore.upsert(partial=True) like the sync passes, and sets or
clears the sticky flags the advertiser pass respects.
"""

import logging
from typing import Any

from affsync.services.image_cache import ImageCache
from affsync.services.keys import EntityKind
from affsync.services.record_store import RecordStore

logger = logging.getLogger("uvicorn.error")

MANUAL_LOGO_FOLDER = "manual_uploads"


class AdvertiserNotFoundError(LookupError):
    pass


async def _require(store: RecordStore, network: str, network_id: str) -> dict[str, Any]:
    existing = await store.get_advertiser(network, network_id)
    if existing is None:
        raise AdvertiserNotFoundError(f"Advertiser not found: {network}-{network_id}")
    return existing


async def _write(store: RecordStore, existing: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    await store.upsert(
        EntityKind.ADVERTISERS,
        {"network": existing["network"], "network_id": existing["network_id"], **fields},
        existing,
        partial=True,
    )
    return {**existing, **fields}


async def upload_logo(
    store: RecordStore,
    image_cache: ImageCache,
    network: str,
    network_id: str,
    data: bytes,
    content_type: str,
) -> str:
    """Store an uploaded logo and pin it (is_manual_logo) against sync overwrites."""
    existing = await _require(store, network, network_id)
    url = await image_cache.store_bytes(data, content_type, MANUAL_LOGO_FOLDER)
    await _write(store, existing, {"logo_url": url, "storage_logo_url": url, "is_manual_logo": True})
    logger.info(f"[operator] logo uploaded for {network}-{network_id}: {url}")
    return url


async def reset_logo(store: RecordStore, network: str, network_id: str) -> dict[str, Any]:
    """Drop a manual logo; the next sync pass resolves the logo again."""
    existing = await _require(store, network, network_id)
    logger.info(f"[operator] logo reset for {network}-{network_id}")
    return await _write(store, existing, {"logo_url": None, "storage_logo_url": None, "is_manual_logo": False})


async def set_manual_description(
    store: RecordStore,
    network: str,
    network_id: str,
    description: str | None,
) -> dict[str, Any]:
    existing = await _require(store, network, network_id)
    return await _write(store, existing, {"manual_description": (description or "").strip() or None})


async def set_manual_categories(
    store: RecordStore,
    network: str,
    network_id: str,
    categories: list[str],
) -> dict[str, Any]:
    """Replace the categories and pin them (is_manual_category)."""
    existing = await _require(store, network, network_id)
    cleaned = [c.strip() for c in categories if c and c.strip()]
    return await _write(store, existing, {"categories": cleaned, "is_manual_category": True})


async def clear_manual_categories(store: RecordStore, network: str, network_id: str) -> dict[str, Any]:
    """Unpin categories; the next pass with non-empty network categories replaces them."""
    existing = await _require(store, network, network_id)
    return await _write(store, existing, {"is_manual_category": False})


async def set_home_link(
    store: RecordStore,
    network: str,
    network_id: str,
    home_link: str | None,
) -> dict[str, Any]:
    existing = await _require(store, network, network_id)
    return await _write(store, existing, {"manual_home_url": (home_link or "").strip() or None})
