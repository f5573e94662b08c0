"""Reconciliation: recompute advertiser counters from their children.

Passes count incrementally, and records drift (pruned products, expired
offers, rows imported with numeric advertiser ids). Reconciliation rebuilds
the denormalized fields on each advertiser from the current products and
offers:
- product_count / sale_product_count / has_sale_items
- offer_count (non-expired offers only)
- has_promo_codes (a non-expired offer carries a real code)

Writes go through RecordStore.upsert(partial=True), so an advertiser whose
counters are already right costs no write.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from affsync.services.keys import EntityKind, KeyDerivationError
from affsync.services.promo_codes import effective_code
from affsync.services.record_store import RecordStore, UpsertResult, UpsertStatus
from affsync.settings import get_settings
from affsync.utils.dates import as_utc, parse_datetime, utcnow

logger = logging.getLogger("uvicorn.error")


@dataclass
class ReconcileStats:
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def is_expired(offer: dict[str, Any], now: datetime | None = None) -> bool:
    """An offer is expired when it has an end date in the past."""
    end_date = offer.get("end_date")
    if end_date is None:
        return False
    end = as_utc(end_date) if isinstance(end_date, datetime) else parse_datetime(end_date)
    if end is None:
        return False
    return end < (now or utcnow())


def summarize_offers(offers: list[dict[str, Any]], now: datetime | None = None) -> tuple[int, bool]:
    """(active offer count, any active offer with a real code)."""
    now = now or utcnow()
    active = [o for o in offers if not is_expired(o, now)]
    has_codes = any(effective_code(o.get("code"), o.get("description")) for o in active)
    return len(active), has_codes


async def recalculate_counts(store: RecordStore, network: str, advertiser_id: str) -> UpsertResult:
    """Recompute and write the derived fields of one advertiser."""
    advertiser_id = str(advertiser_id)
    product_count, sale_product_count = await store.count_products(network, advertiser_id)
    offers = await store.list_advertiser_offers(network, advertiser_id)
    offer_count, has_promo_codes = summarize_offers(offers)

    return await store.upsert(
        EntityKind.ADVERTISERS,
        {
            "network": network,
            "network_id": advertiser_id,
            "product_count": product_count,
            "offer_count": offer_count,
            "sale_product_count": sale_product_count,
            "has_promo_codes": has_promo_codes,
            "has_sale_items": sale_product_count > 0,
        },
        partial=True,
    )


async def reconcile_all(
    store: RecordStore,
    network: str | None = None,
    chunk_size: int | None = None,
) -> ReconcileStats:
    """Reconcile every stored advertiser (optionally one network).

    Advertisers are processed in fixed-size chunks; a chunk completes before
    the next starts. A failing advertiser is logged and counted, never fatal.
    """
    chunk_size = chunk_size or get_settings().reconcile_chunk_size
    advertisers = await store.list_advertiser_ids(network)
    stats = ReconcileStats()
    logger.info(f"[reconcile] {len(advertisers)} advertisers ({network or 'all networks'})")

    async def reconcile_one(advertiser_network: str, advertiser_id: str) -> None:
        try:
            result = await recalculate_counts(store, advertiser_network, advertiser_id)
        except (SQLAlchemyError, KeyDerivationError, RuntimeError, ValueError) as e:
            stats.errors += 1
            logger.error(f"[reconcile] {advertiser_network}-{advertiser_id} failed: {e}")
            return
        if result.status == UpsertStatus.SKIPPED:
            stats.skipped += 1
        else:
            stats.updated += 1

    for start in range(0, len(advertisers), chunk_size):
        chunk = advertisers[start : start + chunk_size]
        await asyncio.gather(*(reconcile_one(n, a) for n, a in chunk))
        stats.checked += len(chunk)

    logger.info(
        f"[reconcile] done: checked={stats.checked} updated={stats.updated} "
        f"skipped={stats.skipped} errors={stats.errors}"
    )
    return stats
