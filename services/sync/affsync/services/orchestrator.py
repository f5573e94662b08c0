"""Sync orchestrator.

Sequences the per-network passes and owns the run state.

Full sync:
1. Advertisers for every network (so offers/products can resolve them)
2. Offers for every network
3. Products for every network
4. Global reconciliation of advertiser counters

Single-network sync runs the same three passes for one network, then
reconciles that network's advertisers.

Each pass: fetch -> build candidates -> upsert (change-detected) -> prune.

Error policy:
- Adapter/unit errors are handled inside the adapters ("no data")
- Anything that escapes a pass (store writes included) marks that network
  as error with the message; the remaining networks continue
- A SyncLog entry is appended for every network that ran, with its status
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from affsync.networks import build_adapters
from affsync.networks.base import NetworkAdapter, SyncContext
from affsync.services.advertiser_policy import build_advertiser_candidate
from affsync.services.brand_lookup import BrandLookup
from affsync.services.image_cache import ImageCache
from affsync.services.keys import EntityKind, KeyDerivationError, advertiser_key, derive_key
from affsync.services.keywords import build_search_keywords
from affsync.services.promo_codes import effective_code
from affsync.services.pruning import prune
from affsync.services.reconciliation import ReconcileStats, reconcile_all
from affsync.services.record_store import RecordStore
from affsync.services.sync_state import (
    SyncInProgressError,
    SyncStateContainer,
    SyncStatus,
    UnknownNetworkError,
)
from affsync.settings import get_settings
from affsync.stores.redis import acquire_lock, release_lock

logger = logging.getLogger("uvicorn.error")

SYNC_LOCK_KEY = "affiliate_sync"
PRODUCT_IMAGE_FOLDER = "products"


class SyncOrchestrator:
    """Runs sync passes and exposes the sync triggers."""

    def __init__(
        self,
        store: RecordStore | None = None,
        adapters: dict[str, NetworkAdapter] | None = None,
        *,
        image_cache: ImageCache | None = None,
        state: SyncStateContainer | None = None,
        use_redis_lock: bool = True,
    ):
        self.store = store or RecordStore()
        self.adapters = adapters if adapters is not None else build_adapters()
        self.image_cache = image_cache or ImageCache()
        self.state = state or SyncStateContainer(self.adapters.keys())
        self.use_redis_lock = use_redis_lock

    # ============================================================
    # Triggers
    # ============================================================

    async def run_full_sync(self) -> dict[str, Any]:
        """Sync every network in three phases, then reconcile all advertisers.

        Raises:
            SyncInProgressError: If another run is active.
        """
        async with self._guard("full"):
            logger.info(f"[sync] full sync started for {', '.join(self.adapters)}")
            brand_lookup = BrandLookup()
            contexts: dict[str, SyncContext] = {}
            timers: dict[str, float] = {}
            try:
                for network in self.adapters:
                    self.state.start(network)
                    contexts[network] = SyncContext()
                    timers[network] = time.monotonic()

                for network, adapter in self.adapters.items():
                    advertiser_pass = self._advertiser_pass(network, adapter, contexts[network], brand_lookup)
                    await self._run_pass(network, advertiser_pass)
                for network, adapter in self.adapters.items():
                    await self._run_pass(network, self._offer_pass(network, adapter, contexts[network]))
                for network, adapter in self.adapters.items():
                    await self._run_pass(network, self._product_pass(network, adapter, contexts[network]))
                    await self._finish(network, timers[network])

                reconcile = await self._reconcile(None)
            finally:
                await brand_lookup.close()

            summary = {
                "networks": {network: self.state.get(network).to_dict() for network in self.adapters},
                "reconcile": reconcile.to_dict() if reconcile else None,
            }
            logger.info("[sync] full sync finished")
            return summary

    async def run_network_sync(self, network: str) -> dict[str, Any]:
        """Sync one network (advertisers, offers, products), then reconcile it.

        Raises:
            UnknownNetworkError: If no adapter is registered for the network.
            SyncInProgressError: If another run is active.
        """
        network = self.resolve_network(network)
        adapter = self.adapters[network]

        async with self._guard(network):
            logger.info(f"[sync] {network} sync started")
            brand_lookup = BrandLookup()
            context = SyncContext()
            started = time.monotonic()
            self.state.start(network)
            try:
                await self._run_pass(network, self._advertiser_pass(network, adapter, context, brand_lookup))
                await self._run_pass(network, self._offer_pass(network, adapter, context))
                await self._run_pass(network, self._product_pass(network, adapter, context))
                await self._finish(network, started)
                reconcile = await self._reconcile(network)
            finally:
                await brand_lookup.close()

            return {
                "networks": {network: self.state.get(network).to_dict()},
                "reconcile": reconcile.to_dict() if reconcile else None,
            }

    async def reconcile_all(self) -> dict[str, int]:
        """Recompute counters for every stored advertiser.

        Raises:
            SyncInProgressError: If another run is active.
        """
        async with self._guard("reconcile"):
            stats = await reconcile_all(self.store)
            return stats.to_dict()

    def get_status(self) -> dict[str, Any]:
        return self.state.snapshot()

    async def get_history(self, network: str | None = None, limit: int = 5) -> list[dict[str, Any]]:
        if network and network != "all":
            network = self.resolve_network(network)
        return await self.store.get_sync_history(network, limit)

    def resolve_network(self, network: str) -> str:
        """Canonical network name (case-insensitive lookup)."""
        for name in self.adapters:
            if name.lower() == (network or "").strip().lower():
                return name
        raise UnknownNetworkError(f"Unknown network: {network}. Supported: {list(self.adapters)}")

    async def close(self) -> None:
        for adapter in self.adapters.values():
            await adapter.close()
        await self.image_cache.close()

    # ============================================================
    # Guard / bookkeeping
    # ============================================================

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        """In-process single flight plus a best-effort cross-process redis lock."""
        async with self.state.single_flight(operation):
            token: str | None = None
            if self.use_redis_lock:
                try:
                    token = await acquire_lock(SYNC_LOCK_KEY, get_settings().sync_lock_ttl)
                except (RuntimeError, RedisError) as e:
                    logger.debug(f"[sync] redis lock unavailable, in-process guard only: {e}")
                else:
                    if token is None:
                        raise SyncInProgressError("A sync is already running in another process")
            try:
                yield
            finally:
                if token is not None:
                    try:
                        await release_lock(SYNC_LOCK_KEY, token)
                    except (RuntimeError, RedisError) as e:
                        logger.warning(f"[sync] failed to release redis lock: {e}")

    async def _run_pass(self, network: str, coro) -> None:
        """Await one pass; an escaping exception marks the network as error."""
        if self.state.get(network).status == SyncStatus.ERROR:
            coro.close()
            return
        try:
            await coro
        except Exception as e:
            logger.exception(f"[sync] {network} failed")
            self.state.fail(network, str(e) or e.__class__.__name__)

    async def _finish(self, network: str, started: float) -> None:
        """Resolve the network's state and append its SyncLog entry."""
        state = self.state.get(network)
        if state.status == SyncStatus.RUNNING:
            state = self.state.complete(network)
        duration = round(time.monotonic() - started, 3)
        stats = {**state.counters(), "status": state.status.value, "error": state.error}
        try:
            await self.store.append_sync_log(network, stats, duration, state.started_at, state.completed_at)
        except SQLAlchemyError:
            logger.exception(f"[sync] {network}: failed to write sync log")
        logger.info(f"[sync] {network} {state.status.value} in {duration}s: {state.counters()}")

    async def _reconcile(self, network: str | None) -> ReconcileStats | None:
        try:
            return await reconcile_all(self.store, network)
        except Exception:
            logger.exception(f"[reconcile] {network or 'global'} reconciliation failed")
            return None

    # ============================================================
    # Passes
    # ============================================================

    async def _advertiser_pass(
        self,
        network: str,
        adapter: NetworkAdapter,
        context: SyncContext,
        brand_lookup: BrandLookup,
    ) -> None:
        state = self.state.get(network)
        records = await adapter.fetch_advertisers()
        context.advertisers = records
        home_links = await adapter.resolve_home_links(records)
        logger.info(f"[sync] {network}: processing {len(records)} advertisers")

        active: set[str] = set()
        for record in records:
            if not record.network_id:
                continue
            key = advertiser_key(network, record.network_id)
            existing = await self.store.get(EntityKind.ADVERTISERS, key)
            candidate = await build_advertiser_candidate(
                record,
                existing,
                image_cache=self.image_cache,
                brand_lookup=brand_lookup,
                home_link=home_links.get(str(record.network_id)),
            )
            result = await self.store.upsert(EntityKind.ADVERTISERS, candidate, existing)
            active.add(result.key)
            state.advertisers.record(result.status)

        state.advertisers.pruned = (await prune(self.store, network, EntityKind.ADVERTISERS, active)).deleted

    async def _offer_pass(self, network: str, adapter: NetworkAdapter, context: SyncContext) -> None:
        state = self.state.get(network)
        records = await adapter.fetch_offers(context)

        # Same destination link twice in one feed: the last one wins.
        unique = {}
        for record in records:
            identity = record.link or record.network_id
            if identity:
                unique[identity] = record
        logger.info(f"[sync] {network}: processing {len(unique)} offers ({len(records)} fetched)")

        active: set[str] = set()
        for record in unique.values():
            candidate = {
                "network": network,
                "network_id": record.network_id,
                "advertiser_id": record.advertiser_id,
                "advertiser_name": record.advertiser_name,
                "description": record.description,
                "code": effective_code(record.code, record.description),
                "start_date": record.start_date,
                "end_date": record.end_date,
                "link": record.link,
                "image_url": record.image_url,
                "network_updated_at": record.network_updated_at,
            }
            try:
                derive_key(EntityKind.OFFERS, candidate)
            except KeyDerivationError as e:
                logger.debug(f"[sync] {network}: skipping offer: {e}")
                continue

            result = await self.store.upsert(EntityKind.OFFERS, candidate)
            active.add(result.key)
            state.offers.record(result.status)

        state.offers.pruned = (await prune(self.store, network, EntityKind.OFFERS, active)).deleted

    async def _product_pass(self, network: str, adapter: NetworkAdapter, context: SyncContext) -> None:
        state = self.state.get(network)
        active: set[str] = set()

        async for page in adapter.iter_product_pages(context):
            for record in page:
                candidate = {
                    "network": network,
                    "network_id": record.network_id,
                    "sku": record.sku,
                    "advertiser_id": record.advertiser_id,
                    "advertiser_name": record.advertiser_name,
                    "name": record.name,
                    "price": record.price,
                    "sale_price": record.sale_price,
                    "currency": record.currency,
                    "link": record.link,
                    "image_url": record.image_url,
                    "description": record.description,
                    "search_keywords": build_search_keywords(record.name),
                    "raw_data": record.raw_data or None,
                    "network_updated_at": record.network_updated_at,
                }
                try:
                    key = derive_key(EntityKind.PRODUCTS, candidate)
                except KeyDerivationError as e:
                    logger.debug(f"[sync] {network}: skipping product: {e}")
                    continue

                existing = await self.store.get(EntityKind.PRODUCTS, key)
                candidate["storage_image_url"] = await self._product_image(record.image_url, existing)
                result = await self.store.upsert(EntityKind.PRODUCTS, candidate, existing)
                active.add(result.key)
                state.products.record(result.status)

            logger.info(f"[sync] {network}: {state.products.checked} products processed")

        state.products.pruned = (await prune(self.store, network, EntityKind.PRODUCTS, active)).deleted

    async def _product_image(self, image_url: str | None, existing: dict[str, Any] | None) -> str | None:
        """Cached image URL for a product; only re-caches a new or uncached image."""
        if not image_url:
            return None
        existing = existing or {}
        stored = existing.get("storage_image_url")
        same_source = existing.get("image_url") == image_url
        if same_source and stored:
            return stored
        cached = await self.image_cache.cache(image_url, PRODUCT_IMAGE_FOLDER)
        return cached or (stored if same_source else None)


_orchestrator: SyncOrchestrator | None = None


def get_orchestrator() -> SyncOrchestrator:
    """Process-wide orchestrator (one state container per process)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SyncOrchestrator()
    return _orchestrator


async def close_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None
