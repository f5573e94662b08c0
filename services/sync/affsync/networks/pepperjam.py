"""Pepperjam (Ascend) adapter.

All endpoints live under /20120402/publisher and share one envelope:
{"meta": {"pagination": {"next": ...}}, "data": [...]}. Paging stops when
meta.pagination.next is absent.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from affsync.networks.base import (
    AdvertiserRecord,
    NetworkAdapter,
    OfferRecord,
    ProductRecord,
    SyncContext,
    category_names,
)
from affsync.networks.pacing import RequestPacer
from affsync.services.pricing import parse_price
from affsync.settings import get_settings
from affsync.utils.dates import parse_datetime

logger = logging.getLogger("uvicorn.error")

NO_CODE_MARKER = "No Code Necessary"


class PepperjamAdapter(NetworkAdapter):
    """Client for the Pepperjam publisher API."""

    network = "Pepperjam"
    BASE_URL = "https://api.pepperjamnetwork.com/20120402/publisher"
    MAX_LISTING_PAGES = 100
    MAX_PRODUCT_PAGES = 100

    def __init__(self, api_key: str | None = None, *, page_delay: float | None = None):
        super().__init__()
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.pepperjam_api_key
        self._pacer = RequestPacer(settings.pepperjam_page_delay if page_delay is None else page_delay)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _iter_pages(
        self,
        path: str,
        max_pages: int,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield the `data` array of each page until pagination.next is absent."""
        page = 1
        while page <= max_pages:
            await self._pacer.wait()
            client = await self._get_client()
            try:
                response = await client.get(
                    f"{self.BASE_URL}{path}",
                    params={"apiKey": self.api_key, "format": "json", "page": page, **(params or {})},
                )
                response.raise_for_status()
                payload = response.json() or {}
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"[Pepperjam] {path} page {page} failed: {e}")
                return

            items = payload.get("data") or []
            if not items:
                return
            yield items

            pagination = (payload.get("meta") or {}).get("pagination") or {}
            if not pagination.get("next"):
                return
            page += 1

        logger.warning(f"[Pepperjam] reached safety limit of {max_pages} pages for {path}")

    # ============================================================
    # Advertisers
    # ============================================================

    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        if not self.is_configured:
            self._warn_unconfigured("advertisers")
            return []

        records: list[AdvertiserRecord] = []
        async for items in self._iter_pages("/advertiser", self.MAX_LISTING_PAGES, {"status": "joined"}):
            records.extend(self._map_advertiser(item) for item in items if item.get("id") is not None)
        logger.info(f"[Pepperjam] {len(records)} advertisers")
        return records

    def _map_advertiser(self, item: dict[str, Any]) -> AdvertiserRecord:
        return AdvertiserRecord(
            network=self.network,
            network_id=str(item["id"]),
            name=item.get("name"),
            status=item.get("status"),
            url=item.get("website"),
            country=item.get("country"),
            description=item.get("description"),
            categories=category_names(item.get("categories") or item.get("category")),
            logo_url=item.get("logo"),
            raw_data=item,
        )

    # ============================================================
    # Coupons
    # ============================================================

    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        if not self.is_configured:
            self._warn_unconfigured("coupons")
            return []

        offers: list[OfferRecord] = []
        async for items in self._iter_pages("/creative/coupon", self.MAX_LISTING_PAGES):
            offers.extend(self._map_coupon(item) for item in items)
        logger.info(f"[Pepperjam] {len(offers)} coupons")
        return offers

    def _map_coupon(self, item: dict[str, Any]) -> OfferRecord:
        coupon = item.get("coupon")
        code = None if not coupon or coupon == NO_CODE_MARKER else coupon
        program_id = item.get("program_id")
        creative_id = item.get("id")
        return OfferRecord(
            network=self.network,
            network_id=str(creative_id) if creative_id is not None else None,
            advertiser_id=str(program_id) if program_id is not None else None,
            advertiser_name=item.get("program_name"),
            description=item.get("description") or item.get("name"),
            code=code,
            start_date=parse_datetime(item.get("start_date")),
            end_date=parse_datetime(item.get("end_date")),
            # the tracking URL is carried in "code" on coupon creatives
            link=item.get("code"),
        )

    # ============================================================
    # Products
    # ============================================================

    async def iter_product_pages(self, context: SyncContext) -> AsyncIterator[list[ProductRecord]]:
        if not self.is_configured:
            self._warn_unconfigured("products")
            return

        page_number = 0
        async for items in self._iter_pages("/creative/product", self.MAX_PRODUCT_PAGES):
            page_number += 1
            logger.info(f"[Pepperjam] product page {page_number}: {len(items)} items")
            yield [self._map_product(item) for item in items]

    def _map_product(self, item: dict[str, Any]) -> ProductRecord:
        program_id = item.get("program_id")
        product_id = item.get("id")
        sku = item.get("sku") or product_id
        return ProductRecord(
            network=self.network,
            network_id=str(product_id) if product_id is not None else None,
            sku=str(sku) if sku is not None else None,
            name=item.get("name"),
            link=item.get("buy_url"),
            advertiser_id=str(program_id) if program_id is not None else None,
            advertiser_name=item.get("program_name"),
            price=parse_price(item.get("price")),
            sale_price=parse_price(item.get("price_sale")),
            currency=item.get("currency") or "USD",
            image_url=item.get("image_url"),
            description=item.get("description_long") or item.get("description_short") or item.get("name"),
            network_updated_at=parse_datetime(item.get("last_updated")),
            raw_data=item,
        )
