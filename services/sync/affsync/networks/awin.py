"""AWIN adapter.

Endpoints:
- GET  /publishers/{pid}/programmes?relationship=joined         Joined advertisers
- POST /publisher/{pid}/promotions                              Vouchers + promotions
- GET  /publishers/{pid}/awinfeeds/download/{adv}-retail-{loc}.jsonl  Product feed

Product feeds are one JSON object per line, sometimes gzip-compressed even
without a Content-Encoding header. The feed endpoint allows 5 calls per
minute, so feeds are downloaded one advertiser at a time.
"""

import gzip
import json
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
)
from affsync.networks.pacing import RequestPacer
from affsync.services.pricing import parse_price, split_price_currency
from affsync.settings import get_settings
from affsync.utils.dates import parse_datetime

logger = logging.getLogger("uvicorn.error")

_GZIP_MAGIC = b"\x1f\x8b"


class AwinAdapter(NetworkAdapter):
    """Client for the AWIN publisher API."""

    network = "AWIN"
    BASE_URL = "https://api.awin.com"
    timeout = 120.0

    def __init__(
        self,
        access_token: str | None = None,
        publisher_id: str | None = None,
        *,
        feed_delay: float | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.access_token = access_token if access_token is not None else settings.awin_access_token
        self.publisher_id = publisher_id if publisher_id is not None else settings.awin_publisher_id
        self._feed_pacer = RequestPacer(settings.awin_feed_delay if feed_delay is None else feed_delay)

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.publisher_id)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    # ============================================================
    # Advertisers
    # ============================================================

    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        if not self.is_configured:
            self._warn_unconfigured("programmes")
            return []

        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.BASE_URL}/publishers/{self.publisher_id}/programmes",
                params={"relationship": "joined"},
                headers=self._headers,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[AWIN] programmes request failed: {e}")
            return []

        items = payload if isinstance(payload, list) else []
        records = [self._map_programme(item) for item in items if item.get("id") is not None]
        logger.info(f"[AWIN] {len(records)} joined programmes")
        return records

    def _map_programme(self, item: dict[str, Any]) -> AdvertiserRecord:
        region = item.get("primaryRegion") or {}
        sector = item.get("primarySector")
        categories = [sector] if isinstance(sector, str) and sector else []
        return AdvertiserRecord(
            network=self.network,
            network_id=str(item["id"]),
            name=item.get("name"),
            status=item.get("status"),
            url=item.get("displayUrl"),
            country=region.get("countryCode"),
            description=item.get("description"),
            categories=categories,
            logo_url=item.get("logoUrl"),
            raw_data=item,
        )

    # ============================================================
    # Promotions
    # ============================================================

    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        if not self.is_configured:
            self._warn_unconfigured("promotions")
            return []

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.BASE_URL}/publisher/{self.publisher_id}/promotions",
                json={"filters": {"membership": "joined", "type": "all"}},
                headers=self._headers,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[AWIN] promotions request failed: {e}")
            return []

        if isinstance(payload, dict):
            payload = payload.get("data") or []
        offers = [self._map_promotion(item) for item in payload if isinstance(item, dict)]
        logger.info(f"[AWIN] {len(offers)} promotions")
        return offers

    def _map_promotion(self, item: dict[str, Any]) -> OfferRecord:
        advertiser = item.get("advertiser") or {}
        title = item.get("title") or ""
        details = item.get("description") or ""
        description = f"{title} - {details}" if title and details else (title or details or None)

        code = None
        if (item.get("type") or "").lower() == "voucher":
            code = (item.get("voucher") or {}).get("code")

        promotion_id = item.get("promotionId")
        advertiser_id = advertiser.get("id")
        return OfferRecord(
            network=self.network,
            network_id=str(promotion_id) if promotion_id is not None else None,
            advertiser_id=str(advertiser_id) if advertiser_id is not None else None,
            advertiser_name=advertiser.get("name"),
            description=description,
            code=code,
            start_date=parse_datetime(item.get("startDate")),
            end_date=parse_datetime(item.get("endDate")),
            link=item.get("urlTracking") or item.get("url"),
        )

    # ============================================================
    # Product feeds
    # ============================================================

    @staticmethod
    def feed_locale(country: str | None) -> str:
        return "en_GB" if (country or "").upper() in ("GB", "UK") else "en_US"

    async def iter_product_pages(self, context: SyncContext) -> AsyncIterator[list[ProductRecord]]:
        if not self.is_configured:
            self._warn_unconfigured("product feeds")
            return

        advertisers = context.advertisers
        logger.info(f"[AWIN] downloading feeds for {len(advertisers)} advertisers")
        for advertiser in advertisers:
            products = await self._fetch_feed(advertiser)
            if products:
                yield products

    async def _fetch_feed(self, advertiser: AdvertiserRecord) -> list[ProductRecord]:
        locale = self.feed_locale(advertiser.country)
        url = (
            f"{self.BASE_URL}/publishers/{self.publisher_id}/awinfeeds/download/"
            f"{advertiser.network_id}-retail-{locale}.jsonl"
        )
        await self._feed_pacer.wait()
        client = await self._get_client()
        try:
            response = await client.get(url, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[AWIN] feed for {advertiser.network_id} unavailable: {e}")
            return []

        body = response.content
        if body[:2] == _GZIP_MAGIC:
            try:
                body = gzip.decompress(body)
            except OSError as e:
                logger.warning(f"[AWIN] feed for {advertiser.network_id} is not valid gzip: {e}")
                return []

        products: list[ProductRecord] = []
        skipped = 0
        for line in body.decode("utf-8", errors="replace").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except ValueError:
                skipped += 1
                continue
            if not isinstance(item, dict) or "error" in item:
                skipped += 1
                continue
            products.append(self._map_feed_item(item, advertiser))

        if skipped:
            logger.info(f"[AWIN] feed {advertiser.network_id}: skipped {skipped} unparseable lines")
        logger.info(f"[AWIN] feed {advertiser.network_id}: {len(products)} products")
        return products

    def _map_feed_item(self, item: dict[str, Any], advertiser: AdvertiserRecord) -> ProductRecord:
        price, currency = split_price_currency(item.get("price"))
        sale_price = parse_price(item.get("sale_price"))
        if currency is None:
            _, currency = split_price_currency(item.get("sale_price"))

        product_id = item.get("id")
        return ProductRecord(
            network=self.network,
            network_id=str(product_id) if product_id is not None else None,
            sku=str(product_id) if product_id is not None else None,
            name=item.get("title"),
            link=item.get("link"),
            advertiser_id=advertiser.network_id,
            advertiser_name=advertiser.name,
            price=price,
            sale_price=sale_price,
            currency=currency or item.get("currency"),
            image_url=item.get("image_link"),
            description=item.get("description"),
            raw_data=item,
        )
