"""Rakuten Advertising adapter.

Endpoints (api.linksynergy.com):
- POST /token                       OAuth-style token exchange (cached ~55 min)
- GET  /v1/partnerships             Joined advertisers, page/limit + _metadata.total
- GET  /v2/advertisers/{id}         Advertiser details (url, description, logo)
- GET  /coupon/1.0                  Coupon feed (XML, pagenumber/TotalPages)
- GET  /productsearch/1.0           Product search per advertiser (XML, max 100/page)
- POST /v1/links/deep_links         Tracking link for an advertiser URL

Rate limits: the API allows ~100 calls/minute, so detail and deep-link calls
share one pacer (0.75s), product pages use another (0.8s), and advertisers
are walked strictly sequentially with a pause between them.
"""

import base64
import logging
import math
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
from lxml import etree

from affsync.networks.base import (
    AdvertiserRecord,
    NetworkAdapter,
    OfferRecord,
    ProductRecord,
    SyncContext,
    category_names,
)
from affsync.networks.pacing import RequestPacer
from affsync.networks.xml import child_text, element_to_dict, find_child, find_children, find_descendant, parse_xml
from affsync.services.pricing import parse_price
from affsync.settings import get_settings
from affsync.utils.dates import parse_datetime

logger = logging.getLogger("uvicorn.error")


class RakutenAuthError(RuntimeError):
    pass


class RakutenAdapter(NetworkAdapter):
    """Client for the Rakuten Advertising publisher APIs."""

    network = "Rakuten"
    BASE_URL = "https://api.linksynergy.com"
    TOKEN_TTL = 3300  # seconds; tokens live for an hour
    PARTNERSHIP_PAGE_SIZE = 200
    COUPON_PAGE_SIZE = 500
    MAX_COUPON_PAGES = 50
    PRODUCT_PAGE_SIZE = 100
    MAX_PRODUCT_PAGES = 100

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        site_id: str | None = None,
        *,
        request_delay: float | None = None,
        page_delay: float | None = None,
        advertiser_delay: float | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.client_id = client_id if client_id is not None else settings.rakuten_client_id
        self.client_secret = client_secret if client_secret is not None else settings.rakuten_client_secret
        self.site_id = site_id if site_id is not None else settings.rakuten_site_id
        self._request_pacer = RequestPacer(
            settings.rakuten_request_delay if request_delay is None else request_delay
        )
        self._page_pacer = RequestPacer(settings.rakuten_page_delay if page_delay is None else page_delay)
        self._advertiser_pacer = RequestPacer(
            settings.rakuten_advertiser_delay if advertiser_delay is None else advertiser_delay
        )
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.site_id)

    # ============================================================
    # Auth / transport
    # ============================================================

    async def _get_token(self) -> str:
        """Exchange client credentials for an access token (cached in memory)."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not self.is_configured:
            raise RakutenAuthError("Rakuten API credentials are missing")

        token_key = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        client = await self._get_client()
        response = await client.post(
            f"{self.BASE_URL}/token",
            content=f"scope={self.site_id}",
            headers={
                "Authorization": f"Bearer {token_key}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        response.raise_for_status()
        access_token = (response.json() or {}).get("access_token")
        if not access_token:
            raise RakutenAuthError("Rakuten token response missing access_token")

        self._token = access_token
        self._token_expires_at = time.monotonic() + self.TOKEN_TTL
        return access_token

    async def _request(
        self,
        method: str,
        path: str,
        pacer: RequestPacer,
        **kwargs: Any,
    ) -> httpx.Response:
        token = await self._get_token()
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        await pacer.wait()
        client = await self._get_client()
        response = await client.request(method, f"{self.BASE_URL}{path}", headers=headers, **kwargs)
        response.raise_for_status()
        return response

    # ============================================================
    # Advertisers
    # ============================================================

    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        if not self.is_configured:
            self._warn_unconfigured("advertisers")
            return []

        partnerships: list[dict[str, Any]] = []
        page = 1
        while True:
            try:
                response = await self._request(
                    "GET",
                    "/v1/partnerships",
                    self._request_pacer,
                    params={
                        "partner_status": "active",
                        "limit": self.PARTNERSHIP_PAGE_SIZE,
                        "page": page,
                    },
                    headers={"Accept": "application/json"},
                )
                data = response.json() or {}
            except (httpx.HTTPError, ValueError, RakutenAuthError) as e:
                logger.error(f"[Rakuten] partnerships page {page} failed: {e}")
                break

            if not isinstance(data, dict):
                logger.error(f"[Rakuten] partnerships page {page} is not an object")
                break
            items = data.get("partnerships") or []
            if not items:
                break
            partnerships.extend(item for item in items if isinstance(item, dict))

            total = _as_int((data.get("_metadata") or {}).get("total"))
            if total is not None and page >= math.ceil(total / self.PARTNERSHIP_PAGE_SIZE):
                break
            page += 1

        logger.info(f"[Rakuten] {len(partnerships)} partnerships, fetching advertiser details")

        records: list[AdvertiserRecord] = []
        for partnership in partnerships:
            advertiser = partnership.get("advertiser") or {}
            advertiser_id = advertiser.get("id")
            if advertiser_id is None:
                continue
            details = await self._fetch_advertiser_details(advertiser_id)
            records.append(self._map_advertiser(partnership, details))
        return records

    async def _fetch_advertiser_details(self, advertiser_id: Any) -> dict[str, Any]:
        try:
            response = await self._request(
                "GET",
                f"/v2/advertisers/{advertiser_id}",
                self._request_pacer,
                headers={"Accept": "application/json"},
            )
            details = (response.json() or {}).get("advertiser") or {}
        except (httpx.HTTPError, ValueError, AttributeError, RakutenAuthError) as e:
            logger.warning(f"[Rakuten] details for advertiser {advertiser_id} failed: {e}")
            return {}
        return details if isinstance(details, dict) else {}

    def _map_advertiser(self, partnership: dict[str, Any], details: dict[str, Any]) -> AdvertiserRecord:
        advertiser = partnership.get("advertiser") or {}
        contact = details.get("contact") or {}
        return AdvertiserRecord(
            network=self.network,
            network_id=str(advertiser["id"]),
            name=advertiser.get("name") or details.get("name"),
            status=partnership.get("status"),
            url=details.get("url") or advertiser.get("url"),
            country=contact.get("country"),
            description=(
                details.get("description") or details.get("shortDescription") or details.get("longDescription")
            ),
            categories=category_names(advertiser.get("categories") or details.get("categories")),
            logo_url=details.get("logo_url") or advertiser.get("logo_url"),
            raw_data={"partnership": partnership, "details": details},
        )

    async def resolve_home_links(self, advertisers: list[AdvertiserRecord]) -> dict[str, str]:
        """Generate tracking deep links for each advertiser's home URL."""
        if not self.is_configured:
            return {}
        links: dict[str, str] = {}
        for advertiser in advertisers:
            if not advertiser.url:
                continue
            try:
                response = await self._request(
                    "POST",
                    "/v1/links/deep_links",
                    self._request_pacer,
                    json={"url": advertiser.url, "advertiser_id": _as_int(advertiser.network_id)},
                    headers={"Accept": "application/json"},
                )
                deep_link = (((response.json() or {}).get("advertiser") or {}).get("deep_link") or {}).get(
                    "deep_link_url"
                )
            except (httpx.HTTPError, ValueError, AttributeError, RakutenAuthError) as e:
                logger.debug(f"[Rakuten] deep link for {advertiser.network_id} failed: {e}")
                continue
            if deep_link:
                links[advertiser.network_id] = deep_link
        logger.info(f"[Rakuten] generated {len(links)} deep links")
        return links

    # ============================================================
    # Coupons
    # ============================================================

    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        if not self.is_configured:
            self._warn_unconfigured("coupons")
            return []

        offers: list[OfferRecord] = []
        page = 1
        while page <= self.MAX_COUPON_PAGES:
            try:
                response = await self._request(
                    "GET",
                    "/coupon/1.0",
                    self._request_pacer,
                    params={"resultsperpage": self.COUPON_PAGE_SIZE, "pagenumber": page},
                )
            except (httpx.HTTPError, ValueError, RakutenAuthError) as e:
                logger.error(f"[Rakuten] coupon page {page} failed: {e}")
                break

            root = parse_xml(response.content)
            feed = find_descendant(root, "couponfeed")
            if feed is None:
                logger.info("[Rakuten] no coupon feed in response")
                break

            items = find_children(feed, "link", "coupon")
            if not items:
                break
            offers.extend(self._map_coupon(item) for item in items)

            total_pages = _as_int(child_text(feed, "totalpages"))
            if total_pages is None or page >= total_pages:
                break
            page += 1

        logger.info(f"[Rakuten] {len(offers)} coupons")
        return offers

    def _map_coupon(self, item: etree._Element) -> OfferRecord:
        return OfferRecord(
            network=self.network,
            advertiser_id=child_text(item, "advertiserid", "mid"),
            advertiser_name=child_text(item, "advertisername", "advertiser_name"),
            description=child_text(item, "offerdescription", "description", "text"),
            code=child_text(item, "couponcode", "code"),
            start_date=parse_datetime(child_text(item, "offerstartdate", "start_date", "begin_date")),
            end_date=parse_datetime(child_text(item, "offerenddate", "end_date")),
            link=child_text(item, "clickurl", "link_url", "click_url"),
            image_url=child_text(item, "couponimageurl", "offerimageurl", "image_url"),
        )

    # ============================================================
    # Products
    # ============================================================

    async def iter_product_pages(self, context: SyncContext) -> AsyncIterator[list[ProductRecord]]:
        if not self.is_configured:
            self._warn_unconfigured("products")
            return

        advertisers = context.advertisers or await self.fetch_advertisers()
        logger.info(f"[Rakuten] fetching products for {len(advertisers)} advertisers")
        for advertiser in advertisers:
            await self._advertiser_pacer.wait()
            async for page in self._iter_advertiser_products(advertiser):
                yield page

    async def _iter_advertiser_products(self, advertiser: AdvertiserRecord) -> AsyncIterator[list[ProductRecord]]:
        page = 1
        while page <= self.MAX_PRODUCT_PAGES:
            try:
                response = await self._request(
                    "GET",
                    "/productsearch/1.0",
                    self._page_pacer,
                    params={"mid": advertiser.network_id, "max": self.PRODUCT_PAGE_SIZE, "page": page},
                )
            except (httpx.HTTPError, ValueError, RakutenAuthError) as e:
                logger.warning(f"[Rakuten] products for {advertiser.network_id} page {page} failed: {e}")
                return

            root = parse_xml(response.content)
            items = find_children(root, "item")
            if not items:
                return

            yield [self._map_product(item, advertiser) for item in items]

            if len(items) < self.PRODUCT_PAGE_SIZE:
                return
            page += 1

    def _map_product(self, item: etree._Element, advertiser: AdvertiserRecord) -> ProductRecord:
        advertiser_id = child_text(item, "mid") or advertiser.network_id
        name = child_text(item, "productname", "product_name")
        price_el = find_child(item, "price")
        sale_el = find_child(item, "saleprice", "sale_price")
        description_el = find_child(item, "description")
        description = child_text(description_el, "short") or child_text(description_el, "long")
        if description is None and description_el is not None and description_el.text:
            description = description_el.text.strip() or None
        sku = child_text(item, "sku") or f"{advertiser_id}-{(name or '')[:20]}"

        return ProductRecord(
            network=self.network,
            name=name,
            link=child_text(item, "linkurl", "link_url"),
            sku=sku,
            advertiser_id=advertiser_id,
            advertiser_name=child_text(item, "merchantname") or advertiser.name,
            price=parse_price(price_el.text if price_el is not None else None),
            sale_price=parse_price(sale_el.text if sale_el is not None else None),
            currency=(price_el.get("currency") if price_el is not None else None) or "USD",
            image_url=child_text(item, "imageurl", "image_url"),
            description=description,
            raw_data=element_to_dict(item),
        )


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
