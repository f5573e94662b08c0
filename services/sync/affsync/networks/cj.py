"""CJ (Commission Junction) adapter.

Endpoints:
- advertiser-lookup.api.cj.com/v2/advertiser-lookup   Joined advertisers (XML)
- link-search.api.cj.com/v2/link-search               Links/coupons (XML, total-matched)
- ads.api.cj.com/query                                Product catalog (GraphQL, nextPage cursor)

Auth: personal access token as a bearer token. Requests are identified by
the company id (requestor-cid / companyId) and website id (pid).
"""

import logging
import re
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
)
from affsync.networks.pacing import RequestPacer
from affsync.networks.xml import child_text, element_to_dict, find_child, find_children, find_descendant, parse_xml
from affsync.services.pricing import parse_price
from affsync.settings import get_settings
from affsync.utils.dates import parse_datetime

logger = logging.getLogger("uvicorn.error")

_IMG_SRC_RE = re.compile(r"<img[^>]+src=\"([^\">]+)\"", re.IGNORECASE)

PRODUCTS_QUERY = """
query($companyId: ID!, $pid: ID!, $limit: Int, $page: String) {
    products(companyId: $companyId, partnerStatus: JOINED, limit: $limit, page: $page) {
        totalCount
        count
        nextPage
        resultList {
            id
            title
            description
            price { amount, currency }
            salePrice { amount, currency }
            advertiserId
            advertiserName
            imageLink
            lastUpdated
            linkCode(pid: $pid) {
                clickUrl
                imageUrl
            }
        }
    }
}
"""


class CJAdapter(NetworkAdapter):
    """Client for the CJ publisher APIs."""

    network = "CJ"
    ADVERTISER_URL = "https://advertiser-lookup.api.cj.com/v2/advertiser-lookup"
    LINK_SEARCH_URL = "https://link-search.api.cj.com/v2/link-search"
    GRAPHQL_URL = "https://ads.api.cj.com/query"
    RECORDS_PER_PAGE = 100
    MAX_LINK_PAGES = 50
    PRODUCT_PAGE_SIZE = 100
    MAX_PRODUCT_PAGES = 1000

    def __init__(
        self,
        personal_access_token: str | None = None,
        company_id: str | None = None,
        website_id: str | None = None,
        *,
        page_delay: float | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.token = personal_access_token if personal_access_token is not None else settings.cj_personal_access_token
        self.company_id = company_id if company_id is not None else settings.cj_company_id
        self.website_id = website_id if website_id is not None else settings.cj_website_id
        self._pacer = RequestPacer(settings.cj_page_delay if page_delay is None else page_delay)

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.company_id)

    async def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        await self._pacer.wait()
        client = await self._get_client()
        response = await client.get(url, params=params, headers={"Authorization": f"Bearer {self.token}"})
        response.raise_for_status()
        return response

    # ============================================================
    # Advertisers
    # ============================================================

    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        if not self.is_configured:
            self._warn_unconfigured("advertisers")
            return []

        records: list[AdvertiserRecord] = []
        page = 1
        while True:
            try:
                response = await self._get(
                    self.ADVERTISER_URL,
                    {
                        "requestor-cid": self.company_id,
                        "advertiser-ids": "joined",
                        "records-per-page": self.RECORDS_PER_PAGE,
                        "page-number": page,
                    },
                )
            except httpx.HTTPError as e:
                logger.error(f"[CJ] advertiser page {page} failed: {e}")
                break

            container = find_descendant(parse_xml(response.content), "advertisers")
            items = find_children(container, "advertiser")
            if not items:
                break
            records.extend(self._map_advertiser(item) for item in items)

            returned = _as_int(container.get("records-returned")) if container is not None else None
            if returned is None:
                returned = len(items)
            if returned < self.RECORDS_PER_PAGE:
                break
            page += 1

        logger.info(f"[CJ] {len(records)} advertisers")
        return records

    def _map_advertiser(self, item: etree._Element) -> AdvertiserRecord:
        categories: list[str] = []
        primary = find_child(item, "primary-category")
        if primary is not None:
            parent = child_text(primary, "parent")
            if parent:
                categories.append(parent)
            for child in find_children(primary, "child"):
                if child.text and child.text.strip():
                    categories.append(child.text.strip())

        return AdvertiserRecord(
            network=self.network,
            network_id=child_text(item, "advertiser-id") or "",
            name=child_text(item, "advertiser-name"),
            status=child_text(item, "relationship-status") or child_text(item, "account-status"),
            url=child_text(item, "program-url"),
            country=child_text(item, "advertiser-country"),
            categories=categories,
            raw_data=element_to_dict(item),
        )

    # ============================================================
    # Links / coupons
    # ============================================================

    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        if not self.is_configured:
            self._warn_unconfigured("links")
            return []
        if not self.website_id:
            logger.warning("[CJ] CJ_WEBSITE_ID is missing, skipping links")
            return []

        offers: list[OfferRecord] = []
        total_matched: int | None = None
        page = 1
        while page <= self.MAX_LINK_PAGES:
            try:
                response = await self._get(
                    self.LINK_SEARCH_URL,
                    {
                        "website-id": self.website_id,
                        "advertiser-ids": "joined",
                        "records-per-page": self.RECORDS_PER_PAGE,
                        "page-number": page,
                    },
                )
            except httpx.HTTPError as e:
                logger.error(f"[CJ] link page {page} failed: {e}")
                break

            container = find_descendant(parse_xml(response.content), "links")
            if container is None:
                break
            if total_matched is None:
                total_matched = _as_int(container.get("total-matched")) or 0
                logger.info(f"[CJ] {total_matched} links matched")

            items = find_children(container, "link")
            if not items:
                break
            offers.extend(self._map_link(item) for item in items)

            if len(offers) >= total_matched or len(items) < self.RECORDS_PER_PAGE:
                break
            page += 1
        else:
            logger.warning(f"[CJ] reached safety limit of {self.MAX_LINK_PAGES} link pages")

        return offers

    def _map_link(self, item: etree._Element) -> OfferRecord:
        link_html = child_text(item, "link-code-html")
        image_url = None
        if link_html:
            match = _IMG_SRC_RE.search(link_html)
            if match:
                image_url = match.group(1)

        return OfferRecord(
            network=self.network,
            network_id=child_text(item, "link-id"),
            advertiser_id=child_text(item, "advertiser-id"),
            advertiser_name=child_text(item, "advertiser-name"),
            description=child_text(item, "description") or child_text(item, "link-name"),
            code=child_text(item, "coupon-code"),
            start_date=parse_datetime(child_text(item, "promotion-start-date")),
            end_date=parse_datetime(child_text(item, "promotion-end-date")),
            link=child_text(item, "clickUrl") or link_html,
            image_url=image_url,
            network_updated_at=parse_datetime(child_text(item, "last-updated")),
        )

    # ============================================================
    # Products (GraphQL)
    # ============================================================

    async def iter_product_pages(self, context: SyncContext) -> AsyncIterator[list[ProductRecord]]:
        if not (self.is_configured and self.website_id):
            self._warn_unconfigured("products")
            return

        cursor: str | None = None
        for page_number in range(1, self.MAX_PRODUCT_PAGES + 1):
            variables = {
                "companyId": self.company_id,
                "pid": self.website_id,
                "limit": self.PRODUCT_PAGE_SIZE,
                "page": cursor,
            }
            try:
                await self._pacer.wait()
                client = await self._get_client()
                response = await client.post(
                    self.GRAPHQL_URL,
                    json={"query": PRODUCTS_QUERY, "variables": variables},
                    headers={"Authorization": f"Bearer {self.token}"},
                )
                response.raise_for_status()
                payload = response.json() or {}
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"[CJ] product page {page_number} failed: {e}")
                return

            if payload.get("errors"):
                logger.error(f"[CJ] GraphQL errors: {payload['errors']}")
                return

            data = ((payload.get("data") or {}).get("products")) or {}
            items = data.get("resultList") or []
            if not items:
                return

            logger.info(f"[CJ] product page {page_number}: {len(items)} items")
            yield [self._map_product(item) for item in items]

            cursor = data.get("nextPage")
            if not cursor:
                return

        logger.warning(f"[CJ] reached safety limit of {self.MAX_PRODUCT_PAGES} product pages")

    def _map_product(self, item: dict[str, Any]) -> ProductRecord:
        price = item.get("price") or {}
        sale_price = item.get("salePrice") or {}
        link_code = item.get("linkCode") or {}
        product_id = item.get("id")
        return ProductRecord(
            network=self.network,
            network_id=str(product_id) if product_id is not None else None,
            sku=str(product_id) if product_id is not None else None,
            name=item.get("title"),
            link=link_code.get("clickUrl") or None,
            advertiser_id=str(item["advertiserId"]) if item.get("advertiserId") is not None else None,
            advertiser_name=item.get("advertiserName"),
            price=parse_price(price.get("amount")),
            sale_price=parse_price(sale_price.get("amount")),
            currency=price.get("currency") or "USD",
            image_url=item.get("imageLink") or link_code.get("imageUrl"),
            description=item.get("description"),
            network_updated_at=parse_datetime(item.get("lastUpdated")),
            raw_data=item,
        )


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
