"""Network adapter contract and canonical records.

Every affiliate network speaks its own dialect (REST/JSON, XML, GraphQL,
JSONL feeds). Adapters translate those payloads into three canonical record
types at the boundary, so the rest of the engine never touches raw shapes
except as the opaque raw_data snapshot.

Contract:
- fetch_advertisers(): all joined advertisers
- fetch_offers(context): all current coupons/promotions
- iter_product_pages(context): lazy, finite sequence of product pages
- fetch_products(context): the same pages buffered into one list
- resolve_home_links(advertisers): optional tracking links for home pages

Failure policy:
- Missing credentials: log a warning and return nothing (never raise)
- A failing page/advertiser: log it and treat it as "no data for this unit"
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

logger = logging.getLogger("uvicorn.error")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass
class AdvertiserRecord:
    """Advertiser as reported by a network."""

    network: str
    network_id: str
    name: str | None = None
    status: str | None = None
    url: str | None = None
    country: str | None = None
    description: str | None = None
    categories: list[str] = field(default_factory=list)
    logo_url: str | None = None
    network_updated_at: datetime | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class OfferRecord:
    """Coupon/promotion as reported by a network (code not yet normalized)."""

    network: str
    link: str | None
    advertiser_id: str | None = None
    advertiser_name: str | None = None
    description: str | None = None
    code: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    image_url: str | None = None
    network_id: str | None = None
    network_updated_at: datetime | None = None


@dataclass
class ProductRecord:
    """Catalog item as reported by a network (prices already numeric)."""

    network: str
    name: str | None
    link: str | None
    network_id: str | None = None
    sku: str | None = None
    advertiser_id: str | None = None
    advertiser_name: str | None = None
    price: float | None = None
    sale_price: float | None = None
    currency: str | None = None
    image_url: str | None = None
    description: str | None = None
    network_updated_at: datetime | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncContext:
    """State shared between a network's passes within one run."""

    advertisers: list[AdvertiserRecord] = field(default_factory=list)


class NetworkAdapter(ABC):
    """Base class for affiliate network adapters."""

    network: str = ""
    timeout: float = 30.0

    def __init__(self) -> None:
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the credentials this adapter needs are present."""

    @abstractmethod
    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        """Fetch every advertiser the publisher has joined."""

    @abstractmethod
    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        """Fetch current coupons/promotions."""

    @abstractmethod
    def iter_product_pages(self, context: SyncContext) -> AsyncIterator[list[ProductRecord]]:
        """Yield product pages lazily; the sequence is finite and not restartable."""

    async def fetch_products(self, context: SyncContext) -> list[ProductRecord]:
        """Buffer every product page into one list (small catalogs, tests)."""
        products: list[ProductRecord] = []
        async for page in self.iter_product_pages(context):
            products.extend(page)
        return products

    async def resolve_home_links(self, advertisers: list[AdvertiserRecord]) -> dict[str, str]:
        """Tracking links for advertiser home pages, keyed by network_id."""
        return {}

    def _warn_unconfigured(self, what: str) -> None:
        logger.warning(f"[{self.network}] credentials not configured, skipping {what}")


def category_names(values: Any) -> list[str]:
    """Category labels from a list of strings or {"name": ...} objects."""
    if not values:
        return []
    if isinstance(values, (str, dict)):
        values = [values]
    names: list[str] = []
    for value in values:
        name = value.get("name") if isinstance(value, dict) else value
        if name and str(name).strip():
            names.append(str(name).strip())
    return names
