"""Brand logo lookup by domain (fallback when a network has no logo).

The Brandfetch CDN serves a logo at https://cdn.brandfetch.io/{domain};
a HEAD request tells whether one exists without downloading it.

The API is metered, so each BrandLookup instance carries a quota that is
spent one unit per remote lookup. The orchestrator creates one per sync run.
Results (hits and misses) are cached in Redis for 7 days; cache hits are
free. Redis is optional here.
"""

import logging
from urllib.parse import urlparse

import httpx
from redis.exceptions import RedisError

from affsync.networks.base import BROWSER_USER_AGENT
from affsync.settings import get_settings
from affsync.stores.redis import get_brand_logo_cache, set_brand_logo_cache

logger = logging.getLogger("uvicorn.error")

BRANDFETCH_CDN = "https://cdn.brandfetch.io"
LOOKUP_TIMEOUT = 5.0


def extract_domain(url: str | None) -> str | None:
    """Hostname of a URL without a leading "www." (None when unparseable)."""
    if not url:
        return None
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        hostname = urlparse(candidate).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname.removeprefix("www.")


class BrandLookup:
    """Per-run, quota-limited logo lookup."""

    def __init__(self, quota: int | None = None, http_client: httpx.AsyncClient | None = None):
        settings = get_settings()
        self.quota = settings.brand_lookup_quota if quota is None else quota
        self.client_id = settings.brandfetch_api_key
        self.used = 0
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def remaining(self) -> int:
        return max(0, self.quota - self.used)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=LOOKUP_TIMEOUT,
                follow_redirects=True,
                headers={"User-Agent": BROWSER_USER_AGENT},
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def find_logo(self, website_url: str | None) -> str | None:
        """Logo URL for a website, or None (unknown domain, miss, or quota spent)."""
        domain = extract_domain(website_url)
        if not domain:
            return None

        try:
            cached = await get_brand_logo_cache(domain)
        except (RuntimeError, RedisError):
            cached = None
        if cached is not None:
            return cached.get("logo_url")

        if self.remaining <= 0:
            return None
        self.used += 1

        logo_url = f"{BRANDFETCH_CDN}/{domain}"
        if self.client_id:
            logo_url = f"{logo_url}?c={self.client_id}"
        try:
            client = await self._get_client()
            response = await client.head(logo_url)
            found = logo_url if response.status_code == 200 else None
        except httpx.HTTPError as e:
            logger.debug(f"[brand] lookup failed for {domain}: {e}")
            return None

        try:
            await set_brand_logo_cache(domain, found)
        except (RuntimeError, RedisError):
            pass

        if found:
            logger.info(f"[brand] found logo for {domain} ({self.used}/{self.quota} lookups used)")
        return found
