"""Shared fixtures: in-memory database, record store and fake collaborators."""

import hashlib
from collections.abc import AsyncIterator

import pytest

from affsync.networks.base import (
    AdvertiserRecord,
    NetworkAdapter,
    OfferRecord,
    ProductRecord,
    SyncContext,
)
from affsync.services.record_store import RecordStore
from affsync.stores.postgres import close_db, create_tables, init_db


@pytest.fixture
async def store(tmp_path) -> AsyncIterator[RecordStore]:
    """Record store on a fresh in-memory sqlite database."""
    await init_db("sqlite+aiosqlite:///:memory:")
    await create_tables()
    yield RecordStore(settings_path=tmp_path / "settings.json")
    await close_db()


class FakeImageCache:
    """Image cache that never touches the network."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def cache(self, source_url: str | None, folder: str) -> str | None:
        self.calls.append((source_url, folder))
        if self.fail or not source_url:
            return None
        return f"/uploads/{folder}/{hashlib.md5(source_url.encode()).hexdigest()}.webp"

    async def store_bytes(self, data: bytes, content_type: str, folder: str = "manual_uploads") -> str:
        return f"/uploads/{folder}/{hashlib.md5(data).hexdigest()}.png"

    async def close(self) -> None:
        pass


class FakeAdapter(NetworkAdapter):
    """Adapter serving canned records."""

    def __init__(
        self,
        network: str,
        advertisers: list[AdvertiserRecord] | None = None,
        offers: list[OfferRecord] | None = None,
        product_pages: list[list[ProductRecord]] | None = None,
    ):
        super().__init__()
        self.network = network
        self.advertisers = advertisers or []
        self.offers = offers or []
        self.product_pages = product_pages or []
        self.offer_error: Exception | None = None

    @property
    def is_configured(self) -> bool:
        return True

    async def fetch_advertisers(self) -> list[AdvertiserRecord]:
        return list(self.advertisers)

    async def fetch_offers(self, context: SyncContext) -> list[OfferRecord]:
        if self.offer_error is not None:
            raise self.offer_error
        return list(self.offers)

    async def iter_product_pages(self, context: SyncContext):
        for page in self.product_pages:
            yield list(page)


@pytest.fixture
def image_cache() -> FakeImageCache:
    return FakeImageCache()
