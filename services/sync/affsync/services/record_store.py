"""Record store: keyed, change-detected writes for synced collections.

Flow (upsert):
1. Derive the document key from the candidate (network + id/sku/link hash)
2. Load the stored document unless the caller already has it
3. Skip when has_changed() says nothing differs (no write at all)
4. Otherwise merge-write the candidate fields plus a fresh updated_at

Notes:
- Untouched fields are preserved (merge semantics); a None in the candidate
  clears the field.
- partial=True is for writers that own a few fields (reconciliation, operator
  overrides): the candidate is compared merged over the stored document.
- Advertiser ids on offers/products are always written as strings.
- Each write is its own unit of work; there are no cross-document transactions.

Also owns the sync history log and the global settings blob (with a local
JSON file fallback for when the database is unreachable).
"""

import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affsync.models import Advertiser, Offer, Product, Setting, SyncLog
from affsync.services.change_detection import has_changed
from affsync.services.keys import EntityKind, advertiser_key, derive_key
from affsync.settings import get_settings
from affsync.stores.postgres import get_session
from affsync.utils.dates import utcnow

logger = logging.getLogger("uvicorn.error")

MODELS: dict[EntityKind, type[Advertiser] | type[Offer] | type[Product]] = {
    EntityKind.ADVERTISERS: Advertiser,
    EntityKind.OFFERS: Offer,
    EntityKind.PRODUCTS: Product,
}

GLOBAL_SETTINGS_KEY = "global"

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_UNSET: Any = object()


class UpsertStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of one upsert."""

    key: str
    status: UpsertStatus


class RecordStore:
    """Document-style access to advertisers, offers, products, logs and settings."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        settings_path: str | Path | None = None,
    ):
        self.session = session_factory
        self.settings_path = Path(settings_path or get_settings().settings_fallback_path)

    # ============================================================
    # Reads
    # ============================================================

    async def get(self, kind: EntityKind, key: str) -> dict[str, Any] | None:
        """Get the document view for a key, or None."""
        model = MODELS[kind]
        async with self.session() as session:
            row = await session.scalar(select(model).where(model.doc_key == key))
            return row.to_document() if row is not None else None

    async def get_advertiser(self, network: str, network_id: str) -> dict[str, Any] | None:
        return await self.get(EntityKind.ADVERTISERS, advertiser_key(network, network_id))

    async def list_keys(self, kind: EntityKind, network: str) -> set[str]:
        """All stored document keys for one network."""
        model = MODELS[kind]
        async with self.session() as session:
            result = await session.scalars(select(model.doc_key).where(model.network == network))
            return set(result.all())

    async def list_advertiser_ids(self, network: str | None = None) -> list[tuple[str, str]]:
        """(network, network_id) pairs of stored advertisers, ordered by key."""
        query = select(Advertiser.network, Advertiser.network_id).order_by(Advertiser.doc_key)
        if network:
            query = query.where(Advertiser.network == network)
        async with self.session() as session:
            result = await session.execute(query)
            return [(row.network, row.network_id) for row in result.all()]

    async def count_products(self, network: str, advertiser_id: str) -> tuple[int, int]:
        """(total, on sale) products owned by an advertiser.

        Matches the canonical string advertiser_id and, for numeric ids, the
        legacy integer column of rows imported before ids were canonicalized.
        """
        # Same rule as pricing.is_on_sale: a NULL price or sale price falls to else_.
        on_sale = case(
            (and_(Product.sale_price > 0, Product.sale_price < Product.price), 1),
            else_=0,
        )
        query = select(func.count(Product.id), func.coalesce(func.sum(on_sale), 0)).where(
            Product.network == network,
            _owned_by(Product, advertiser_id),
        )
        async with self.session() as session:
            total, sale = (await session.execute(query)).one()
            return int(total or 0), int(sale or 0)

    async def list_advertiser_offers(self, network: str, advertiser_id: str) -> list[dict[str, Any]]:
        """Offer documents owned by an advertiser (string or legacy numeric key)."""
        query = select(Offer).where(Offer.network == network, _owned_by(Offer, advertiser_id))
        async with self.session() as session:
            result = await session.scalars(query)
            return [offer.to_document() for offer in result.all()]

    # ============================================================
    # Writes
    # ============================================================

    async def upsert(
        self,
        kind: EntityKind,
        candidate: dict[str, Any],
        existing: dict[str, Any] | None = _UNSET,
        *,
        partial: bool = False,
    ) -> UpsertResult:
        """Create or update a document unless nothing changed.

        Args:
            kind: Target collection.
            candidate: Document fields to write (must include network and identity).
            existing: Stored document if the caller already loaded it (None = known absent).
            partial: Compare the candidate merged over the stored document.

        Returns:
            UpsertResult with the document key and created/updated/skipped.
        """
        candidate = _canonical(candidate)
        key = derive_key(kind, candidate)

        if existing is _UNSET:
            existing = await self.get(kind, key)

        compared = candidate
        if partial and existing is not None:
            # the stored source timestamp must not trigger the fast path
            compared = {**existing, **candidate, "network_updated_at": candidate.get("network_updated_at")}
        if not has_changed(compared, existing):
            return UpsertResult(key=key, status=UpsertStatus.SKIPPED)

        model = MODELS[kind]
        async with self.session() as session:
            row = await session.scalar(select(model).where(model.doc_key == key))
            status = UpsertStatus.UPDATED
            if row is None:
                row = model(doc_key=key)
                session.add(row)
                status = UpsertStatus.CREATED
            row.apply(candidate)
            row.updated_at = utcnow()

        return UpsertResult(key=key, status=status)

    async def delete_keys(self, kind: EntityKind, keys: list[str]) -> int:
        """Delete documents by key in one statement; returns the number deleted."""
        if not keys:
            return 0
        model = MODELS[kind]
        async with self.session() as session:
            result = await session.execute(delete(model).where(model.doc_key.in_(keys)))
            return result.rowcount or 0

    # ============================================================
    # Sync history
    # ============================================================

    async def append_sync_log(
        self,
        network: str,
        stats: dict[str, Any],
        duration_seconds: float,
        started_at: datetime,
        completed_at: datetime,
    ) -> None:
        async with self.session() as session:
            session.add(
                SyncLog(
                    network=network,
                    stats=stats,
                    duration_seconds=duration_seconds,
                    started_at=started_at,
                    completed_at=completed_at,
                )
            )

    async def get_sync_history(self, network: str | None = None, limit: int = 5) -> list[dict[str, Any]]:
        """Completed runs, newest first. network None or "all" means every network."""
        query = select(SyncLog).order_by(SyncLog.completed_at.desc(), SyncLog.id.desc()).limit(limit)
        if network and network != "all":
            query = query.where(SyncLog.network == network)
        async with self.session() as session:
            result = await session.scalars(query)
            return [log.to_dict() for log in result.all()]

    # ============================================================
    # Global settings (with local file fallback)
    # ============================================================

    async def get_global_settings(self) -> dict[str, Any]:
        try:
            async with self.session() as session:
                row = await session.get(Setting, GLOBAL_SETTINGS_KEY)
                if row is not None:
                    data = dict(row.data or {})
                    self._write_local_settings(data)
                    return data
        except (SQLAlchemyError, RuntimeError, OSError) as e:
            logger.warning(f"[settings] database read failed, using local copy: {e}")

        return self._read_local_settings()

    async def update_global_settings(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge `patch` into the settings blob; the local copy is written first."""
        current = await self.get_global_settings()
        merged = {**current, **patch, "updated_at": utcnow().isoformat()}
        self._write_local_settings(merged)

        try:
            async with self.session() as session:
                row = await session.get(Setting, GLOBAL_SETTINGS_KEY)
                if row is None:
                    session.add(Setting(key=GLOBAL_SETTINGS_KEY, data=merged))
                else:
                    row.data = merged
        except (SQLAlchemyError, RuntimeError, OSError) as e:
            logger.warning(f"[settings] database write failed, kept local copy only: {e}")

        return merged

    def _read_local_settings(self) -> dict[str, Any]:
        try:
            if self.settings_path.is_file():
                return json.loads(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[settings] failed to read local copy {self.settings_path}: {e}")
        return {}

    def _write_local_settings(self, data: dict[str, Any]) -> None:
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            self.settings_path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            logger.error(f"[settings] failed to write local copy {self.settings_path}: {e}")


def _canonical(candidate: dict[str, Any]) -> dict[str, Any]:
    """Coerce identifiers to their canonical string form."""
    out = dict(candidate)
    for field in ("network_id", "advertiser_id", "sku"):
        value = out.get(field)
        if value is not None and not isinstance(value, str):
            out[field] = str(value)
    return out


def _owned_by(model: type[Offer] | type[Product], advertiser_id: str):
    """Foreign-key filter with the legacy numeric dual read."""
    advertiser_id = str(advertiser_id)
    if advertiser_id.isdigit():
        return or_(model.advertiser_id == advertiser_id, model.legacy_advertiser_id == int(advertiser_id))
    return model.advertiser_id == advertiser_id
