"""Advertiser model.

A merchant/brand the publisher is affiliated with, identified per network.
Counters and derived flags are denormalized here by reconciliation so the
storefront can filter brands without scanning products/offers.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from affsync.models.document import DocumentMixin
from affsync.stores.postgres import Base


class Advertiser(DocumentMixin, Base):
    """Advertiser (brand) synced from one affiliate network."""

    __tablename__ = "advertisers"

    DOCUMENT_FIELDS = (
        "network",
        "network_id",
        "name",
        "status",
        "url",
        "country",
        "description",
        "manual_description",
        "categories",
        "logo_url",
        "storage_logo_url",
        "is_manual_logo",
        "is_manual_category",
        "affiliate_home_url",
        "manual_home_url",
        "product_count",
        "offer_count",
        "sale_product_count",
        "has_promo_codes",
        "has_sale_items",
        "raw_data",
        "network_updated_at",
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Document key: "{network}-{network_id}"
    doc_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    # Identity
    network: Mapped[str] = mapped_column(String(50), index=True)
    network_id: Mapped[str] = mapped_column(String(100), index=True)

    # Network-sourced profile
    name: Mapped[str | None] = mapped_column(String(300))
    status: Mapped[str | None] = mapped_column(String(50))
    url: Mapped[str | None] = mapped_column(Text)
    country: Mapped[str | None] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text)
    categories: Mapped[list[str] | None] = mapped_column(JSON)

    # Operator-owned fields (never written by sync)
    manual_description: Mapped[str | None] = mapped_column(Text)
    manual_home_url: Mapped[str | None] = mapped_column(Text)

    # Logo
    logo_url: Mapped[str | None] = mapped_column(Text)
    storage_logo_url: Mapped[str | None] = mapped_column(Text)

    # Sticky flags
    is_manual_logo: Mapped[bool | None] = mapped_column()
    is_manual_category: Mapped[bool | None] = mapped_column()

    # Tracking deep link to the advertiser home page
    affiliate_home_url: Mapped[str | None] = mapped_column(Text)

    # Denormalized counters (reconciliation)
    product_count: Mapped[int | None] = mapped_column(Integer)
    offer_count: Mapped[int | None] = mapped_column(Integer)
    sale_product_count: Mapped[int | None] = mapped_column(Integer)
    has_promo_codes: Mapped[bool | None] = mapped_column()
    has_sale_items: Mapped[bool | None] = mapped_column()

    # Last-seen source record
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Timestamps
    network_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Advertiser {self.doc_key} ({self.name})>"
