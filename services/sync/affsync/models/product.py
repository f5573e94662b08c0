"""Product model.

Catalog item tied to an advertiser. Prices are numeric (parsed at the adapter
boundary); search_keywords backs the storefront's prefix search.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from affsync.models.document import DocumentMixin
from affsync.stores.postgres import Base


class Product(DocumentMixin, Base):
    """Catalog item synced from one affiliate network."""

    __tablename__ = "products"

    DOCUMENT_FIELDS = (
        "network",
        "network_id",
        "sku",
        "advertiser_id",
        "advertiser_name",
        "name",
        "price",
        "sale_price",
        "currency",
        "link",
        "image_url",
        "storage_image_url",
        "description",
        "search_keywords",
        "raw_data",
        "network_updated_at",
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Document key: "{network}-{network_id|sku}" or md5(link + network)
    doc_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    network: Mapped[str] = mapped_column(String(50), index=True)
    network_id: Mapped[str | None] = mapped_column(String(200))
    sku: Mapped[str | None] = mapped_column(String(200))

    # Owning advertiser (canonical string id)
    advertiser_id: Mapped[str | None] = mapped_column(String(100), index=True)
    # Rows imported while ids were numeric; read only by reconciliation.
    legacy_advertiser_id: Mapped[int | None] = mapped_column(Integer, index=True)
    advertiser_name: Mapped[str | None] = mapped_column(String(300))

    name: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)

    # Pricing
    price: Mapped[float | None] = mapped_column()
    sale_price: Mapped[float | None] = mapped_column()
    currency: Mapped[str | None] = mapped_column(String(3))

    link: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    storage_image_url: Mapped[str | None] = mapped_column(Text)

    search_keywords: Mapped[list[str] | None] = mapped_column(JSON)
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Timestamps
    network_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Product {self.doc_key} ({self.name})>"
