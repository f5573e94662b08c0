"""Offer model.

A coupon or promotional link tied to an advertiser. The code column holds
only real codes; network sentinels ("N/A", "No Code Necessary") are stored
as NULL.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from affsync.models.document import DocumentMixin
from affsync.stores.postgres import Base


class Offer(DocumentMixin, Base):
    """Coupon/promotion synced from one affiliate network."""

    __tablename__ = "offers"

    DOCUMENT_FIELDS = (
        "network",
        "network_id",
        "advertiser_id",
        "advertiser_name",
        "description",
        "code",
        "start_date",
        "end_date",
        "link",
        "image_url",
        "network_updated_at",
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Document key: "{network}-{network_id}" or md5(link + network)
    doc_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    network: Mapped[str] = mapped_column(String(50), index=True)
    network_id: Mapped[str | None] = mapped_column(String(100))

    # Owning advertiser (canonical string id)
    advertiser_id: Mapped[str | None] = mapped_column(String(100), index=True)
    # Rows imported while ids were numeric; read only by reconciliation.
    legacy_advertiser_id: Mapped[int | None] = mapped_column(Integer, index=True)
    advertiser_name: Mapped[str | None] = mapped_column(String(300))

    description: Mapped[str | None] = mapped_column(Text)
    code: Mapped[str | None] = mapped_column(String(100))

    # Validity window (either side open-ended when NULL)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)

    link: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    network_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Offer {self.doc_key} code={self.code}>"
