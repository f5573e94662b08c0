"""SyncLog model.

Append-only record of a completed network sync run.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from affsync.stores.postgres import Base


class SyncLog(Base):
    """Completed sync run: counters and timing."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    network: Mapped[str] = mapped_column(String(50), index=True)

    # {"advertisers": {...}, "offers": {...}, "products": {...}}
    stats: Mapped[dict[str, Any]] = mapped_column(JSON)
    duration_seconds: Mapped[float] = mapped_column()

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "network": self.network,
            "stats": self.stats,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
