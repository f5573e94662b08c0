"""Request/response schemas for the admin sync API."""

from typing import Any

from pydantic import BaseModel, Field


class PassCountersOut(BaseModel):
    checked: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    pruned: int = 0


class NetworkStatus(BaseModel):
    """Live run state of one network."""

    network: str
    status: str
    advertisers: PassCountersOut
    offers: PassCountersOut
    products: PassCountersOut
    error: str | None = None
    started_at: str | None = None
    completed_at: str | None = None


class SyncStatusResponse(BaseModel):
    is_running: bool
    active_operation: str | None = None
    networks: dict[str, NetworkStatus]


class SyncRunResponse(BaseModel):
    """Outcome of a sync trigger."""

    success: bool = True
    networks: dict[str, NetworkStatus]
    reconcile: dict[str, int] | None = None


class ReconcileResponse(BaseModel):
    success: bool = True
    stats: dict[str, int]


class SyncLogEntry(BaseModel):
    id: int
    network: str
    stats: dict[str, Any]
    duration_seconds: float
    started_at: str | None = None
    completed_at: str | None = None


class SyncHistoryResponse(BaseModel):
    network: str
    logs: list[SyncLogEntry]


class DescriptionUpdate(BaseModel):
    description: str | None = None


class CategoriesUpdate(BaseModel):
    categories: list[str] = Field(default_factory=list)


class HomeLinkUpdate(BaseModel):
    home_link: str | None = None


class LogoUploadResponse(BaseModel):
    success: bool = True
    url: str


class AdvertiserResponse(BaseModel):
    """Advertiser document after an override."""

    success: bool = True
    advertiser: dict[str, Any]
