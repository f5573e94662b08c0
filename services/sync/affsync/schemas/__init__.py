"""Pydantic schemas for API request/response validation."""

from affsync.schemas.common import ErrorDetail, ErrorResponse
from affsync.schemas.sync import (
    AdvertiserResponse,
    CategoriesUpdate,
    DescriptionUpdate,
    HomeLinkUpdate,
    LogoUploadResponse,
    NetworkStatus,
    ReconcileResponse,
    SyncHistoryResponse,
    SyncLogEntry,
    SyncRunResponse,
    SyncStatusResponse,
)

__all__ = [
    "AdvertiserResponse",
    "CategoriesUpdate",
    "DescriptionUpdate",
    "ErrorDetail",
    "ErrorResponse",
    "HomeLinkUpdate",
    "LogoUploadResponse",
    "NetworkStatus",
    "ReconcileResponse",
    "SyncHistoryResponse",
    "SyncLogEntry",
    "SyncRunResponse",
    "SyncStatusResponse",
]
