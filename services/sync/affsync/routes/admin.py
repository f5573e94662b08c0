"""Admin endpoints for sync runs and advertiser overrides.

These endpoints are intended for the admin dashboard and cron callers.
In production, put them behind authentication (API key or admin token).
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from affsync.schemas.sync import (
    AdvertiserResponse,
    CategoriesUpdate,
    DescriptionUpdate,
    HomeLinkUpdate,
    LogoUploadResponse,
    ReconcileResponse,
    SyncHistoryResponse,
    SyncRunResponse,
    SyncStatusResponse,
)
from affsync.services import operator
from affsync.services.image_cache import ImageStoreError
from affsync.services.operator import AdvertiserNotFoundError
from affsync.services.orchestrator import SyncOrchestrator, get_orchestrator
from affsync.services.sync_state import SyncInProgressError, UnknownNetworkError

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _resolve(orchestrator: SyncOrchestrator, network: str) -> str:
    try:
        return orchestrator.resolve_network(network)
    except UnknownNetworkError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


# ============================================================
# Sync triggers
# ============================================================


@router.post("/sync", response_model=SyncRunResponse)
async def trigger_full_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    """Run a full sync (all networks, three phases, then reconciliation).

    The call returns when the run is finished.
    """
    try:
        return await orchestrator.run_full_sync()
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/sync/{network}", response_model=SyncRunResponse)
async def trigger_network_sync(
    network: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Run a sync for a single network."""
    network = _resolve(orchestrator, network)
    try:
        return await orchestrator.run_network_sync(network)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/reconcile", response_model=ReconcileResponse)
async def trigger_reconcile(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> ReconcileResponse:
    """Recompute advertiser counters from current products and offers."""
    try:
        stats = await orchestrator.reconcile_all()
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return ReconcileResponse(stats=stats)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.get_status()


@router.get("/sync/history", response_model=SyncHistoryResponse)
async def get_sync_history(
    network: str = Query(default="all"),
    limit: int = Query(default=5, ge=1, le=100),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Completed runs, newest first."""
    try:
        logs = await orchestrator.get_history(network, limit)
    except UnknownNetworkError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"network": network, "logs": logs}


# ============================================================
# Global settings
# ============================================================


@router.get("/settings")
async def get_global_settings(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return await orchestrator.store.get_global_settings()


@router.put("/settings")
async def update_global_settings(
    patch: dict[str, Any],
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await orchestrator.store.update_global_settings(patch)


# ============================================================
# Advertiser overrides
# ============================================================


@router.post("/advertisers/{network}/{network_id}/logo", response_model=LogoUploadResponse)
async def upload_advertiser_logo(
    network: str,
    network_id: str,
    file: UploadFile = File(...),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> LogoUploadResponse:
    """Upload a logo and pin it against sync overwrites."""
    network = _resolve(orchestrator, network)
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail=f"Not an image: {file.content_type}")
    data = await file.read()
    try:
        url = await operator.upload_logo(
            orchestrator.store,
            orchestrator.image_cache,
            network,
            network_id,
            data,
            file.content_type,
        )
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ImageStoreError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return LogoUploadResponse(url=url)


@router.delete("/advertisers/{network}/{network_id}/logo", response_model=AdvertiserResponse)
async def reset_advertiser_logo(
    network: str,
    network_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> AdvertiserResponse:
    network = _resolve(orchestrator, network)
    try:
        advertiser = await operator.reset_logo(orchestrator.store, network, network_id)
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AdvertiserResponse(advertiser=advertiser)


@router.put("/advertisers/{network}/{network_id}/description", response_model=AdvertiserResponse)
async def update_advertiser_description(
    network: str,
    network_id: str,
    body: DescriptionUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> AdvertiserResponse:
    network = _resolve(orchestrator, network)
    try:
        advertiser = await operator.set_manual_description(orchestrator.store, network, network_id, body.description)
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AdvertiserResponse(advertiser=advertiser)


@router.put("/advertisers/{network}/{network_id}/categories", response_model=AdvertiserResponse)
async def update_advertiser_categories(
    network: str,
    network_id: str,
    body: CategoriesUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> AdvertiserResponse:
    network = _resolve(orchestrator, network)
    try:
        advertiser = await operator.set_manual_categories(orchestrator.store, network, network_id, body.categories)
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AdvertiserResponse(advertiser=advertiser)


@router.delete("/advertisers/{network}/{network_id}/categories", response_model=AdvertiserResponse)
async def clear_advertiser_categories(
    network: str,
    network_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> AdvertiserResponse:
    network = _resolve(orchestrator, network)
    try:
        advertiser = await operator.clear_manual_categories(orchestrator.store, network, network_id)
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AdvertiserResponse(advertiser=advertiser)


@router.put("/advertisers/{network}/{network_id}/home-link", response_model=AdvertiserResponse)
async def update_advertiser_home_link(
    network: str,
    network_id: str,
    body: HomeLinkUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> AdvertiserResponse:
    network = _resolve(orchestrator, network)
    try:
        advertiser = await operator.set_home_link(orchestrator.store, network, network_id, body.home_link)
    except AdvertiserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return AdvertiserResponse(advertiser=advertiser)
