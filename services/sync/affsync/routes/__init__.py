"""API routes."""

from fastapi import APIRouter

from affsync.routes import admin

api_router = APIRouter()

# Admin endpoints (sync triggers, status, advertiser overrides)
api_router.include_router(admin.router, prefix="/v1/admin", tags=["admin"])
