"""Affiliate Sync API: admin surface over the Rakuten, CJ, AWIN and Pepperjam sync engine."""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from affsync.routes import api_router
from affsync.schemas.common import error_body
from affsync.services.orchestrator import close_orchestrator
from affsync.settings import get_settings
from affsync.stores.postgres import init_db, close_db, ping_db
from affsync.stores.redis import init_redis, close_redis

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect stores on startup; close the orchestrator's clients and the stores on shutdown."""
    try:
        await init_db()
        await ping_db()
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    # Redis is optional: without it there is no brand cache and the sync lock is in-process only.
    try:
        await init_redis()
    except Exception:
        logger.exception("Redis init failed, continuing without it")

    yield

    await close_orchestrator()
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Affiliate network sync engine",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        """Anything not mapped by a route becomes an INTERNAL_ERROR envelope."""
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        detail = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", detail))

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(api_router)
    # Cached images and uploads when no bucket is configured.
    app.mount(
        settings.local_upload_url_prefix,
        StaticFiles(directory=settings.local_upload_dir, check_dir=False),
        name="uploads",
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("affsync.main:app", host=settings.host, port=settings.port, reload=settings.debug)
