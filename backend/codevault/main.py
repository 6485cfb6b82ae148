"""
CodeVault - API tier FastAPI application
Accepts codebase uploads, records them in the metadata ledger and serves
listings, file content, downloads and ZIP archives via the storage tier.
"""

from contextlib import asynccontextmanager
from pathlib import Path
import asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import logging

from codevault.db.database import async_session_maker, close_db, init_db
from codevault.core.config import settings
from codevault.core.logging import configure_logging
from codevault.api.routes import upload, codebases
from codevault.api.exception_handlers import setup_exception_handlers
from codevault.api.middleware import BodySizeLimitMiddleware
from codevault.api.schemas import HealthResponse
from codevault.services.storage_client import get_storage_client, reset_storage_client
from codevault.services.reconciliation import reconciliation_loop

configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger("codevault.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

    await init_db()
    logger.info("Database tables created")

    storage = get_storage_client()
    logger.info(f"Storage server URL: {storage.base_url}")
    health = await storage.health_check()
    if health.get("status") != "ok":
        logger.warning(f"Storage service not healthy at startup: {health}")

    reconcile_task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        reconcile_task = asyncio.create_task(reconciliation_loop(
            async_session_maker,
            storage,
            settings.RECONCILE_INTERVAL_SECONDS,
            delete_orphans=settings.RECONCILE_DELETE_ORPHANS,
        ))
        logger.info(f"Reconciliation task started (every {settings.RECONCILE_INTERVAL_SECONDS}s)")

    logger.info(f"{settings.APP_NAME} started successfully!")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")

    if reconcile_task is not None:
        reconcile_task.cancel()
        try:
            await reconcile_task
        except asyncio.CancelledError:
            pass
    await reset_storage_client()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Request body cap (added first so CORS wraps its responses)
app.add_middleware(BodySizeLimitMiddleware, max_bytes=lambda: settings.max_upload_bytes)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Setup centralized exception handlers
setup_exception_handlers(app)

# Include routers
app.include_router(upload.router)
app.include_router(codebases.router)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check"""
    return HealthResponse(status="ok", service="codevault-api", version=settings.APP_VERSION)


# Serve the frontend last so API routes take precedence
if settings.STATIC_DIR and Path(settings.STATIC_DIR).is_dir():
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")
    logger.info(f"Serving frontend from {settings.STATIC_DIR}")


def run():
    """Console entry point: codevault-api"""
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
