"""WB Desk - Main Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.adapters.storage import StorageAdapter, build_storage_adapter
from app.api.v1 import router as api_v1_router
from app.api.v1.deps import get_notifier, get_storage
from app.config import get_settings
from app.core.manager import ManagerResolver
from app.database import close_redis
from app.exceptions import setup_exception_handlers
from app.notifications.notifier import Notifier, create_notifier
from app.scanning import create_scanner

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting WB Desk v%s", settings.app_version)

    if not await app.state.storage.connect():
        logger.warning("Attachment storage is not writable, uploads will fail")

    logger.info("Antivirus mode: %s", app.state.scanner.mode)
    if not app.state.notifier.enabled:
        logger.info("SMTP not configured, email notifications disabled")

    yield

    # Shutdown
    logger.info("Shutting down WB Desk")
    await close_redis()


app = FastAPI(
    title=settings.app_name,
    description="Whistleblowing case intake with anonymous reporting and encrypted case threads",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else "/api/openapi.json",
    lifespan=lifespan,
)

# Process-wide components, replaced through dependency overrides in tests
app.state.manager_resolver = ManagerResolver(
    role=settings.wb_manager_role,
    ttl_seconds=settings.wb_manager_cache_ttl_seconds,
)
app.state.storage = build_storage_adapter(settings)
app.state.scanner = create_scanner(settings)
app.state.notifier = create_notifier(settings)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup exception handlers for standardized error responses
setup_exception_handlers(app)

# Include API routers
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check(
    storage: Annotated[StorageAdapter, Depends(get_storage)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
):
    """Health check endpoint.

    Storage is required for uploads; email is optional and only reported.
    """
    storage_health = await storage.health_check()
    return {
        "status": "healthy" if storage_health["status"] == "healthy" else "degraded",
        "components": {
            "storage": storage_health,
            "email": await notifier.health_check(),
        },
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "/api/openapi.json",
    }
