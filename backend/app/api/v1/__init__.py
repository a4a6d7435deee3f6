"""API v1 router."""

from fastapi import APIRouter

from app.api.v1 import auth, wb_manager, wb_public, wb_reporter

router = APIRouter()

# Session identity
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])

# Whistleblowing endpoints
router.include_router(wb_public.router, prefix="/wb", tags=["Whistleblowing - Public"])
router.include_router(wb_reporter.router, prefix="/wb", tags=["Whistleblowing - Reporter"])
router.include_router(wb_manager.router, prefix="/wb/manager", tags=["Whistleblowing - Manager"])
