"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.admin import router as admin_router, tokens_router
from app.api.routes.metadata import router as metadata_router
from app.api.routes.stats import router as stats_router
from app.api.routes.webhooks import router as webhooks_router

router = APIRouter()

router.include_router(stats_router, tags=["stats"])
router.include_router(metadata_router, tags=["metadata"])
router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
router.include_router(tokens_router, prefix="/auth", tags=["auth"])
