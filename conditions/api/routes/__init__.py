"""
API Routes
"""
from fastapi import APIRouter

from conditions.api.routes.cron import router as cron_router
from conditions.api.webhooks.whatsapp_cloud import router as whatsapp_router

router = APIRouter()

router.include_router(cron_router, prefix="/cron", tags=["cron"])
router.include_router(whatsapp_router, prefix="/whatsapp", tags=["webhooks"])
