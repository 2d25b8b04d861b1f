"""Admin API: Grist API key, Grist browsing and automations. Public agents only."""

from fastapi import APIRouter

from gristips.api.admin.automations import router as automations_router
from gristips.api.admin.grist import router as grist_router
from gristips.api.admin.grist_api_key import router as grist_api_key_router

router = APIRouter()

router.include_router(grist_api_key_router)
router.include_router(grist_router)
router.include_router(automations_router)
