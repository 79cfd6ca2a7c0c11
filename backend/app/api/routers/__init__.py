"""
Routers API pour PaceLine.

Ce module regroupe tous les sous-routers et expose un router principal
a inclure dans l'application FastAPI.
"""
from fastapi import APIRouter

from app.api.routers.activity_router import router as activity_router
from app.api.routers.segment_router import router as segment_router
from app.api.routers.tracking_router import router as tracking_router
from app.api.routers._shared import limiter

router = APIRouter()

router.include_router(tracking_router)
router.include_router(activity_router)
router.include_router(segment_router)

__all__ = ["router", "limiter"]
