"""
API routers for ALMA.
"""

from fastapi import APIRouter

from .conversations import router as conversations_router
from .health import router as health_router
from .transcripts import router as transcripts_router
from .voice import router as voice_router

# Main router that aggregates all sub-routers
router = APIRouter()

router.include_router(health_router)
router.include_router(transcripts_router)
router.include_router(conversations_router)
router.include_router(voice_router)
