"""FastAPI API endpoints under /api.

Endpoint groups: health, world (read-only configuration), journeys
(start/resume, chat turns, landmark moves, reset, message log). Each
journey's child resources are nested under /api/journeys/{journey_id}/.
"""

from fastapi import APIRouter

from .journeys import router as journeys_router
from .settings import router as settings_router
from .world import router as world_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(world_router)
router.include_router(journeys_router)
