"""Read-only world configuration."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/world")
async def get_world(request: Request):
    """Realm, landmarks and companions as loaded at startup."""
    world = request.app.state.world
    return {
        "name": world.name,
        "description": world.description,
        "start_landmark": world.start_landmark,
        "landmarks": [lm.model_dump() for lm in world.landmarks],
        "companions": [
            {
                "id": c.id,
                "name": c.name,
                "title": c.title,
                "color": c.color,
                "role": c.role,
            }
            for c in world.companions
        ],
    }
