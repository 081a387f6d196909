import logging
from pathlib import Path

from fastapi import FastAPI

from backend.routes import router
from backend.sessions import SessionRegistry
from sanctuary.config import Settings, build_gateway, load_settings
from sanctuary.llm import Gateway
from sanctuary.storage import JourneyStore, MessageLog
from sanctuary.world import World, default_world, load_world

logger = logging.getLogger(__name__)


def create_app(
    data_dir: Path | None = None,
    gateway: Gateway | None = None,
    world: World | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    resolved = data_dir or settings.data_dir
    if world is None:
        world = load_world(settings.world_file) if settings.world_file else default_world()

    app = FastAPI(title="Crystal Sanctuary")
    app.state.world = world
    app.state.sessions = SessionRegistry(
        world=world,
        gateway=gateway or build_gateway(settings),
        journeys=JourneyStore(resolved),
        message_log=MessageLog(resolved),
    )
    app.include_router(router, prefix="/api")

    logger.info("data dir %s, world %r", resolved, world.name)
    return app
