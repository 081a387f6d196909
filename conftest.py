import logging

import pytest

from sanctuary.session import new_session
from sanctuary.world import World, default_world


@pytest.fixture(autouse=True)
def _quiet_httpx():
    """httpx logs every request at INFO; keep test output readable."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    yield


@pytest.fixture
def world() -> World:
    return default_world()


@pytest.fixture
def state(world):
    """Fresh session at the starting landmark."""
    return new_session(world, journey_id="test-journey")


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path
