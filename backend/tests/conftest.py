import random

import pytest

from bgtimeline.config import Config
from bgtimeline.game.models import Item, Player, Room
from bgtimeline.game.registry import RoomRegistry
from bgtimeline.server import create_app


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    TRUST_PROXY_HEADERS = False
    CATALOG_FETCH_IMAGES = False
    SAVE_DEBOUNCE_SEC = 60.0


def make_items(count, start_year=1900):
    return [Item(id=str(i), name=f"Game {i}", year=start_year + i) for i in range(count)]


class FakeCatalog:
    """Hands out a fixed deck; no shuffling so tests can predict draws."""

    def __init__(self, items=None):
        self.items = list(items if items is not None else make_items(40))
        self.calls = 0

    def fetch_shuffled_items(self, min_count):
        self.calls += 1
        return list(self.items)


@pytest.fixture()
def catalog():
    return FakeCatalog()


@pytest.fixture()
def registry(catalog):
    return RoomRegistry(catalog=catalog, rng=random.Random(7))


@pytest.fixture()
def alice():
    return Player(id="sid-alice", name="Alice")


@pytest.fixture()
def bob():
    return Player(id="sid-bob", name="Bob")


@pytest.fixture()
def lobby_room(registry, alice, bob) -> Room:
    room = registry.create_room(alice)
    registry.join_room(room.code, bob)
    return room


@pytest.fixture()
def flask_app(tmp_path, catalog):
    cfg = type("Cfg", (TestConfig,), {"DATA_DIR": str(tmp_path)})
    application, socketio = create_app(cfg, catalog=catalog)
    application.extensions["test.socketio"] = socketio
    yield application
    application.extensions["bgtimeline.registry"].flush()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def app_registry(flask_app) -> RoomRegistry:
    return flask_app.extensions["bgtimeline.registry"]


@pytest.fixture()
def sio_factory(flask_app):
    socketio = flask_app.extensions["test.socketio"]
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _make

    for c in clients:
        try:
            if c.is_connected():
                c.disconnect()
        except Exception:
            pass
