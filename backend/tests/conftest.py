import logging
import os
import sys
import pytest

# Ensure the backend root (containing the `liehard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from liehard import create_app, db, socketio
from liehard.gateway import Broadcaster
from liehard.services.games import GameService
from liehard.store import InMemoryRoomStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/ws'
    ROOM_STORE = 'memory'
    MIN_PLAYERS = 2


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that keeps every outbound event for assertions."""

    def __init__(self):
        self.events = []  # (target, event, payload)
        self.closed = []

    def broadcast(self, room_id, event, payload):
        self.events.append((('room', room_id), event, payload))

    def send(self, player_id, event, payload):
        self.events.append((('player', player_id), event, payload))

    def close_room(self, room_id):
        self.closed.append(room_id)

    def names(self):
        return [event for _, event, _ in self.events]

    def last(self, event):
        for _, name, payload in reversed(self.events):
            if name == event:
                return payload
        return None

    def clear(self):
        self.events.clear()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import liehard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws',
        auth={'name': 'Alice'},
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def make_game():
    # Timers are armed but never started; tests fire them by hand
    def factory(store=None, broadcaster=None, **config):
        return GameService(
            store=store or InMemoryRoomStore(),
            broadcaster=broadcaster or RecordingBroadcaster(),
            logger=logging.getLogger('liehard.tests'),
            config=config,
            timers_enabled=False,
        )
    return factory


@pytest.fixture()
def game(make_game, broadcaster):
    return make_game(broadcaster=broadcaster, MIN_PLAYERS=2, ROOM_CODE_LENGTH=6, CHAT_HISTORY_LIMIT=5)


@pytest.fixture()
def trio(game):
    """Room ROOM01 with Alice (host), Bob and Carol, still waiting."""
    game.create_room('alice', 'Alice', room_id='room01')
    game.join_room('ROOM01', 'bob', 'Bob')
    game.join_room('ROOM01', 'carol', 'Carol')
    return 'ROOM01'
