import os
import sys
import random
import pytest

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, db, socketio
from bingo.store import MemoryDocumentStore
from bingo.services.games import GameLifecycle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    DOCUMENT_STORE = 'sql'
    DEFAULT_MAX_PLAYERS = 4
    MAX_PLAYERS_LIMIT = 20
    SUPPORTED_BOARD_SIZES = (3, 4, 5, 6)
    INVITE_CODE_ATTEMPTS = 10


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import bingo.models  # noqa: F401
        db.create_all()
    # Yield outside the app context so each request/socket event gets its own
    # context (and its own flask_login user cache on `g`).
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_client(flask_app):
    """Factory for a test client logged in as a fresh guest user."""
    def _make(name):
        c = flask_app.test_client()
        res = c.post('/api/auth/guest', json={'display_name': name})
        assert res.status_code == 201
        c.user = res.get_json()['user']
        return c
    return _make


@pytest.fixture()
def sio_client(flask_app, client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=client,
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def store():
    return MemoryDocumentStore()


@pytest.fixture()
def lifecycle(store):
    return GameLifecycle(store, rng=random.Random(1234))
