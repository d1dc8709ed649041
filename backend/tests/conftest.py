import os
import sys
import pytest

# Ensure the backend root (containing the `charades` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from charades import create_app, db, socketio
from charades.services.charades.state import Session, TaskAssignment


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']
    REVEAL_DURATION_SEC = 4.0
    WARNING_THRESHOLD_SEC = 5
    MIN_PLAYERS = 2
    DEFAULT_TASKS_PER_PLAYER = 2
    DEFAULT_ROUND_TIME_SEC = 60
    INFINITE_ROUND_TIME_SEC = 9999


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import charades.models  # noqa: F401
        db.create_all()
    # No app context held here: every request and socket event gets its own g
    yield application
    with application.app_context():
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
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


def _register(flask_app, nickname, pin='1234'):
    """A logged-in test client for a fresh player, plus the player's id."""
    player_client = flask_app.test_client()
    res = player_client.post('/register', json={'nickname': nickname, 'pin': pin})
    assert res.status_code == 201, res.get_json()
    return player_client, res.get_json()['user']['id']


@pytest.fixture()
def players(flask_app):
    """Three logged-in players; the first one hosts."""
    return [_register(flask_app, name) for name in ('alice', 'bob', 'cara')]


@pytest.fixture()
def make_queue():
    def _make(player_order, tasks_per_player):
        queue = []
        for pid in player_order:
            for n in range(tasks_per_player):
                queue.append(TaskAssignment(narrator_id=pid, task_id=f'{pid}-{n}', task_content=f'prompt {pid}{n}'))
        return queue
    return _make


@pytest.fixture()
def sessions():
    return {pid: Session(player_id=pid, nickname=pid.lower()) for pid in ('A', 'B', 'C')}


@pytest.fixture()
def register_player(flask_app):
    return lambda nickname, pin='1234': _register(flask_app, nickname, pin)
