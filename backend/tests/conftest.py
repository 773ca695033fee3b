import os
import sys
import pytest

# Ensure the backend root (containing the `memebattle` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from memebattle import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIN_PLAYERS = 2
    DEFAULT_TOTAL_ROUNDS = 2


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import memebattle.models  # noqa: F401
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
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def make_lobby(flask_app):
    """Build a lobby with the given player uids directly in the database."""
    from memebattle.models import Lobby, Player, GameState

    def _make(uids=('A', 'B', 'C', 'D'), competitive=False, total_rounds=2, ai=()):
        lobby = Lobby(host_uid=uids[0], competitive=competitive, total_rounds=total_rounds)
        lobby.game_state = GameState()
        for uid in uids:
            lobby.players.append(Player(uid=uid, name=f'Player {uid}', is_ai=uid in ai))
        db.session.add(lobby)
        db.session.commit()
        return lobby

    return _make
