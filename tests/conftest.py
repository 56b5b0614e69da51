import os
import sys
import pytest

# Ensure the project root (containing the `typerace` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from typerace import create_app, db


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROOM_CODE_LENGTH = 6
    ROOM_CODE_MAX_ATTEMPTS = 5
    MAX_NAME_LENGTH = 64
    SYNC_POLL_INTERVAL_SEC = 1.0
    AUTO_FINISH_ROOMS = True
    QUOTE_API_URL = ''
    QUOTE_API_TIMEOUT_SEC = 1.0
    CORS_ORIGINS = ['http://localhost:3000']


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import typerace.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_room(client):
    """Create a room over HTTP with a known text and return its code."""
    def _make(text='abcde'):
        res = client.post('/api/room/create', json={'text': text})
        assert res.status_code == 201
        return res.get_json()['code']
    return _make
