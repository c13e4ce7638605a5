import os
import sys
import time
import pytest

# Ensure the project root (containing `config` and the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from livequiz import create_app, db, socketio, repository
from livequiz.entities import Player, Question, Quiz, new_id


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = []
    QUESTION_TIME_LIMIT_SEC = 30
    RESULTS_DURATION_SEC = 6
    JOIN_CODE_LENGTH = 6
    MIN_PLAYERS = 1
    HOST_DISCONNECT_GRACE_SEC = 0.1


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
    # No context stays pushed: each test-client request gets its own, so the
    # signed-in user is never shared between clients
    yield application
    application.extensions['question_timer'].cancel_all()
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """For tests that call services and the store directly."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def timer(flask_app):
    return flask_app.extensions['question_timer']


@pytest.fixture()
def make_question():
    def _make(correct=2, time_limit=30, text='Pick one'):
        return Question(id=new_id(), text=text, options=['A', 'B', 'C', 'D'], correct_answer=correct, time_limit=time_limit)
    return _make


@pytest.fixture()
def make_quiz(flask_app, make_question):
    def _make(questions=None, created_by='host-1', title='Quiz'):
        now = time.time()
        quiz = Quiz(
            id=new_id(),
            title=title,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            questions=[make_question()] if questions is None else questions,
        )
        return repository.save_quiz(quiz)
    return _make


@pytest.fixture()
def add_player(flask_app):
    def _add(game_id, player_id, name=None, score=0, joined_at=None):
        player = Player(
            id=player_id,
            name=name or player_id.title(),
            joined_at=time.time() if joined_at is None else joined_at,
            score=score,
        )
        repository.add_player(game_id, player)
        return player
    return _add


@pytest.fixture()
def make_user(flask_app):
    """Register a user on its own test client; returns ``(client, uid)``."""
    def _make(username, display_name=None):
        test_client = flask_app.test_client()
        res = test_client.post('/register', json={
            'username': username,
            'password': 'password',
            'display_name': display_name,
        })
        assert res.status_code == 201
        return test_client, res.get_json()['user']['id']
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
