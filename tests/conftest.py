"""
Root pytest configuration and fixtures for unit and integration tests.
"""
import os
import sys
import uuid
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Test configuration
os.environ['FLASK_ENV'] = 'testing'
os.environ.setdefault('SESSION_SECRET', 'test-secret-key-for-testing-only')


@pytest.fixture(scope='function')
def app():
    """
    Fresh Flask app on its own in-memory database.

    No app context is left pushed: test client requests must each get their
    own context (and their own flask.g) as they do in production.
    """
    from app import create_app
    from models import db

    test_app = create_app('testing')

    with test_app.app_context():
        db.create_all()

    yield test_app

    with test_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def app_ctx(app):
    """Push an app context for tests that call services directly."""
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    App on a file-backed SQLite database.

    Needed wherever several threads must see the same data through separate
    connections; the in-memory database is a single shared connection.
    """
    from app import create_app
    from models import db

    db_path = tmp_path / 'board.db'
    test_app = create_app('testing', overrides={
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
    })

    with test_app.app_context():
        db.create_all()

    yield test_app

    with test_app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app_ctx):
    """Create a database session for testing."""
    from models import db

    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def task_service(app_ctx):
    from services.task_service import get_task_service

    return get_task_service()


def _make_user(session, name='Test User', password='testpassword123'):
    from models import User

    unique_id = str(uuid.uuid4())[:8]
    user = User(name=f'{name} {unique_id}', email=f'test_{unique_id}@example.com')
    user.set_password(password)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def test_user(db_session):
    """Create a test user."""
    return _make_user(db_session)


@pytest.fixture(scope='function')
def other_user(db_session):
    """A second owner whose tasks must stay invisible to test_user."""
    return _make_user(db_session, name='Other User')


@pytest.fixture(scope='function')
def make_api_user(app):
    """
    Factory creating a user plus bearer token outside any lingering app
    context. Returns {'id': ..., 'headers': {...}}.
    """
    from models import db
    from utils.auth import issue_token

    def _factory(name='Api User'):
        with app.app_context():
            user = _make_user(db.session, name)
            token = issue_token(user, 'pytest')
            info = {'id': user.id, 'headers': {'Authorization': f'Bearer {token}'}}
        return info
    return _factory


@pytest.fixture(scope='function')
def auth_headers(make_api_user):
    """Bearer token headers for a fresh API user."""
    return make_api_user()['headers']


@pytest.fixture(scope='function')
def make_tasks(task_service):
    """
    Append tasks in order and return them as a {title: id} map.

        ids = make_tasks(owner_id, 'backlog', ['T1', 'T2', 'T3'])
    """
    def _factory(owner_id, stage, titles):
        ids = {}
        for title in titles:
            result = task_service.append(owner_id, stage, {'title': title, 'description': f'{title} description'})
            assert result.ok, result.error
            ids[title] = result.value.id
        return ids
    return _factory


def bucket_snapshot(session, owner_id, stage):
    """[(title, position), ...] of one bucket in position order."""
    from sqlalchemy import select
    from models import Task

    rows = session.execute(
        select(Task.title, Task.position)
        .where(Task.user_id == owner_id, Task.stage == stage)
        .order_by(Task.position, Task.id)
    ).all()
    return [(row.title, row.position) for row in rows]


@pytest.fixture(scope='function')
def snapshot(db_session):
    """Callable returning bucket_snapshot for the current session."""
    def _snapshot(owner_id, stage):
        db_session.expire_all()
        return bucket_snapshot(db_session, owner_id, stage)
    return _snapshot
