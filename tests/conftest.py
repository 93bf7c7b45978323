import pytest
import sys
import os
from datetime import datetime

# Add backend directory to sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import create_app
from models import db, User, Course, Unit
from seeder import DatabaseSeeder

NOW = datetime(2025, 10, 17, 12, 0, 0)
COURSE_CODE = 'software-design-pattern'


def _set_test_env(monkeypatch, database_url):
    monkeypatch.setenv('DATABASE_URL', database_url)
    monkeypatch.setenv('SECRET_KEY', 'test-secret-key-with-enough-bytes-for-hs256')
    monkeypatch.setenv('JWT_SECRET', 'test-jwt-secret-with-enough-bytes-for-hs256')
    monkeypatch.setenv('ENABLE_DEV_LOGIN', 'true')
    monkeypatch.setenv('ENABLE_MOCK_PURCHASE', 'true')
    monkeypatch.setenv('ADMIN_CRON_KEY', 'test-cron-key')
    monkeypatch.setenv('ORDER_PAY_DEADLINE_HOURS', '72')


@pytest.fixture
def app(monkeypatch):
    """Create and configure a new app instance for each test."""
    # Use a temporary database for testing
    _set_test_env(monkeypatch, 'sqlite:///:memory:')

    app = create_app('testing')

    # Create tables
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(monkeypatch, tmp_path):
    """
    App on a file-backed SQLite database, seeded, with no app context held.
    Each thread pushes its own context and so gets its own session and
    connection.
    """
    _set_test_env(monkeypatch, f"sqlite:///{tmp_path / 'storefront-test.db'}")

    app = create_app('testing')
    with app.app_context():
        db.create_all()
        DatabaseSeeder().run()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def course(app):
    """Seed demo content and return the main course"""
    DatabaseSeeder().run()
    return Course.query.filter_by(code=COURSE_CODE).first()


@pytest.fixture
def user(course):
    return User.query.filter_by(external_id='seed-user-1').first()


@pytest.fixture
def other_user(course):
    return User.query.filter_by(external_id='seed-user-2').first()


@pytest.fixture
def preview_unit(course):
    return Unit.query.filter_by(course_code=course.code, title='Welcome').first()


@pytest.fixture
def paid_unit(course):
    return Unit.query.filter_by(course_code=course.code, title='Strategy').first()


def make_auth_header(user):
    from auth_routes import generate_token
    token = generate_token(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_header(user):
    """Auth headers for the first seeded user"""
    return make_auth_header(user)
