"""
Shared pytest fixtures for the Project Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project
    - person / approver: Pre-created people used as actors
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.project import Person, Project


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """A committed Project row."""
    proj = Project(project_code="PRJ-001", project_name="Test Project", status="Active")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def person():
    """A committed Person used as the default actor."""
    p = Person(username="alice", full_name="Alice Analyst", email="alice@example.com", role="Analyst")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def approver():
    """A second committed Person who decides approvals."""
    p = Person(username="bob", full_name="Bob Approver", email="bob@example.com", role="Manager")
    _db.session.add(p)
    _db.session.commit()
    return p
