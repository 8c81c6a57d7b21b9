"""
Shared fixtures: a fresh SQLite database per test, profile seeding and
bearer credentials.
"""

import os

import pytest


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from cars_backend.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "cars_test.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def db(sqlalchemy_db):
    """A session for service-level tests."""
    from cars_backend.db.session import SessionLocal, get_engine

    get_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(sqlalchemy_db):
    from fastapi.testclient import TestClient
    from cars_backend.api import app

    return TestClient(app)


@pytest.fixture
def make_user(sqlalchemy_db):
    """Factory: insert a profile and return its id."""
    from cars_backend.db.session import get_db_session
    from cars_backend.db.models import UserProfile, Role

    def _make(user_id, role=Role.USER, display_name=None, points=0, is_banned=False, email=None):
        with get_db_session() as session:
            session.add(UserProfile(
                id=user_id,
                display_name=display_name or user_id.title(),
                email=email or f"{user_id}@example.com",
                role=Role(role),
                points=points,
                is_banned=is_banned,
            ))
        return user_id

    return _make


@pytest.fixture
def auth_header():
    """Factory: Authorization header carrying a valid credential for `user_id`."""
    from cars_backend.auth import create_access_token

    def _header(user_id, **claims):
        return {"Authorization": f"Bearer {create_access_token(user_id, **claims)}"}

    return _header


@pytest.fixture
def context_for(db):
    """Factory: AuthContext for an existing profile."""
    from cars_backend.auth import auth_context_from_profile
    from cars_backend.db.models import UserProfile

    def _context(user_id):
        profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
        return auth_context_from_profile(profile)

    return _context


@pytest.fixture
def report_payload():
    def _payload(**overrides):
        body = {
            "title": "Stolen bicycle",
            "description": "Bike taken from the rack outside the library",
            "category": "Theft",
            "location": {"lat": 14.5995, "lng": 120.9842},
            "isAnonymous": False,
            "imageUrls": ["https://img.example.com/a.jpg"],
        }
        body.update(overrides)
        return body

    return _payload
