"""
Shared pytest fixtures for the Portfolio Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse);
      seeds the built-in roles and points file storage at tmp_path
    - client: Flask test client (function-scoped)
    - make_actor: factory for a registered user with roles and a bearer token
    - owner / other / reviewer / manager / doc_admin / admin: ready actors
"""

from collections import namedtuple

import pytest
from sqlalchemy import select

from portfolio import create_app
from portfolio.models import db as _db
from portfolio.models.auth import Role
from portfolio.services import identity_service, jwt_service
from portfolio.services.current_user import CurrentUser
from portfolio.services.permission_service import invalidate_all_cache

TEST_PASSWORD = "Secret-pass1"

# id: user id, headers: Authorization header for the test client,
# current: CurrentUser for calling services directly
Actor = namedtuple("Actor", ["id", "email", "headers", "current"])


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
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config["STORAGE_ROOT"] = str(tmp_path / "storage")
    with app.app_context():
        # ids are reused once tables are recreated; drop cached permissions
        invalidate_all_cache()
        identity_service.seed_default_roles()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def password():
    """Password every actor registers with."""
    return TEST_PASSWORD


# ── Actors ───────────────────────────────────────────────────────────────


def _role_id(name):
    role = _db.session.execute(select(Role).where(Role.name == name)).scalar_one()
    return role.id


@pytest.fixture()
def make_actor():
    """Register a user, grant ``roles`` and mint a token carrying them."""

    def _make(email, roles=(), full_name="Test User"):
        user = identity_service.register_user(email, TEST_PASSWORD, full_name)
        for name in roles:
            identity_service.assign_role_to_user(user.id, _role_id(name))
        token = jwt_service.generate_access_token(user.id, list(roles))["access_token"]
        return Actor(
            id=user.id,
            email=user.email,
            headers={"Authorization": f"Bearer {token}"},
            current=CurrentUser(user_id=user.id, roles=tuple(roles)),
        )

    return _make


@pytest.fixture()
def owner(make_actor):
    return make_actor("owner@example.com", full_name="Olivia Owner")


@pytest.fixture()
def other(make_actor):
    return make_actor("other@example.com", full_name="Oscar Other")


@pytest.fixture()
def reviewer(make_actor):
    return make_actor("reviewer@example.com", roles=("REVIEWER",))


@pytest.fixture()
def manager(make_actor):
    return make_actor("manager@example.com", roles=("MANAGER",))


@pytest.fixture()
def doc_admin(make_actor):
    return make_actor("docadmin@example.com", roles=("DOCUMENT_ADMIN",))


@pytest.fixture()
def admin(make_actor):
    return make_actor("admin@example.com", roles=("ADMIN",))
