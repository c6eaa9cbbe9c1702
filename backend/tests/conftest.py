"""
Pytest fixtures for WorkHub backend tests.

Every test gets a fresh application bound to an in-memory SQLite database,
two tenants (Acme, Beta) with one user per role, and helpers for bearer
authentication.
"""

from decimal import Decimal

import pytest

from workhub import create_app
from workhub.extensions import db
from workhub.models import ROLES, Organization, Project
from workhub.services.auth_service import create_user
from workhub.services.session_service import create_session
from workhub.services.tenant_service import Actor


PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'FANOUT_MAX_WORKERS': 1,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


def _make_org(name: str, code: str) -> Organization:
    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def _make_users(org: Organization) -> dict:
    prefix = org.code.lower()
    return {
        role: create_user(
            username=f"{prefix}_{role}",
            email=f"{role}@{prefix}.example",
            password=PASSWORD,
            org_id=org.id,
            role=role,
        )
        for role in ROLES
    }


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    return _make_org("Org A - Acme Corp", "ACME")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    return _make_org("Org B - Beta Inc", "BETA")


@pytest.fixture(scope='function')
def users_a(org_a):
    """One user per role in Organization A, keyed by role."""
    return _make_users(org_a)


@pytest.fixture(scope='function')
def users_b(org_b):
    return _make_users(org_b)


@pytest.fixture(scope='function')
def actors_a(users_a):
    """Service-layer actors for Organization A, keyed by role."""
    return {role: Actor.from_user(user) for role, user in users_a.items()}


@pytest.fixture(scope='function')
def actors_b(users_b):
    return {role: Actor.from_user(user) for role, user in users_b.items()}


@pytest.fixture(scope='function')
def project_a(org_a):
    project = Project(org_id=org_a.id, name="Website Redesign", code="WEB", budget=Decimal("10000.00"))
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture(scope='function')
def project_b(org_b):
    project = Project(org_id=org_b.id, name="Beta Rollout", code="ROLL", budget=Decimal("5000.00"))
    db.session.add(project)
    db.session.commit()
    return project


def get_auth_token(client, username: str, password: str = PASSWORD, org_id: int | None = None) -> str:
    """Helper to get auth token for a user through the login route."""
    body = {'username': username, 'password': password}
    if org_id is not None:
        body['org_id'] = org_id
    response = client.post('/api/auth/login', json=body)
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    """Issue a session for `user` directly and return its Authorization header."""
    _, token = create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def headers_a(users_a):
    """Authorization headers for Organization A, keyed by role."""
    return {role: headers_for(user) for role, user in users_a.items()}


@pytest.fixture(scope='function')
def headers_b(users_b):
    return {role: headers_for(user) for role, user in users_b.items()}
