"""Pytest configuration and shared fixtures"""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from orgtree.database import Base, get_db
from orgtree.events import EventDispatcher
from orgtree.main import app
from orgtree.models import Organization, Tenant, User
from orgtree.services.auth_service import AuthService
from orgtree.services.hierarchy_service import HierarchyService
from orgtree.tenancy import TenantContext

ALL_PERMISSIONS = [
    "organization.create",
    "organization.view",
    "organization.update",
    "organization.delete",
    "organization.assign_managers",
]


@pytest.fixture(scope="function")
def test_engine():
    """In-memory SQLite engine shared by every connection of a test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Session:
    """Create a database session for testing"""
    session_factory = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def admin_user(db_session) -> User:
    """User holding every organization permission"""
    user = User(name="Admin User", email="admin@example.com", permissions=ALL_PERMISSIONS)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def plain_user(db_session) -> User:
    """User without any permission grant"""
    user = User(name="Plain User", email="plain@example.com", permissions=[])
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def sample_tenant(db_session) -> Tenant:
    tenant = Tenant(name="Acme Tenant", subdomain="acme")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def service(db_session, admin_user, dispatcher) -> HierarchyService:
    """Hierarchy service with tenancy disabled, acting as the admin user"""
    return HierarchyService(db_session, TenantContext(enabled=False), actor=admin_user, events=dispatcher)


@pytest.fixture
def hierarchy(service) -> dict:
    """Acme Corp > NY Branch > IT Dept"""
    acme = service.create({"type": "company", "name": "Acme Corp", "code": "ACME"})
    ny = service.create({"type": "branch", "name": "NY Branch", "code": "NY", "parent_id": acme.id})
    it = service.create({"type": "department", "name": "IT Dept", "code": "IT", "parent_id": ny.id})
    return {"acme": acme, "ny": ny, "it": it}


def auth_headers(user: User) -> dict:
    token = AuthService.create_access_token(str(user.id), user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_session):
    """FastAPI test client bound to the test database session"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return auth_headers(admin_user)


@pytest.fixture
def plain_headers(plain_user) -> dict:
    return auth_headers(plain_user)


def make_organization(db_session: Session, **fields) -> Organization:
    """Insert an organization directly, bypassing the service"""
    org = Organization(**fields)
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org
