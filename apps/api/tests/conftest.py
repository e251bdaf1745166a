"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created once per session
- Database session with savepoint (rollback after each test)
- Users per role and JWT cookie minting
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings) are imported
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from traffic_api.core.deps import COOKIE_NAME, get_db
from traffic_api.core.security import create_session_token
from traffic_api.db.base import Base
from traffic_api.db.enums import Role
from traffic_api.db.models import User
from traffic_api.db.session import SessionLocal, engine
from traffic_api.main import app


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    """Create every table once for the test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a database session with savepoint for test isolation.

    App code may call commit(); each commit only releases a SAVEPOINT
    inside the outer transaction, which is rolled back at the end.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


def _make_user(db: Session, role: Role, **overrides) -> User:
    """Insert a user with the given role."""
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        full_name=f"{role.value.title()} User",
        role=role.value,
        token_version=1,
        is_active=True,
        **overrides,
    )
    db.add(user)
    db.flush()
    return user


@pytest.fixture(scope="function")
def user_factory(db: Session):
    """Create extra users: user_factory(Role.PARTNER)."""
    def factory(role: Role, **overrides) -> User:
        return _make_user(db, role, **overrides)
    return factory


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    return _make_user(db, Role.ADMIN)


@pytest.fixture(scope="function")
def team_user(db: Session) -> User:
    return _make_user(db, Role.TEAM)


@pytest.fixture(scope="function")
def partner_user(db: Session) -> User:
    return _make_user(db, Role.PARTNER)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    __test__ = False

    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def auth_for(user: User) -> TestAuth:
    """Mint a session cookie for a user."""
    token = create_session_token(
        user_id=user.id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


def _client(auth: TestAuth | None = None) -> AsyncClient:
    kwargs = {}
    if auth is not None:
        kwargs["cookies"] = {auth.cookie_name: auth.token}
        kwargs["headers"] = {"X-Requested-With": "XMLHttpRequest"}  # CSRF header
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", **kwargs)


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    _override_db(db)
    async with _client() as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient signed in as an admin, with CSRF header."""
    _override_db(db)
    async with _client(auth_for(admin_user)) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def team_client(db: Session, team_user: User) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient signed in as a support agent."""
    _override_db(db)
    async with _client(auth_for(team_user)) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def partner_client(db: Session, partner_user: User) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient signed in as a partner (customer account)."""
    _override_db(db)
    async with _client(auth_for(partner_user)) as c:
        yield c
    app.dependency_overrides.clear()
