"""Tests for session cookies: token handling and revocation."""

import jwt
import pytest
from httpx import AsyncClient, ASGITransport

from traffic_api.core.config import settings
from traffic_api.core.deps import COOKIE_NAME
from traffic_api.core.security import create_session_token, decode_session_token
from traffic_api.main import app


def test_token_round_trip(admin_user):
    token = create_session_token(admin_user.id, "admin", 3)
    payload = decode_session_token(token)
    assert payload["sub"] == str(admin_user.id)
    assert payload["role"] == "admin"
    assert payload["token_version"] == 3


def test_previous_secret_still_verifies(monkeypatch, admin_user):
    monkeypatch.setattr(settings, "JWT_SECRET", "old-secret")
    token = create_session_token(admin_user.id, "admin", 1)

    monkeypatch.setattr(settings, "JWT_SECRET", "new-secret")
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "old-secret")
    assert decode_session_token(token)["sub"] == str(admin_user.id)

    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "")
    with pytest.raises(jwt.InvalidTokenError):
        decode_session_token(token)


async def _get_with_cookie(db, token):
    from traffic_api.core.deps import get_db

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={COOKIE_NAME: token},
        ) as c:
            return await c.get("/chat/conversations")
    finally:
        app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_garbage_cookie_is_401(db):
    response = await _get_with_cookie(db, "not-a-jwt")
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid session"


@pytest.mark.asyncio
async def test_revoked_session_is_401(db, team_user):
    token = create_session_token(team_user.id, "team", team_user.token_version)
    team_user.token_version += 1
    db.flush()

    response = await _get_with_cookie(db, token)

    assert response.status_code == 401
    assert response.json()["detail"] == "Session revoked"


@pytest.mark.asyncio
async def test_disabled_user_is_401(db, team_user):
    token = create_session_token(team_user.id, "team", team_user.token_version)
    team_user.is_active = False
    db.flush()

    response = await _get_with_cookie(db, token)

    assert response.status_code == 401
    assert response.json()["detail"] == "Account disabled"


@pytest.mark.asyncio
async def test_mutation_without_csrf_header_is_403(db, admin_user):
    from traffic_api.core.deps import get_db

    token = create_session_token(admin_user.id, "admin", admin_user.token_version)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={COOKIE_NAME: token},
        ) as c:
            response = await c.post("/chat/conversations/merge")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 403
