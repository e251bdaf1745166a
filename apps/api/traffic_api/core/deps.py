"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from traffic_api.core.permissions import Capability, requires
from traffic_api.core.security import decode_session_token
from traffic_api.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "traffic_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    
    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _load_session(request: Request, db: Session):
    """Resolve the session cookie to a UserSession, or None when absent/invalid."""
    from traffic_api.db.enums import Role
    from traffic_api.db.models import User
    from traffic_api.schemas.auth import TokenPayload, UserSession
    
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None, "Not authenticated"
    
    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        return None, "Invalid session"
    
    user = db.get(User, payload.sub)
    if not user:
        return None, "User not found"
    
    if not user.is_active:
        return None, "Account disabled"
    
    # Token version check (revocation support)
    if user.token_version != payload.token_version:
        return None, "Session revoked"
    
    if not Role.has_value(user.role):
        return None, f"Unknown role '{user.role}'. Contact administrator."
    
    return UserSession(
        user_id=user.id,
        role=Role(user.role),
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
    ), None


def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Get session context: user_id, role, email.
    
    This is the PRIMARY auth dependency for most endpoints.
    
    Raises:
        HTTPException 401: Not authenticated
    """
    session, error = _load_session(request, db)
    if session is None:
        raise HTTPException(status_code=401, detail=error)
    return session


def get_optional_session(
    request: Request,
    db: Session = Depends(get_db),
):
    """Session if the caller is signed in, None for anonymous widget traffic."""
    session, _ = _load_session(request, db)
    return session


def require_capability(capability: Capability):
    """
    Dependency factory for capability-based authorization.
    
    Usage:
        @router.post("/merge", dependencies=[Depends(require_capability(Capability.MERGE_CONVERSATIONS))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        decision = requires(session, capability)
        if not decision:
            raise HTTPException(status_code=403, detail=decision.reason)
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.
    
    Apply to state-changing endpoints that rely on the session cookie.
    
    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )


# =============================================================================
# Permission Check Helpers
# =============================================================================

def acts_as_admin(session) -> bool:
    """Whether the caller may see and act on every user's audiences."""
    return bool(requires(session, Capability.VIEW_ALL_AUDIENCES))
