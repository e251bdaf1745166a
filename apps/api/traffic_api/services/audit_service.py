"""Audit logging service - who did what to which entity.

Security guidelines:
- NEVER log secrets (tokens, API keys)
- Use IDs instead of raw data where possible
- IP: Trust X-Forwarded-For only when TRUST_PROXY_HEADERS is set

Writes are best-effort: a failed insert is logged and swallowed so the
audited operation still succeeds.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from traffic_api.core.config import settings
from traffic_api.db.enums import AuditAction
from traffic_api.db.models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.
    
    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if not request:
        return None
    
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()[:45]
    
    if request.client:
        return request.client.host
    
    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def log_event(
    db: Session,
    user_id: UUID | None,
    action: AuditAction,
    resource_type: str | None = None,
    resource_id: str | UUID | None = None,
    metadata: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog | None:
    """
    Record an audit entry inside a SAVEPOINT.
    
    The caller owns the outer transaction and commits it with the rest of
    its work. Returns None if the entry could not be written.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action.value,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        metadata_=metadata,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    try:
        with db.begin_nested():
            db.add(entry)
    except Exception:
        logger.exception(
            "Audit write failed action=%s resource_type=%s resource_id=%s",
            action.value,
            resource_type,
            resource_id,
        )
        return None
    return entry


def list_events(
    db: Session,
    user_id: UUID | None = None,
    action: AuditAction | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Most recent audit entries, newest first."""
    query = db.query(AuditLog)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action.value)
    return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
