"""Manual audiences router - contacts, counts, export, and deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from traffic_api.core.deps import (
    acts_as_admin,
    get_current_session,
    get_db,
    require_csrf_header,
)
from traffic_api.core.rate_limit import EXPORT_LIMIT, limiter
from traffic_api.db.enums import AuditAction
from traffic_api.schemas.audience import (
    AudienceContactsPage,
    AudienceCountsResponse,
    DeleteAudienceResponse,
)
from traffic_api.schemas.auth import UserSession
from traffic_api.services import audience_service, audit_service, contact_export_service

router = APIRouter(prefix="/audiences/manual", tags=["audiences"])

MAX_PAGE_LIMIT = 500
DEFAULT_PAGE_LIMIT = 100


@router.get("/counts", response_model=AudienceCountsResponse)
def get_contact_counts(
    ids: str | None = Query(None, description="Comma-separated audience ids"),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Normalized contact counts for several audiences in one query."""
    audience_ids = [value.strip() for value in (ids or "").split(",") if value.strip()]
    if not audience_ids:
        raise HTTPException(status_code=400, detail="ids query parameter is required")
    return AudienceCountsResponse(
        counts=audience_service.count_contacts_by_audience(db, audience_ids)
    )


@router.get("/{audience_id}/export")
@limiter.limit(EXPORT_LIMIT)
def export_audience(
    request: Request,
    audience_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> Response:
    """Download every contact of an audience as CSV."""
    export = contact_export_service.export_audience_csv(
        db,
        audience_id=audience_id,
        user_id=session.user_id,
        acts_as_admin=acts_as_admin(session),
    )

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.EXPORT_AUDIENCE,
        resource_type="audience",
        resource_id=audience_id,
        metadata={"rows": export.row_count},
        request=request,
    )
    db.commit()

    headers = {"Content-Disposition": f'attachment; filename="{export.filename}"'}
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )


@router.get("/{audience_id}", response_model=AudienceContactsPage)
def get_audience_contacts(
    audience_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """One page of an audience's contacts (normalized or legacy storage)."""
    audience = audience_service.get_audience(
        db, audience_id, session.user_id, acts_as_admin(session)
    )
    return audience_service.get_contacts_page(db, audience, page=page, limit=limit)


@router.delete(
    "/{audience_id}",
    response_model=DeleteAudienceResponse,
    dependencies=[Depends(require_csrf_header)],
)
def delete_audience(
    audience_id: str,
    request: Request,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Delete an audience and its contacts (owner or admin)."""
    audience = audience_service.get_audience(
        db, audience_id, session.user_id, acts_as_admin(session)
    )
    deleted = audience_service.delete_audience(db, audience)

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.DELETE_MANUAL_AUDIENCE,
        resource_type="audience",
        resource_id=audience_id,
        metadata={"deleted_contacts": deleted},
        request=request,
    )
    db.commit()
    return DeleteAudienceResponse(deleted_contacts=deleted)
