"""Admin-only audience management: uploads and contact clearing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from traffic_api.core.deps import get_db, require_capability, require_csrf_header
from traffic_api.core.permissions import Capability
from traffic_api.db.enums import AuditAction
from traffic_api.schemas.audience import (
    ClearContactsRequest,
    ClearContactsResponse,
    ManualAudienceCreate,
    ManualAudienceCreated,
)
from traffic_api.schemas.auth import UserSession
from traffic_api.services import audience_service, audit_service

router = APIRouter(
    prefix="/admin/audiences",
    tags=["Admin - Audiences"],
    dependencies=[Depends(require_csrf_header)],
)


@router.post("/manual", response_model=ManualAudienceCreated, status_code=201)
def create_manual_audience(
    data: ManualAudienceCreate,
    request: Request,
    session: UserSession = Depends(require_capability(Capability.MANAGE_AUDIENCES)),
    db: Session = Depends(get_db),
):
    """Create a manual audience from an uploaded contact list."""
    audience, total = audience_service.create_manual_audience(
        db,
        admin_user_id=session.user_id,
        name=data.name,
        data=data.data,
        request_id=data.request_id,
    )

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.CREATE_MANUAL_AUDIENCE,
        resource_type="audience",
        resource_id=audience.audience_id,
        metadata={"total_records": total, "request_id": str(audience.id)},
        request=request,
    )
    db.commit()

    return ManualAudienceCreated(
        audience_id=audience.audience_id,
        request_id=audience.id,
        total_records=total,
    )


@router.post("/clear-contacts", response_model=ClearContactsResponse)
def clear_audience_contacts(
    data: ClearContactsRequest,
    request: Request,
    session: UserSession = Depends(require_capability(Capability.MANAGE_AUDIENCES)),
    db: Session = Depends(get_db),
):
    """Remove every normalized contact of an audience."""
    deleted = audience_service.clear_contacts(db, data.audience_id)

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.CLEAR_AUDIENCE_CONTACTS,
        resource_type="audience",
        resource_id=data.audience_id,
        metadata={"deleted": deleted},
        request=request,
    )
    db.commit()
    return ClearContactsResponse(deleted=deleted)
