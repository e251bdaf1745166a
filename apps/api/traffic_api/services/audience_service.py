"""Audience service - manual audiences and their contacts.

An audience's contacts live in exactly one of two places:
- normalized: one audience_contacts row per contact (current storage)
- legacy: a JSON list at audience_requests.form_data.manual_audience.contacts

Normalized rows win whenever at least one exists for the audience id.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, inspect
from sqlalchemy.orm import Session

from traffic_api.core.config import settings
from traffic_api.core.errors import InvalidInput, NotFound
from traffic_api.db.enums import AudienceRequestStatus, AudienceRequestType
from traffic_api.db.models import AudienceContact, AudienceRequest
from traffic_api.utils.normalization import normalize_email, normalize_name
from traffic_api.utils.pagination import PaginationParams, page_count

logger = logging.getLogger(__name__)

MANUAL_AUDIENCE_PREFIX = "manual_"

# Bookkeeping columns that never appear in a flattened contact
STRIPPED_ROW_KEYS = frozenset({"id", "audience_id", "created_at"})

# Keys an uploaded payload may hold its contact list under, in lookup order
UPLOAD_CONTAINER_KEYS = ("contacts", "Data", "data", "records")

# Upload field -> aliases accepted for it, first non-empty wins
UPLOAD_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "email": ("email",),
    "first_name": ("first_name", "firstName"),
    "last_name": ("last_name", "lastName"),
    "company": ("company",),
    "job_title": ("title", "job_title", "jobTitle"),
    "linkedin_url": ("linkedin_url", "linkedinUrl"),
    "phone": ("phone", "mobile_phone"),
    "city": ("city",),
    "state": ("state",),
    "country": ("country",),
    "seniority": ("seniority",),
    "department": ("department",),
}


# =============================================================================
# Flattening
# =============================================================================

def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _drop_empty(record: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if not _is_empty(value)}


def contact_row_to_dict(contact: AudienceContact) -> dict[str, Any]:
    """All mapped columns of a contact row as a plain dict."""
    return {
        attr.key: getattr(contact, attr.key)
        for attr in inspect(AudienceContact).mapper.column_attrs
    }


def flatten_contact_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """
    Flatten a normalized contact row into one flat mapping.

    Bookkeeping keys are stripped, the `data` map is merged underneath the
    known columns (a non-empty known column wins on collision), and
    null/empty values are dropped.
    """
    extra = row.get("data") or {}
    known = {
        key: value
        for key, value in row.items()
        if key not in STRIPPED_ROW_KEYS and key != "data"
    }
    merged = _drop_empty(extra) if isinstance(extra, Mapping) else {}
    merged.update(_drop_empty(known))
    return merged


def flatten_legacy_contact(record: Any) -> dict[str, Any] | None:
    """Legacy contacts are already flat; only empty values are dropped."""
    if not isinstance(record, Mapping):
        return None
    return _drop_empty(record)


# =============================================================================
# Lookup
# =============================================================================

def get_audience(
    db: Session,
    audience_id: str,
    user_id: UUID,
    acts_as_admin: bool,
) -> AudienceRequest:
    """
    Resolve audience metadata, scoped to the owner unless the caller is admin.

    Raises:
        NotFound: audience absent or owned by someone else
    """
    query = db.query(AudienceRequest).filter(AudienceRequest.audience_id == audience_id)
    if not acts_as_admin:
        query = query.filter(AudienceRequest.user_id == user_id)
    audience = query.order_by(AudienceRequest.created_at.asc()).first()
    if not audience:
        raise NotFound("Audience not found")
    return audience


def count_contacts(db: Session, audience_id: str) -> int:
    """Number of normalized contact rows for an audience."""
    return (
        db.query(func.count(AudienceContact.id))
        .filter(AudienceContact.audience_id == audience_id)
        .scalar()
        or 0
    )


def count_contacts_by_audience(db: Session, audience_ids: list[str]) -> dict[str, int]:
    """Normalized contact counts for several audiences; missing ids report 0."""
    counts = {audience_id: 0 for audience_id in audience_ids}
    if not audience_ids:
        return counts
    rows = (
        db.query(AudienceContact.audience_id, func.count(AudienceContact.id))
        .filter(AudienceContact.audience_id.in_(audience_ids))
        .group_by(AudienceContact.audience_id)
        .all()
    )
    for audience_id, count in rows:
        counts[audience_id] = count
    return counts


def _contacts_query(db: Session, audience_id: str):
    return (
        db.query(AudienceContact)
        .filter(AudienceContact.audience_id == audience_id)
        .order_by(AudienceContact.created_at.asc(), AudienceContact.id.asc())
    )


def iter_contact_batches(
    db: Session,
    audience_id: str,
    batch_size: int | None = None,
) -> Iterator[list[dict[str, Any]]]:
    """
    Yield flattened normalized contacts one page at a time.

    Pages are fetched strictly one after another; the next query is not
    issued until the caller has consumed the current batch.
    """
    batch_size = batch_size or settings.EXPORT_BATCH_SIZE
    offset = 0
    while True:
        rows = _contacts_query(db, audience_id).offset(offset).limit(batch_size).all()
        if not rows:
            return
        yield [flatten_contact_row(contact_row_to_dict(row)) for row in rows]
        if len(rows) < batch_size:
            return
        offset += batch_size


def get_manual_audience_block(audience: AudienceRequest) -> dict[str, Any] | None:
    """The legacy form_data.manual_audience block, if present."""
    form_data = audience.form_data or {}
    if not isinstance(form_data, Mapping):
        return None
    block = form_data.get("manual_audience")
    return block if isinstance(block, Mapping) else None


def legacy_contacts(audience: AudienceRequest) -> list[dict[str, Any]]:
    """Contacts embedded in the legacy JSON block (empty list if absent)."""
    block = get_manual_audience_block(audience)
    raw = (block or {}).get("contacts") or []
    if not isinstance(raw, list):
        logger.warning(
            "Legacy contacts is not a list audience_id=%s type=%s",
            audience.audience_id,
            type(raw).__name__,
        )
        return []
    contacts = []
    for record in raw:
        flat = flatten_legacy_contact(record)
        if flat is None:
            logger.warning("Skipping non-object legacy contact audience_id=%s", audience.audience_id)
            continue
        contacts.append(flat)
    return contacts


def load_all_contacts(db: Session, audience: AudienceRequest) -> list[dict[str, Any]]:
    """Every contact of an audience, from whichever storage it uses."""
    if count_contacts(db, audience.audience_id) > 0:
        contacts: list[dict[str, Any]] = []
        for batch in iter_contact_batches(db, audience.audience_id):
            contacts.extend(batch)
        return contacts
    return legacy_contacts(audience)


def get_contacts_page(
    db: Session,
    audience: AudienceRequest,
    page: int,
    limit: int,
) -> dict[str, Any]:
    """
    One page of contacts plus paging metadata.

    Raises:
        NotFound: legacy audience without a manual_audience block
    """
    pagination = PaginationParams(page=page, per_page=limit)
    result: dict[str, Any] = {
        "id": audience.audience_id,
        "name": audience.name,
        "page": page,
        "created_at": audience.created_at,
        "is_manual": True,
    }

    total = count_contacts(db, audience.audience_id)
    if total > 0:
        rows = (
            _contacts_query(db, audience.audience_id)
            .offset(pagination.offset)
            .limit(pagination.per_page)
            .all()
        )
        result.update(
            total_records=total,
            total_pages=page_count(total, limit),
            contacts=[flatten_contact_row(contact_row_to_dict(row)) for row in rows],
        )
        return result

    block = get_manual_audience_block(audience)
    if block is None:
        raise NotFound("Manual audience data not found")

    contacts = legacy_contacts(audience)
    result.update(
        total_records=len(contacts),
        total_pages=page_count(len(contacts), limit),
        contacts=contacts[pagination.offset:pagination.offset + pagination.per_page],
        uploaded_at=block.get("uploaded_at"),
    )
    return result


# =============================================================================
# Mutations
# =============================================================================

def delete_audience(db: Session, audience: AudienceRequest) -> int:
    """Delete an audience's normalized contacts and then its record."""
    deleted = clear_contacts(db, audience.audience_id)
    db.delete(audience)
    db.flush()
    return deleted


def clear_contacts(db: Session, audience_id: str) -> int:
    """Remove every normalized contact for an audience. Returns rows deleted."""
    deleted = (
        db.query(AudienceContact)
        .filter(AudienceContact.audience_id == audience_id)
        .delete(synchronize_session=False)
    )
    logger.info("Cleared audience contacts audience_id=%s deleted=%s", audience_id, deleted)
    return deleted


def extract_upload_contacts(data: Any) -> list[dict[str, Any]]:
    """
    Pull the contact list out of an uploaded payload.

    Accepts a bare list or an object holding the list under one of
    UPLOAD_CONTAINER_KEYS. Non-object entries are ignored.
    """
    contacts: Any = []
    if isinstance(data, list):
        contacts = data
    elif isinstance(data, Mapping):
        for key in UPLOAD_CONTAINER_KEYS:
            if data.get(key):
                contacts = data[key]
                break
    if not isinstance(contacts, list):
        return []
    return [contact for contact in contacts if isinstance(contact, Mapping)]


def _first_present(contact: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = contact.get(alias)
        if not _is_empty(value):
            return value
    return None


def normalize_upload_contact(contact: Mapping[str, Any]) -> dict[str, Any]:
    """
    Map an uploaded contact onto audience_contacts columns.

    Fields without a column (and not consumed as an alias) go to `data`.
    """
    normalized: dict[str, Any] = {
        field: _first_present(contact, aliases)
        for field, aliases in UPLOAD_FIELD_ALIASES.items()
    }
    if isinstance(normalized["email"], str):
        normalized["email"] = normalize_email(normalized["email"])

    parts = [
        str(part).strip()
        for part in (normalized["first_name"], normalized["last_name"])
        if not _is_empty(part)
    ]
    normalized["full_name"] = (
        normalize_name(" ".join(parts))
        if parts
        else _first_present(contact, ("full_name", "fullName", "name"))
    )

    consumed = {alias for aliases in UPLOAD_FIELD_ALIASES.values() for alias in aliases}
    consumed.update({"full_name", "fullName", "name"}, STRIPPED_ROW_KEYS)
    normalized["data"] = {
        key: value
        for key, value in contact.items()
        if key not in consumed and not _is_empty(value)
    }
    return normalized


def create_manual_audience(
    db: Session,
    admin_user_id: UUID,
    name: str,
    data: Any,
    request_id: UUID | None = None,
) -> tuple[AudienceRequest, int]:
    """
    Store an uploaded contact list as a new manual audience.

    With request_id the existing request is approved and linked to the new
    audience; otherwise a new approved request owned by the admin is created.

    Raises:
        InvalidInput: name blank or no contacts in data
        NotFound: request_id does not exist
    """
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Audience name is required")

    contacts = extract_upload_contacts(data)
    if not contacts:
        raise InvalidInput(
            "No contacts found in data. Expected array or object with "
            "contacts/Data/data/records property."
        )

    audience_id = f"{MANUAL_AUDIENCE_PREFIX}{uuid.uuid4()}"
    now = datetime.now(timezone.utc)
    block = {
        "id": audience_id,
        "name": name,
        "total_records": len(contacts),
        "uploaded_at": now.isoformat(),
        "uploaded_by": str(admin_user_id),
    }

    if request_id:
        audience = db.get(AudienceRequest, request_id)
        if not audience:
            raise NotFound("Request not found")
        notes = f"Manual audience uploaded. {len(contacts)} contacts."
    else:
        audience = AudienceRequest(
            user_id=admin_user_id,
            request_type=AudienceRequestType.STANDARD.value,
            name=name,
            form_data={},
        )
        db.add(audience)
        notes = f"Manual audience created. {len(contacts)} contacts."

    audience.status = AudienceRequestStatus.APPROVED.value
    audience.audience_id = audience_id
    audience.reviewed_by = admin_user_id
    audience.reviewed_at = now
    audience.admin_notes = notes
    # Reassign so the JSON column is flagged dirty
    audience.form_data = {**(audience.form_data or {}), "manual_audience": block}

    # Distinct timestamps keep upload order under created_at ordering
    db.add_all(
        AudienceContact(
            audience_id=audience_id,
            created_at=now + timedelta(microseconds=position),
            **normalize_upload_contact(contact),
        )
        for position, contact in enumerate(contacts)
    )
    db.flush()

    logger.info(
        "Created manual audience audience_id=%s contacts=%s linked_request=%s",
        audience_id,
        len(contacts),
        bool(request_id),
    )
    return audience, len(contacts)
