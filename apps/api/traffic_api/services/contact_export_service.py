"""Audience contact export to CSV.

Reads every contact of one audience (normalized rows or the legacy JSON
block), builds a uniform column set, orders it by EXPORT_PRIORITY, and
renders a fully-quoted CSV document.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traffic_api.core.errors import NoData, StorageError
from traffic_api.core.structured_logging import build_log_context
from traffic_api.services import audience_service

logger = logging.getLogger(__name__)


# Priority columns for export ordering
EXPORT_PRIORITY: tuple[str, ...] = (
    "full_name", "first_name", "last_name", "email", "verified_email",
    "business_email", "company", "job_title", "seniority", "department",
    "phone", "mobile_phone", "direct_number", "city", "state",
    "country", "gender", "age_range", "income_range", "linkedin_url",
    "company_domain", "company_description", "company_revenue", "company_phone",
)
_PRIORITY_INDEX = {name: index for index, name in enumerate(EXPORT_PRIORITY)}

# Internal keys never exported
EXCLUDED_COLUMNS = frozenset({"uuid"})

ROW_NUMBER_HEADER = "S.No."
DEFAULT_AUDIENCE_NAME = "Audience"

_WORD_START = re.compile(r"\b\w", re.ASCII)
_FILENAME_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class ContactExport:
    """A rendered export ready to send as an attachment."""
    filename: str
    content: str
    row_count: int


# =============================================================================
# Formatting
# =============================================================================

def format_column_name(name: str) -> str:
    """`linkedin_url` -> `Linkedin Url`."""
    return _WORD_START.sub(lambda match: match.group(0).upper(), name.replace("_", " "))


def export_filename(audience_name: str | None) -> str:
    """Attachment filename: non-alphanumerics become underscores."""
    base = audience_name or DEFAULT_AUDIENCE_NAME
    return f"{_FILENAME_UNSAFE.sub('_', base)}_export.csv"


def serialize_cell(value: Any) -> str:
    """Render one cell value as text (before CSV quoting)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def collect_columns(contacts: Iterable[Mapping[str, Any]]) -> set[str]:
    """Union of keys across all contacts, minus internal keys."""
    columns: set[str] = set()
    for contact in contacts:
        columns.update(contact.keys())
    return columns - EXCLUDED_COLUMNS


def _column_sort_key(name: str) -> tuple:
    index = _PRIORITY_INDEX.get(name)
    if index is not None:
        return (0, index, "", "")
    return (1, 0, name.casefold(), name)


def order_columns(columns: Iterable[str]) -> list[str]:
    """
    Priority columns first (in EXPORT_PRIORITY order), then the rest
    alphabetically, case-insensitive.
    """
    return sorted(set(columns), key=_column_sort_key)


def build_contacts_csv(contacts: Sequence[Mapping[str, Any]]) -> str:
    """
    Render contacts as CSV.

    Every cell is quoted and embedded quotes are doubled. The first column
    is a 1-based row number. Rows are joined with "\n", with no trailing
    newline after the last row.
    """
    columns = order_columns(collect_columns(contacts))

    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([ROW_NUMBER_HEADER, *(format_column_name(column) for column in columns)])
    for row_number, contact in enumerate(contacts, start=1):
        writer.writerow([
            str(row_number),
            *(serialize_cell(contact.get(column)) for column in columns),
        ])
    return output.getvalue().removesuffix("\n")


# =============================================================================
# Export
# =============================================================================

def export_audience_csv(
    db: Session,
    audience_id: str,
    user_id: UUID | None,
    acts_as_admin: bool,
) -> ContactExport:
    """
    Export one audience's contacts as CSV.

    Raises:
        NotFound: audience absent or not owned by a non-admin caller
        NoData: the audience has no contacts
        StorageError: a database read failed
    """
    try:
        audience = audience_service.get_audience(db, audience_id, user_id, acts_as_admin)
        contacts = audience_service.load_all_contacts(db, audience)
    except SQLAlchemyError:
        logger.exception(
            "Audience export read failed",
            extra=build_log_context(
                user_id=str(user_id) if user_id else None,
                audience_id=audience_id,
            ),
        )
        raise StorageError()

    if not contacts:
        raise NoData()

    content = build_contacts_csv(contacts)
    logger.info(
        "Exported audience audience_id=%s rows=%s admin=%s",
        audience_id,
        len(contacts),
        acts_as_admin,
    )
    return ContactExport(
        filename=export_filename(audience.name),
        content=content,
        row_count=len(contacts),
    )
