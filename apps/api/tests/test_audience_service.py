"""Tests for manual audiences: flattening, uploads, counts, and paging."""

import uuid

import pytest

from traffic_api.core.errors import InvalidInput, NotFound
from traffic_api.db.enums import AudienceRequestStatus, AudienceRequestType
from traffic_api.db.models import AudienceContact, AudienceRequest
from traffic_api.services import audience_service
from traffic_api.services.audience_service import (
    extract_upload_contacts,
    flatten_contact_row,
    flatten_legacy_contact,
    normalize_upload_contact,
)


# =============================================================================
# Unit Tests (no DB required)
# =============================================================================

def test_flatten_strips_bookkeeping_and_merges_data():
    row = {
        "id": uuid.uuid4(),
        "audience_id": "manual_1",
        "created_at": "2025-01-01",
        "email": "a@x.com",
        "city": None,
        "company": "",
        "data": {"industry": "SaaS", "email": "ignored@x.com"},
    }
    assert flatten_contact_row(row) == {"email": "a@x.com", "industry": "SaaS"}


def test_flatten_empty_column_does_not_hide_data_value():
    row = {"email": None, "data": {"email": "from-data@x.com"}}
    assert flatten_contact_row(row) == {"email": "from-data@x.com"}


def test_flatten_handles_missing_data():
    assert flatten_contact_row({"email": "a@x.com", "data": None}) == {"email": "a@x.com"}


def test_flatten_legacy_contact():
    assert flatten_legacy_contact({"email": "a@x.com", "phone": ""}) == {"email": "a@x.com"}
    assert flatten_legacy_contact(["not", "a", "dict"]) is None


@pytest.mark.parametrize("payload", [
    [{"email": "a@x.com"}],
    {"contacts": [{"email": "a@x.com"}]},
    {"Data": [{"email": "a@x.com"}]},
    {"data": [{"email": "a@x.com"}]},
    {"records": [{"email": "a@x.com"}]},
])
def test_extract_upload_contacts_shapes(payload):
    assert extract_upload_contacts(payload) == [{"email": "a@x.com"}]


def test_extract_upload_contacts_ignores_garbage():
    assert extract_upload_contacts({"contacts": "nope"}) == []
    assert extract_upload_contacts("nope") == []
    assert extract_upload_contacts([{"email": "a@x.com"}, 7]) == [{"email": "a@x.com"}]


def test_normalize_upload_contact_aliases():
    normalized = normalize_upload_contact({
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": " Ada@Example.com ",
        "title": "Engineer",
        "linkedinUrl": "https://linkedin.com/in/ada",
        "mobile_phone": "555-0100",
        "industry": "Computing",
        "empty": "",
    })

    assert normalized["first_name"] == "Ada"
    assert normalized["last_name"] == "Lovelace"
    assert normalized["full_name"] == "Ada Lovelace"
    assert normalized["email"] == "ada@example.com"
    assert normalized["job_title"] == "Engineer"
    assert normalized["linkedin_url"] == "https://linkedin.com/in/ada"
    assert normalized["phone"] == "555-0100"
    assert normalized["data"] == {"industry": "Computing"}


def test_normalize_upload_contact_full_name_fallback():
    normalized = normalize_upload_contact({"name": "Grace Hopper"})
    assert normalized["full_name"] == "Grace Hopper"
    assert normalized["data"] == {}


# =============================================================================
# Service Tests
# =============================================================================

def test_create_manual_audience(db, admin_user):
    audience, total = audience_service.create_manual_audience(
        db,
        admin_user_id=admin_user.id,
        name="Upload",
        data={"contacts": [
            {"email": "a@x.com", "first_name": "A"},
            {"email": "b@x.com", "first_name": "B"},
            {"email": "c@x.com", "first_name": "C"},
        ]},
    )

    assert total == 3
    assert audience.audience_id.startswith("manual_")
    assert audience.status == AudienceRequestStatus.APPROVED.value
    assert audience.request_type == AudienceRequestType.STANDARD.value
    assert audience.form_data["manual_audience"]["total_records"] == 3
    assert "contacts" not in audience.form_data["manual_audience"]

    page = audience_service.get_contacts_page(db, audience, page=1, limit=10)
    assert [c["email"] for c in page["contacts"]] == ["a@x.com", "b@x.com", "c@x.com"]


def test_create_manual_audience_links_existing_request(db, admin_user, partner_user):
    request = AudienceRequest(user_id=partner_user.id, name="Wanted", form_data={"industry": "x"})
    db.add(request)
    db.flush()

    audience, _ = audience_service.create_manual_audience(
        db, admin_user.id, "Wanted", [{"email": "a@x.com"}], request_id=request.id
    )

    assert audience.id == request.id
    assert audience.user_id == partner_user.id
    assert audience.reviewed_by == admin_user.id
    assert audience.form_data["industry"] == "x"


def test_create_manual_audience_unknown_request(db, admin_user):
    with pytest.raises(NotFound):
        audience_service.create_manual_audience(
            db, admin_user.id, "Wanted", [{"email": "a@x.com"}], request_id=uuid.uuid4()
        )


def test_create_manual_audience_without_contacts(db, admin_user):
    with pytest.raises(InvalidInput):
        audience_service.create_manual_audience(db, admin_user.id, "Empty", {"contacts": []})


def test_count_contacts_by_audience(db):
    for audience_id, count in (("manual_a", 2), ("manual_b", 1)):
        for _ in range(count):
            db.add(AudienceContact(audience_id=audience_id, email="x@x.com"))
    db.flush()

    counts = audience_service.count_contacts_by_audience(db, ["manual_a", "manual_b", "manual_c"])

    assert counts == {"manual_a": 2, "manual_b": 1, "manual_c": 0}


def test_legacy_contacts_page(db, partner_user):
    audience = AudienceRequest(
        user_id=partner_user.id,
        name="Old",
        audience_id="manual_legacy",
        form_data={"manual_audience": {
            "uploaded_at": "2024-05-01T00:00:00+00:00",
            "contacts": [{"email": f"c{i}@x.com"} for i in range(5)],
        }},
    )
    db.add(audience)
    db.flush()

    page = audience_service.get_contacts_page(db, audience, page=2, limit=2)

    assert page["total_records"] == 5
    assert page["total_pages"] == 3
    assert page["uploaded_at"] == "2024-05-01T00:00:00+00:00"
    assert [c["email"] for c in page["contacts"]] == ["c2@x.com", "c3@x.com"]


def test_legacy_audience_without_block_is_not_found(db, partner_user):
    audience = AudienceRequest(
        user_id=partner_user.id, name="Bare", audience_id="manual_bare", form_data={}
    )
    db.add(audience)
    db.flush()

    with pytest.raises(NotFound):
        audience_service.get_contacts_page(db, audience, page=1, limit=10)


def test_delete_audience_removes_contacts(db, partner_user):
    audience = AudienceRequest(
        user_id=partner_user.id, name="Gone", audience_id="manual_gone", form_data={}
    )
    db.add(audience)
    db.add_all([AudienceContact(audience_id="manual_gone", email="a@x.com") for _ in range(3)])
    db.flush()

    deleted = audience_service.delete_audience(db, audience)

    assert deleted == 3
    assert audience_service.count_contacts(db, "manual_gone") == 0
    assert db.query(AudienceRequest).filter_by(audience_id="manual_gone").first() is None
