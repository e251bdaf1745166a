"""Tests for merging duplicate chat conversations by customer email."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from traffic_api.core.errors import StorageError
from traffic_api.db.enums import ConversationStatus, MessageSenderType
from traffic_api.db.models import ChatConversation, ChatMessage
from traffic_api.services import conversation_merge_service
from traffic_api.services.conversation_merge_service import (
    find_duplicate_emails,
    merge_all_duplicates,
    merge_conversations_for_email,
)

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _conversation(db, email, minutes, status=ConversationStatus.OPEN, messages=0):
    created = BASE_TIME + timedelta(minutes=minutes)
    conversation = ChatConversation(
        customer_email=email,
        customer_name="Customer",
        status=status.value,
        created_at=created,
        updated_at=created,
        closed_at=created if status == ConversationStatus.CLOSED else None,
    )
    db.add(conversation)
    db.flush()
    for index in range(messages):
        db.add(ChatMessage(
            conversation_id=conversation.id,
            sender_type=MessageSenderType.CUSTOMER.value,
            body=f"message {index}",
            created_at=created + timedelta(seconds=index),
        ))
    if messages:
        conversation.last_message_at = created + timedelta(seconds=messages - 1)
    db.flush()
    return conversation


def _conversations_for(db, email):
    return (
        db.query(ChatConversation)
        .filter(ChatConversation.customer_email.ilike(email))
        .all()
    )


def _message_count(db, conversation_id):
    return db.query(ChatMessage).filter(ChatMessage.conversation_id == conversation_id).count()


# =============================================================================
# Single email
# =============================================================================

def test_merge_collapses_into_oldest_and_reopens(db):
    c1 = _conversation(db, "bob@x.com", 0, ConversationStatus.CLOSED, messages=3)
    _conversation(db, "Bob@X.com", 10, ConversationStatus.OPEN, messages=2)

    result = merge_conversations_for_email(db, "bob@x.com")

    assert result.conversations_merged == 1
    assert result.messages_moved == 2

    remaining = _conversations_for(db, "bob@x.com")
    assert [c.id for c in remaining] == [c1.id]
    db.refresh(c1)
    assert c1.status == ConversationStatus.OPEN.value
    assert c1.closed_at is None
    assert _message_count(db, c1.id) == 5


def test_merge_keeps_status_when_no_duplicate_was_open(db):
    c1 = _conversation(db, "ann@x.com", 0, ConversationStatus.CLOSED, messages=1)
    _conversation(db, "ann@x.com", 5, ConversationStatus.ARCHIVED, messages=1)
    _conversation(db, "ann@x.com", 9, ConversationStatus.CLOSED)

    result = merge_conversations_for_email(db, "ann@x.com")

    assert result.conversations_merged == 2
    assert result.messages_moved == 1
    db.refresh(c1)
    assert c1.status == ConversationStatus.CLOSED.value
    assert c1.closed_at is not None


def test_merge_is_idempotent(db):
    _conversation(db, "bob@x.com", 0, messages=1)
    _conversation(db, "bob@x.com", 1, messages=1)

    first = merge_conversations_for_email(db, "bob@x.com")
    second = merge_conversations_for_email(db, "bob@x.com")

    assert first.conversations_merged == 1
    assert (second.conversations_merged, second.messages_moved) == (0, 0)


def test_merge_single_conversation_is_noop(db):
    c1 = _conversation(db, "solo@x.com", 0, messages=2)

    result = merge_conversations_for_email(db, "solo@x.com")

    assert (result.conversations_merged, result.messages_moved) == (0, 0)
    assert _message_count(db, c1.id) == 2


def test_merge_matches_trimmed_case_insensitive_email(db):
    c1 = _conversation(db, "  Carol@Example.COM ", 0)
    _conversation(db, "carol@example.com", 3, messages=1)

    result = merge_conversations_for_email(db, " CAROL@example.com")

    assert result.conversations_merged == 1
    assert _message_count(db, c1.id) == 1


def test_merge_does_not_touch_other_customers(db):
    _conversation(db, "bob@x.com", 0)
    _conversation(db, "bob@x.com", 1)
    other = _conversation(db, "bobby@x.com", 2, messages=1)

    merge_conversations_for_email(db, "bob@x.com")

    assert db.get(ChatConversation, other.id) is not None
    assert _message_count(db, other.id) == 1


def test_merge_carries_latest_activity_to_canonical(db):
    c1 = _conversation(db, "dan@x.com", 0, messages=1)
    c2 = _conversation(db, "dan@x.com", 30, messages=1)
    c2.preview = "latest question"
    db.flush()
    latest = c2.last_message_at

    merge_conversations_for_email(db, "dan@x.com")

    db.refresh(c1)
    assert c1.last_message_at == latest
    assert c1.preview == "latest question"


def test_merge_blank_email_is_noop(db):
    result = merge_conversations_for_email(db, "   ")
    assert (result.conversations_merged, result.messages_moved) == (0, 0)


def test_merge_failure_rolls_back_this_email(db, monkeypatch):
    c1 = _conversation(db, "eve@x.com", 0, messages=1)
    c2 = _conversation(db, "eve@x.com", 1, messages=2)

    def broken_delete(self, *args, **kwargs):
        raise SQLAlchemyError("delete failed")

    monkeypatch.setattr("sqlalchemy.orm.Query.delete", broken_delete)

    with pytest.raises(StorageError) as exc:
        merge_conversations_for_email(db, "eve@x.com")
    assert exc.value.status_code == 500

    monkeypatch.undo()
    assert db.get(ChatConversation, c2.id) is not None
    assert _message_count(db, c1.id) == 1
    assert _message_count(db, c2.id) == 2


# =============================================================================
# Bulk
# =============================================================================

def test_find_duplicate_emails(db):
    _conversation(db, "a@x.com", 0)
    _conversation(db, "A@x.com ", 1)
    _conversation(db, "b@x.com", 2)
    _conversation(db, "", 3)
    _conversation(db, "", 4)
    _conversation(db, None, 5)
    _conversation(db, None, 6)

    assert find_duplicate_emails(db) == ["a@x.com"]


def test_duplicate_scan_pages_in_batches(db, monkeypatch):
    monkeypatch.setattr(conversation_merge_service.settings, "MERGE_SCAN_BATCH_SIZE", 2)
    for index, email in enumerate(["e1@x.com", "e2@x.com", "e3@x.com", "e4@x.com", "e5@x.com"]):
        _conversation(db, email, index * 2)
        _conversation(db, email, index * 2 + 1)

    assert find_duplicate_emails(db) == [f"e{i}@x.com" for i in range(1, 6)]


def test_merge_all_duplicates_reports_totals(db):
    _conversation(db, "bob@x.com", 0, messages=3)
    _conversation(db, "bob@x.com", 1, messages=2)
    _conversation(db, "amy@x.com", 2, messages=1)
    _conversation(db, "amy@x.com", 3, messages=1)
    _conversation(db, "amy@x.com", 4)
    _conversation(db, "zed@x.com", 5, messages=4)

    result = merge_all_duplicates(db)

    assert result.emails_processed == 2
    assert result.conversations_merged == 3
    assert result.messages_moved == 3
    assert find_duplicate_emails(db) == []
    assert db.query(ChatConversation).count() == 3


def test_merge_all_without_duplicates(db):
    _conversation(db, "one@x.com", 0)

    result = merge_all_duplicates(db)

    assert (result.emails_processed, result.conversations_merged, result.messages_moved) == (0, 0, 0)


def test_merge_all_handles_emails_with_trailing_tab(db):
    _conversation(db, "bob@x.com\t", 0, messages=1)
    _conversation(db, "bob@x.com\t", 1, messages=1)

    result = merge_all_duplicates(db)

    assert result.emails_processed == 1
    assert result.conversations_merged == 1
    assert result.messages_moved == 1
    assert db.query(ChatConversation).count() == 1


def test_merge_single_email_uses_scan_key(db):
    _conversation(db, "bob@x.com\n", 0)
    _conversation(db, "BOB@x.com\n", 1)

    [key] = find_duplicate_emails(db)
    result = merge_conversations_for_email(db, key)

    assert result.conversations_merged == 1
