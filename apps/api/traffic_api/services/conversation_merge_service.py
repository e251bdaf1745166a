"""Conversation merge service - collapse duplicate chat threads per customer email.

For an email owning N >= 2 conversations, the oldest conversation survives
(canonical), every message of the others is re-parented onto it, and the
others are deleted. If any removed duplicate was open, the canonical one is
reopened.

Re-parenting and deletion for one email run inside a SAVEPOINT, so a
failure can never leave messages moved while duplicates remain (or the
reverse). The caller's request transaction commits once at the end; any
failure aborts the whole operation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import String, func, literal
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from traffic_api.core.config import settings
from traffic_api.core.errors import StorageError
from traffic_api.db.enums import ConversationStatus
from traffic_api.db.models import ChatConversation, ChatMessage
from traffic_api.services.chat_service import email_key

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging one email's conversations."""
    conversations_merged: int = 0
    messages_moved: int = 0


@dataclass
class BulkMergeResult:
    """Outcome of merging every duplicated email."""
    emails_processed: int = 0
    conversations_merged: int = 0
    messages_moved: int = 0


def _normalized_email_column():
    return email_key(ChatConversation.customer_email)


# =============================================================================
# Duplicate discovery
# =============================================================================

def iter_duplicate_emails(db: Session, batch_size: int | None = None) -> Iterator[str]:
    """
    Yield every normalized email that owns more than one conversation.

    Counting happens in the database (GROUP BY ... HAVING) and results are
    fetched in keyset-paged batches, so memory stays bounded regardless of
    how many distinct emails exist. Emails are yielded in ascending order;
    merging the yielded email before pulling the next one is safe.
    """
    batch_size = batch_size or settings.MERGE_SCAN_BATCH_SIZE
    email_col = _normalized_email_column()
    last_email: str | None = None

    while True:
        query = db.query(email_col.label("email")).filter(
            ChatConversation.customer_email.isnot(None),
            email_col != "",
        )
        if last_email is not None:
            query = query.filter(email_col > last_email)
        rows = (
            query.group_by(email_col)
            .having(func.count(ChatConversation.id) > 1)
            .order_by(email_col.asc())
            .limit(batch_size)
            .all()
        )
        if not rows:
            return
        for row in rows:
            yield row.email
        if len(rows) < batch_size:
            return
        last_email = rows[-1].email


def find_duplicate_emails(db: Session) -> list[str]:
    """All normalized emails with more than one conversation."""
    return list(iter_duplicate_emails(db))


# =============================================================================
# Merge
# =============================================================================

def _latest(values: list[datetime | None]) -> datetime | None:
    present = [value for value in values if value is not None]
    return max(present) if present else None


def merge_conversations_for_email(db: Session, email: str) -> MergeResult:
    """
    Merge every conversation whose customer email matches `email`
    (trimmed, case-insensitive) into the oldest one.

    A second call for the same email is a no-op.

    Raises:
        StorageError: any database statement failed; nothing for this
            email was applied
    """
    if not email:
        return MergeResult()

    # Same SQL normalization as the duplicate scan, applied to both sides
    email_col = _normalized_email_column()

    try:
        with db.begin_nested():
            conversations = (
                db.query(ChatConversation)
                .filter(
                    email_col == email_key(literal(email, String)),
                    email_col != "",
                )
                .order_by(ChatConversation.created_at.asc(), ChatConversation.id.asc())
                .all()
            )
            if len(conversations) < 2:
                return MergeResult()

            canonical, duplicates = conversations[0], conversations[1:]
            duplicate_ids = [conversation.id for conversation in duplicates]
            reopen = any(
                conversation.status == ConversationStatus.OPEN.value
                for conversation in duplicates
            )
            newest = max(
                conversations,
                key=lambda conversation: (
                    conversation.last_message_at is not None,
                    conversation.last_message_at or conversation.created_at,
                ),
            )
            last_message_at = _latest([c.last_message_at for c in conversations])
            preview = newest.preview if newest.last_message_at else canonical.preview
            any_unread = any(not conversation.read for conversation in conversations)

            # Order matters: messages move before their old parents are deleted
            messages_moved = (
                db.query(ChatMessage)
                .filter(ChatMessage.conversation_id.in_(duplicate_ids))
                .update(
                    {ChatMessage.conversation_id: canonical.id},
                    synchronize_session="evaluate",
                )
            )
            db.query(ChatConversation).filter(
                ChatConversation.id.in_(duplicate_ids)
            ).delete(synchronize_session="evaluate")

            canonical.last_message_at = last_message_at
            canonical.preview = preview
            canonical.read = not any_unread
            if reopen:
                canonical.status = ConversationStatus.OPEN.value
                canonical.closed_at = None
            db.flush()
    except SQLAlchemyError:
        logger.exception("Conversation merge failed")
        raise StorageError("Failed to merge conversations")

    # Re-parented messages may be cached on either side
    db.expire(canonical, ["messages"])

    logger.info(
        "Merged conversations canonical_id=%s merged=%s messages_moved=%s reopened=%s",
        canonical.id,
        len(duplicates),
        messages_moved,
        reopen,
    )
    return MergeResult(
        conversations_merged=len(duplicates),
        messages_moved=messages_moved,
    )


def merge_all_duplicates(db: Session) -> BulkMergeResult:
    """
    Merge conversations for every email that has duplicates.

    Emails are processed one after another; the first failure aborts the
    run and propagates.
    """
    result = BulkMergeResult()
    for email in iter_duplicate_emails(db):
        merged = merge_conversations_for_email(db, email)
        result.emails_processed += 1
        result.conversations_merged += merged.conversations_merged
        result.messages_moved += merged.messages_moved
    return result
