"""Chat service - conversations and messages for the support inbox."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import String, case, func, literal
from sqlalchemy.orm import Session, selectinload

from traffic_api.core.errors import InvalidInput, NotFound
from traffic_api.db.enums import ConversationSource, ConversationStatus, MessageSenderType
from traffic_api.db.models import ChatConversation, ChatMessage
from traffic_api.schemas.chat import ConversationCreate, ConversationUpdate, MessageCreate
from traffic_api.utils.normalization import normalize_email
from traffic_api.utils.pagination import PaginationParams

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100
STATUS_ALL = "all"


def email_key(value):
    """Trimmed, lowercased email as a SQL expression."""
    return func.lower(func.trim(value))


def list_conversations(
    db: Session,
    status: str = ConversationStatus.OPEN.value,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ChatConversation], int]:
    """
    Conversations for the inbox, most recently active first.

    status="all" disables the status filter. Returns (conversations, total).
    """
    query = db.query(ChatConversation)
    if status != STATUS_ALL:
        query = query.filter(ChatConversation.status == status)

    total = query.count()
    pagination = PaginationParams(page=page, per_page=page_size)
    conversations = (
        query.order_by(
            # NULLS LAST, portable across backends
            case((ChatConversation.last_message_at.is_(None), 1), else_=0),
            ChatConversation.last_message_at.desc(),
            ChatConversation.created_at.desc(),
        )
        .offset(pagination.offset)
        .limit(pagination.per_page)
        .all()
    )
    return conversations, total


def create_conversation(db: Session, data: ConversationCreate) -> ChatConversation:
    """Open a new conversation from the widget."""
    conversation = ChatConversation(
        customer_name=data.customer_name,
        customer_email=(data.customer_email or "").strip() or None,
        customer_metadata=data.customer_metadata or {},
        visitor_id=data.visitor_id,
        source=data.source.value,
        page_url=data.page_url,
        status=ConversationStatus.OPEN.value,
    )
    db.add(conversation)
    db.flush()
    logger.info("Created conversation conversation_id=%s source=%s", conversation.id, conversation.source)
    return conversation


def find_open_conversation(db: Session, email: str) -> ChatConversation | None:
    """Most recently active open conversation for an email (trimmed, case-insensitive)."""
    email_col = email_key(ChatConversation.customer_email)
    return (
        db.query(ChatConversation)
        .filter(
            email_col == email_key(literal(email, String)),
            ChatConversation.status == ConversationStatus.OPEN.value,
        )
        .order_by(
            case((ChatConversation.last_message_at.is_(None), 1), else_=0),
            ChatConversation.last_message_at.desc(),
            ChatConversation.created_at.desc(),
        )
        .first()
    )


def start_admin_conversation(
    db: Session,
    user_email: str,
    message: str,
    sender_id: UUID,
    sender_name: str | None,
    user_name: str | None = None,
) -> tuple[ChatConversation, bool]:
    """
    Reach out to a customer from the inbox.

    Reuses the customer's open conversation when there is one instead of
    starting another. The first message is a public agent reply.

    Returns (conversation, existing).

    Raises:
        InvalidInput: blank email
    """
    email = normalize_email(user_email)
    if not email:
        raise InvalidInput("user_email and message are required")

    conversation = find_open_conversation(db, email)
    existing = conversation is not None
    if conversation is None:
        conversation = ChatConversation(
            customer_name=user_name or email,
            customer_email=email,
            source=ConversationSource.ADMIN.value,
            status=ConversationStatus.OPEN.value,
        )
        db.add(conversation)
        db.flush()

    post_message(
        db,
        MessageCreate(conversation_id=conversation.id, body=message, sender_type="agent"),
        sender_id=sender_id,
        sender_name=sender_name,
    )
    logger.info(
        "Admin conversation conversation_id=%s existing=%s", conversation.id, existing
    )
    return conversation, existing


def count_unread(db: Session) -> int:
    """Open conversations nobody has read yet."""
    return (
        db.query(ChatConversation)
        .filter(
            ChatConversation.status == ConversationStatus.OPEN.value,
            ChatConversation.read.is_(False),
        )
        .count()
    )


def get_conversation(db: Session, conversation_id: UUID) -> ChatConversation:
    """
    Raises:
        NotFound: no such conversation
    """
    conversation = (
        db.query(ChatConversation)
        .options(selectinload(ChatConversation.messages))
        .filter(ChatConversation.id == conversation_id)
        .first()
    )
    if not conversation:
        raise NotFound("Conversation not found")
    return conversation


def open_conversation(db: Session, conversation_id: UUID) -> ChatConversation:
    """Load a conversation with its messages and mark it read."""
    conversation = get_conversation(db, conversation_id)
    if not conversation.read:
        conversation.read = True
        db.flush()
    return conversation


def update_conversation(
    db: Session,
    conversation_id: UUID,
    data: ConversationUpdate,
) -> ChatConversation:
    """
    Apply a partial update.

    Closing stamps closed_at; reopening clears it.
    """
    conversation = get_conversation(db, conversation_id)
    updates = data.model_dump(exclude_unset=True)

    if "status" in updates and updates["status"] is not None:
        status = ConversationStatus(updates.pop("status"))
        if status == ConversationStatus.CLOSED and conversation.status != status.value:
            conversation.closed_at = datetime.now(timezone.utc)
        elif status == ConversationStatus.OPEN:
            conversation.closed_at = None
        conversation.status = status.value
    else:
        updates.pop("status", None)

    for field, value in updates.items():
        if field == "read" and value is None:
            continue
        setattr(conversation, field, value)

    db.flush()
    return conversation


def post_message(
    db: Session,
    data: MessageCreate,
    sender_id: UUID | None = None,
    sender_name: str | None = None,
) -> ChatMessage:
    """
    Append a message and refresh the conversation summary.

    Notes are stored as private agent messages. Customer messages mark the
    conversation unread.

    Raises:
        NotFound: no such conversation
    """
    conversation = db.get(ChatConversation, data.conversation_id)
    if not conversation:
        raise NotFound("Conversation not found")

    sender_type = MessageSenderType(data.sender_type)
    is_private = sender_type == MessageSenderType.NOTE
    if is_private:
        sender_type = MessageSenderType.AGENT

    now = datetime.now(timezone.utc)
    message = ChatMessage(
        conversation_id=conversation.id,
        sender_type=sender_type.value,
        sender_id=sender_id,
        sender_name=sender_name or data.sender_name,
        body=data.body,
        is_private=is_private,
        attachments=data.attachments or [],
        created_at=now,
    )
    db.add(message)

    conversation.preview = data.body[:PREVIEW_LENGTH]
    conversation.last_message_at = now
    conversation.read = sender_type != MessageSenderType.CUSTOMER
    db.flush()
    return message


def list_messages(db: Session, conversation_id: UUID) -> list[ChatMessage]:
    """Messages of one conversation, oldest first."""
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
