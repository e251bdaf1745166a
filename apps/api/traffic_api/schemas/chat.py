"""Pydantic schemas for chat conversations, messages, and merges."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from traffic_api.db.enums import ConversationSource, ConversationStatus, MessageSenderType


# =============================================================================
# Conversations
# =============================================================================

class ConversationCreate(BaseModel):
    """Widget request to open a conversation."""
    customer_name: str | None = Field(None, max_length=255)
    customer_email: str | None = Field(None, max_length=255)
    customer_metadata: dict = Field(default_factory=dict)
    visitor_id: str | None = None
    source: ConversationSource = ConversationSource.WIDGET
    page_url: str | None = Field(None, max_length=2000)


class AdminConversationCreate(BaseModel):
    """Inbox user reaching out to a customer by email."""
    user_email: str = Field(..., min_length=1, max_length=255)
    user_name: str | None = Field(None, max_length=255)
    message: str = Field(..., min_length=1, max_length=10000)


class ConversationUpdate(BaseModel):
    """Partial update from the inbox."""
    status: ConversationStatus | None = None
    assignee_id: UUID | None = None
    subject: str | None = Field(None, max_length=500)
    read: bool | None = None


class ConversationRead(BaseModel):
    id: UUID
    customer_name: str | None
    customer_email: str | None
    customer_metadata: dict = Field(default_factory=dict)
    visitor_id: str | None = None
    assignee_id: UUID | None = None
    status: ConversationStatus
    subject: str | None = None
    preview: str | None = None
    read: bool
    last_message_at: datetime | None = None
    source: str
    page_url: str | None = None
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MessageRead(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_type: MessageSenderType
    sender_id: UUID | None = None
    sender_name: str | None = None
    body: str
    is_private: bool
    attachments: list = Field(default_factory=list)
    seen_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationDetail(ConversationRead):
    """Conversation with its full message history."""
    messages: list[MessageRead] = Field(default_factory=list)


class AdminConversationResponse(BaseModel):
    data: ConversationRead
    existing: bool


class UnreadCountResponse(BaseModel):
    count: int


class ChatPagination(BaseModel):
    page: int
    page_size: int
    total_pages: int
    total_entries: int


class ConversationListResponse(BaseModel):
    data: list[ConversationRead]
    pagination: ChatPagination


# =============================================================================
# Messages
# =============================================================================

class MessageCreate(BaseModel):
    """
    New message on a conversation.

    customer messages come from the public widget; agent and note messages
    require a signed-in user.
    """
    conversation_id: UUID
    body: str = Field(..., min_length=1, max_length=10000)
    sender_type: Literal["customer", "agent", "note"] = "customer"
    sender_name: str | None = Field(None, max_length=255)
    attachments: list = Field(default_factory=list)


class MessageListResponse(BaseModel):
    data: list[MessageRead]


# =============================================================================
# Merge
# =============================================================================

class MergeRequest(BaseModel):
    """Merge one email's conversations, or every duplicated email when omitted."""
    email: str | None = Field(None, max_length=255)

    model_config = ConfigDict(extra="forbid")


class MergeResponse(BaseModel):
    """
    Merge totals, camelCase on the wire.

    success and emailsProcessed are only present for a merge across every
    duplicated email.
    """
    success: bool | None = None
    emails_processed: int | None = Field(None, alias="emailsProcessed")
    conversations_merged: int = Field(..., alias="conversationsMerged")
    messages_moved: int = Field(..., alias="messagesMoved")

    model_config = ConfigDict(populate_by_name=True)
