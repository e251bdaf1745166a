"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - ADMIN: Platform admin (all audiences, conversation merges, uploads)
    - TEAM: Support agent (chat inbox, own audiences)
    - PARTNER: Customer account (own audiences only)
    """
    ADMIN = "admin"
    TEAM = "team"
    PARTNER = "partner"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class ConversationStatus(str, Enum):
    """Chat conversation lifecycle."""
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class MessageSenderType(str, Enum):
    """Who wrote a chat message. Notes are stored as private agent messages."""
    CUSTOMER = "customer"
    AGENT = "agent"
    BOT = "bot"
    NOTE = "note"


class ConversationSource(str, Enum):
    """Where a conversation was started."""
    WIDGET = "widget"
    ADMIN = "admin"


class AudienceRequestType(str, Enum):
    STANDARD = "standard"
    CUSTOM = "custom"


class AudienceRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    """
    Audit trail actions.

    Stored verbatim in audit_logs.action.
    """
    CREATE_MANUAL_AUDIENCE = "create_manual_audience"
    DELETE_MANUAL_AUDIENCE = "delete_manual_audience"
    CLEAR_AUDIENCE_CONTACTS = "clear_audience_contacts"
    EXPORT_AUDIENCE = "export_audience"
    LIST_CHAT_CONVERSATIONS = "list_chat_conversations"
    VIEW_CHAT_CONVERSATION = "view_chat_conversation"
    UPDATE_CHAT_CONVERSATION = "update_chat_conversation"
    SEND_CHAT_MESSAGE = "send_chat_message"
    ADMIN_CREATE_CONVERSATION = "admin_create_conversation"
    MERGE_CHAT_CONVERSATIONS = "merge_chat_conversations"


# Default values (for model defaults)
DEFAULT_ROLE = Role.PARTNER
DEFAULT_CONVERSATION_STATUS = ConversationStatus.OPEN
DEFAULT_CONVERSATION_SOURCE = ConversationSource.WIDGET
