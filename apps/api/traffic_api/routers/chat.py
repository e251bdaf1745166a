"""Chat router - support inbox conversations, messages, and duplicate merges."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from traffic_api.core.deps import (
    get_db,
    get_optional_session,
    require_capability,
    require_csrf_header,
)
from traffic_api.core.permissions import Capability, requires
from traffic_api.db.enums import AuditAction, ConversationStatus, MessageSenderType
from traffic_api.schemas.auth import UserSession
from traffic_api.schemas.chat import (
    AdminConversationCreate,
    AdminConversationResponse,
    ChatPagination,
    ConversationCreate,
    ConversationDetail,
    ConversationListResponse,
    ConversationRead,
    ConversationUpdate,
    MergeRequest,
    MergeResponse,
    MessageCreate,
    MessageListResponse,
    MessageRead,
    UnreadCountResponse,
)
from traffic_api.services import audit_service, chat_service, conversation_merge_service
from traffic_api.utils.pagination import page_count

router = APIRouter(prefix="/chat", tags=["chat"])

MAX_PAGE_SIZE = 100
STATUS_FILTERS = {status.value for status in ConversationStatus} | {chat_service.STATUS_ALL}


# =============================================================================
# Conversations
# =============================================================================

@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    request: Request,
    status: str = Query(ConversationStatus.OPEN.value),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    session: UserSession = Depends(require_capability(Capability.VIEW_CHAT)),
    db: Session = Depends(get_db),
):
    """List conversations, most recently active first."""
    if status not in STATUS_FILTERS:
        raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")

    conversations, total = chat_service.list_conversations(
        db, status=status, page=page, page_size=page_size
    )

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.LIST_CHAT_CONVERSATIONS,
        resource_type="chat_conversation",
        metadata={"status": status, "page": page, "count": len(conversations)},
        request=request,
    )
    db.commit()

    return ConversationListResponse(
        data=[ConversationRead.model_validate(c) for c in conversations],
        pagination=ChatPagination(
            page=page,
            page_size=page_size,
            total_pages=page_count(total, page_size),
            total_entries=total,
        ),
    )


@router.post("/conversations", response_model=ConversationRead, status_code=201)
def create_conversation(
    data: ConversationCreate,
    db: Session = Depends(get_db),
):
    """Start a conversation (public widget endpoint)."""
    conversation = chat_service.create_conversation(db, data)
    db.commit()
    db.refresh(conversation)
    return conversation


@router.get("/conversations/unread", response_model=UnreadCountResponse)
def unread_count(
    session: UserSession = Depends(require_capability(Capability.VIEW_CHAT)),
    db: Session = Depends(get_db),
):
    """Number of open conversations nobody has read yet."""
    return UnreadCountResponse(count=chat_service.count_unread(db))


@router.post(
    "/conversations/admin-create",
    response_model=AdminConversationResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def admin_create_conversation(
    data: AdminConversationCreate,
    request: Request,
    response: Response,
    session: UserSession = Depends(require_capability(Capability.REPLY_CHAT)),
    db: Session = Depends(get_db),
):
    """
    Message a customer from the inbox.

    Posts into the customer's open conversation when one exists (200),
    otherwise starts a new admin conversation (201).
    """
    conversation, existing = chat_service.start_admin_conversation(
        db,
        user_email=data.user_email,
        message=data.message,
        sender_id=session.user_id,
        sender_name=session.full_name or session.email,
        user_name=data.user_name,
    )

    if not existing:
        audit_service.log_event(
            db=db,
            user_id=session.user_id,
            action=AuditAction.ADMIN_CREATE_CONVERSATION,
            resource_type="chat_conversation",
            resource_id=conversation.id,
            request=request,
        )
    db.commit()
    db.refresh(conversation)

    if existing:
        response.status_code = 200
    return AdminConversationResponse(
        data=ConversationRead.model_validate(conversation),
        existing=existing,
    )


@router.post(
    "/conversations/merge",
    response_model=MergeResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_csrf_header)],
)
def merge_conversations(
    request: Request,
    data: MergeRequest | None = None,
    session: UserSession = Depends(require_capability(Capability.MERGE_CONVERSATIONS)),
    db: Session = Depends(get_db),
):
    """
    Merge duplicate conversations that share a customer email.

    With an email only that customer's conversations are merged; without
    one every duplicated email is processed. Admin only.
    """
    email = data.email if data else None
    single = bool(email and email.strip())

    if single:
        result = conversation_merge_service.merge_conversations_for_email(db, email)
        response = MergeResponse(
            conversations_merged=result.conversations_merged,
            messages_moved=result.messages_moved,
        )
    else:
        bulk = conversation_merge_service.merge_all_duplicates(db)
        response = MergeResponse(
            success=True,
            emails_processed=bulk.emails_processed,
            conversations_merged=bulk.conversations_merged,
            messages_moved=bulk.messages_moved,
        )

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.MERGE_CHAT_CONVERSATIONS,
        resource_type="chat_conversation",
        metadata={
            "mode": "single" if single else "bulk",
            "conversations_merged": response.conversations_merged,
            "messages_moved": response.messages_moved,
        },
        request=request,
    )
    db.commit()
    return response


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: UUID,
    request: Request,
    session: UserSession = Depends(require_capability(Capability.VIEW_CHAT)),
    db: Session = Depends(get_db),
):
    """Conversation with its messages; marks it read."""
    conversation = chat_service.open_conversation(db, conversation_id)

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.VIEW_CHAT_CONVERSATION,
        resource_type="chat_conversation",
        resource_id=conversation.id,
        request=request,
    )
    db.commit()
    return ConversationDetail.model_validate(conversation)


@router.put(
    "/conversations/{conversation_id}",
    response_model=ConversationRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_conversation(
    conversation_id: UUID,
    data: ConversationUpdate,
    request: Request,
    session: UserSession = Depends(require_capability(Capability.REPLY_CHAT)),
    db: Session = Depends(get_db),
):
    """Update status, assignee, subject, or read flag."""
    conversation = chat_service.update_conversation(db, conversation_id, data)

    audit_service.log_event(
        db=db,
        user_id=session.user_id,
        action=AuditAction.UPDATE_CHAT_CONVERSATION,
        resource_type="chat_conversation",
        resource_id=conversation.id,
        metadata={"fields": sorted(data.model_dump(exclude_unset=True))},
        request=request,
    )
    db.commit()
    db.refresh(conversation)
    return conversation


# =============================================================================
# Messages
# =============================================================================

@router.post("/messages", response_model=MessageRead, status_code=201)
def post_message(
    data: MessageCreate,
    request: Request,
    session: UserSession | None = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """
    Post a message.

    Customer messages come from the public widget. Agent replies and notes
    need a signed-in user with reply access.
    """
    sender_id = None
    sender_name = None
    if data.sender_type != MessageSenderType.CUSTOMER.value:
        if session is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        require_csrf_header(request)
        decision = requires(session, Capability.REPLY_CHAT)
        if not decision:
            raise HTTPException(status_code=403, detail=decision.reason)
        sender_id = session.user_id
        sender_name = session.full_name or session.email

    message = chat_service.post_message(
        db, data, sender_id=sender_id, sender_name=sender_name
    )

    if session is not None and sender_id is not None:
        audit_service.log_event(
            db=db,
            user_id=session.user_id,
            action=AuditAction.SEND_CHAT_MESSAGE,
            resource_type="chat_conversation",
            resource_id=data.conversation_id,
            metadata={"sender_type": data.sender_type},
            request=request,
        )
    db.commit()
    db.refresh(message)
    return message


@router.get("/messages", response_model=MessageListResponse)
def list_messages(
    conversation_id: UUID = Query(...),
    session: UserSession = Depends(require_capability(Capability.VIEW_CHAT)),
    db: Session = Depends(get_db),
):
    """Messages of one conversation, oldest first."""
    chat_service.get_conversation(db, conversation_id)
    messages = chat_service.list_messages(db, conversation_id)
    return MessageListResponse(data=[MessageRead.model_validate(m) for m in messages])
