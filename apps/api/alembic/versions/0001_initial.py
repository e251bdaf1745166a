"""Initial schema - users, audiences, chat, and audit tables

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create every table."""
    
    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default=sa.text("'partner'")),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
    )
    
    # ==========================================================================
    # Audiences
    # ==========================================================================
    op.create_table(
        'audience_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('request_type', sa.String(20), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('form_data', JSON, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reviewed_at', TIMESTAMP, nullable=True),
        sa.Column('audience_id', sa.Text(), nullable=True),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_audience_requests_user', 'audience_requests', ['user_id'])
    op.create_index('idx_audience_requests_status', 'audience_requests', ['status'])
    op.create_index('idx_audience_requests_audience_id', 'audience_requests', ['audience_id'])
    
    contact_columns = [
        'email', 'full_name', 'first_name', 'last_name', 'company', 'job_title',
        'phone', 'city', 'state', 'country', 'linkedin_url', 'seniority', 'department',
    ]
    op.create_table(
        'audience_contacts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('audience_id', sa.Text(), nullable=False),
        *[sa.Column(name, sa.Text(), nullable=True) for name in contact_columns],
        sa.Column('data', JSON, nullable=True),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_audience_contacts_audience_id', 'audience_contacts', ['audience_id'])
    op.create_index('idx_audience_contacts_email', 'audience_contacts', ['email'])
    
    # ==========================================================================
    # Chat
    # ==========================================================================
    op.create_table(
        'chat_conversations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_name', sa.Text(), nullable=True),
        sa.Column('customer_email', sa.Text(), nullable=True),
        sa.Column('customer_metadata', JSON, nullable=False),
        sa.Column('visitor_id', sa.Text(), nullable=True),
        sa.Column('assignee_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('subject', sa.Text(), nullable=True),
        sa.Column('preview', sa.Text(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('last_message_at', TIMESTAMP, nullable=True),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('page_url', sa.Text(), nullable=True),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
        sa.Column('closed_at', TIMESTAMP, nullable=True),
    )
    op.create_index('idx_chat_conversations_status', 'chat_conversations', ['status'])
    op.create_index('idx_chat_conversations_customer_email', 'chat_conversations', ['customer_email'])
    op.create_index('idx_chat_conversations_last_message', 'chat_conversations', ['last_message_at'])
    op.create_index('idx_chat_conversations_created', 'chat_conversations', ['created_at'])
    
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'conversation_id',
            sa.Uuid(),
            sa.ForeignKey('chat_conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('sender_type', sa.String(20), nullable=False),
        sa.Column('sender_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('sender_name', sa.Text(), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False),
        sa.Column('attachments', JSON, nullable=False),
        sa.Column('seen_at', TIMESTAMP, nullable=True),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_chat_messages_conversation', 'chat_messages', ['conversation_id'])
    op.create_index('idx_chat_messages_created', 'chat_messages', ['created_at'])
    
    # ==========================================================================
    # Audit
    # ==========================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.Text(), nullable=True),
        sa.Column('metadata', JSON, nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('idx_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    """Drop every table."""
    op.drop_table('audit_logs')
    op.drop_table('chat_messages')
    op.drop_table('chat_conversations')
    op.drop_table('audience_contacts')
    op.drop_table('audience_requests')
    op.drop_table('users')
