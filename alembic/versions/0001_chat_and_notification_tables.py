"""chat and notification tables

Revision ID: 0001_chat_notifications
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_chat_notifications'
down_revision = None
branch_labels = None
depends_on = None

NOTIFICATION_TYPES = ('chat', 'leave', 'purchase', 'task', 'birthday', 'checkout', 'announcement')
NOTIFICATION_PRIORITIES = ('low', 'normal', 'high', 'urgent')


def _base_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    op.create_table('chats',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('chat_type', sa.String(length=10), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_chats_created_by'), 'chats', ['created_by'])

    op.create_table('chat_participants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('chat_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=10), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('chat_id', 'user_id', name='uq_chat_participant')
    )
    op.create_index(op.f('ix_chat_participants_chat_id'), 'chat_participants', ['chat_id'])
    op.create_index(op.f('ix_chat_participants_user_id'), 'chat_participants', ['user_id'])

    op.create_table('chat_messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('chat_id', sa.String(length=64), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('chat_type', sa.String(length=10), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_chat_message_chat_time', 'chat_messages', ['chat_id', 'created_at'])
    op.create_index('idx_chat_message_unread', 'chat_messages', ['chat_id', 'read_at'])
    op.create_index(op.f('ix_chat_messages_chat_id'), 'chat_messages', ['chat_id'])
    op.create_index(op.f('ix_chat_messages_sender_id'), 'chat_messages', ['sender_id'])

    op.create_table('chat_unread_counts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('chat_id', sa.String(length=64), nullable=False),
        sa.Column('unread_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'chat_id', name='uq_chat_unread_user_chat'),
        sa.CheckConstraint('unread_count >= 0', name='ck_chat_unread_non_negative')
    )
    op.create_index(op.f('ix_chat_unread_counts_user_id'), 'chat_unread_counts', ['user_id'])
    op.create_index(op.f('ix_chat_unread_counts_chat_id'), 'chat_unread_counts', ['chat_id'])

    op.create_table('notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.Enum(*NOTIFICATION_TYPES, native_enum=False, create_constraint=True,
                                  name='valid_notification_type'), nullable=False),
        sa.Column('priority', sa.Enum(*NOTIFICATION_PRIORITIES, native_enum=False,
                                      name='notificationpriority'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_id', sa.String(length=64), nullable=True),
        sa.Column('action_url', sa.String(length=500), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'])
    op.create_index(op.f('ix_notifications_expires_at'), 'notifications', ['expires_at'])
    op.create_index('idx_notifications_user_unread', 'notifications', ['user_id', 'is_read'])

    op.create_table('push_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('token', sa.String(length=500), nullable=False),
        sa.Column('platform', sa.String(length=20), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_push_tokens_user_id'), 'push_tokens', ['user_id'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_push_tokens_user_id'), table_name='push_tokens')
    op.drop_table('push_tokens')

    op.drop_index('idx_notifications_user_unread', table_name='notifications')
    op.drop_index(op.f('ix_notifications_expires_at'), table_name='notifications')
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')

    op.drop_index(op.f('ix_chat_unread_counts_chat_id'), table_name='chat_unread_counts')
    op.drop_index(op.f('ix_chat_unread_counts_user_id'), table_name='chat_unread_counts')
    op.drop_table('chat_unread_counts')

    op.drop_index(op.f('ix_chat_messages_sender_id'), table_name='chat_messages')
    op.drop_index(op.f('ix_chat_messages_chat_id'), table_name='chat_messages')
    op.drop_index('idx_chat_message_unread', table_name='chat_messages')
    op.drop_index('idx_chat_message_chat_time', table_name='chat_messages')
    op.drop_table('chat_messages')

    op.drop_index(op.f('ix_chat_participants_user_id'), table_name='chat_participants')
    op.drop_index(op.f('ix_chat_participants_chat_id'), table_name='chat_participants')
    op.drop_table('chat_participants')

    op.drop_index(op.f('ix_chats_created_by'), table_name='chats')
    op.drop_table('chats')
