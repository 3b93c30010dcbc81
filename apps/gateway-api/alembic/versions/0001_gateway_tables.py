"""Messaging Gateway Tables

Revision ID: 0001_gateway_tables
Revises:
Create Date: 2026-10-01

Creates tables owned by the messaging gateway:
- tenants, addon_definitions, tenant_addons: entitlement inputs
- platform_settings, tenant_messaging_configs: credentials and toggles
- message_packages, quota_subscriptions: prepaid message allowance
- message_logs: one row per send attempt and inbound message
- conversations, chat_messages: customer threads
- message_templates, trigger_mappings: template lifecycle and event bindings
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = '0001_gateway_tables'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade():
    # =========================================================================
    # TENANTS AND ADDONS
    # =========================================================================

    op.create_table(
        'tenants',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('subscription_tier', sa.String(50), server_default='basic', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'addon_definitions',
        _id(),
        sa.Column('addon_key', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('monthly_price', sa.Integer(), server_default='0', nullable=False),
        sa.Column('trial_days', sa.Integer(), server_default='0', nullable=False),
        sa.Column('included_in_tiers', JSONB(), server_default='[]', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('addon_key'),
    )

    op.create_table(
        'tenant_addons',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('addon_key', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('monthly_price', sa.Integer(), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('trial_used_at', sa.DateTime(), nullable=True),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'addon_key', name='uq_tenant_addons_tenant_addon'),
    )
    op.create_index('ix_tenant_addons_tenant_id', 'tenant_addons', ['tenant_id'])

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    op.create_table(
        'platform_settings',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('encrypted_value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_table(
        'tenant_messaging_configs',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('api_key_encrypted', sa.Text(), nullable=True),
        sa.Column('app_name', sa.String(255), nullable=True),
        sa.Column('sender_phone', sa.String(32), nullable=True),
        sa.Column('notify_on_sale', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('notify_on_low_stock', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('notify_daily_summary', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('business_hours', sa.Text(), nullable=True),
        sa.Column('support_info', sa.Text(), nullable=True),
        sa.Column('error_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', name='uq_tenant_messaging_configs_tenant'),
    )
    op.create_index('ix_tenant_messaging_configs_tenant_id', 'tenant_messaging_configs', ['tenant_id'])
    op.create_index('idx_tenant_messaging_configs_sender', 'tenant_messaging_configs', ['sender_phone'])

    # =========================================================================
    # QUOTA
    # =========================================================================

    op.create_table(
        'message_packages',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('message_limit', sa.Integer(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'quota_subscriptions',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('package_id', UUID(as_uuid=True), nullable=True),
        sa.Column('message_limit', sa.Integer(), nullable=False),
        sa.Column('messages_used', sa.Integer(), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('renewal_date', sa.DateTime(), nullable=True),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['package_id'], ['message_packages.id']),
        sa.CheckConstraint('messages_used <= message_limit', name='ck_quota_subscriptions_within_limit'),
    )
    op.create_index('ix_quota_subscriptions_tenant_id', 'quota_subscriptions', ['tenant_id'])
    op.create_index('idx_quota_subscriptions_tenant_status', 'quota_subscriptions', ['tenant_id', 'status'])
    # At most one live subscription per tenant
    op.create_index(
        'uq_quota_subscriptions_tenant_live',
        'quota_subscriptions',
        ['tenant_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('active', 'trial')"),
    )

    # =========================================================================
    # MESSAGE LOG
    # =========================================================================

    op.create_table(
        'message_logs',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('message_kind', sa.String(20), nullable=False),
        sa.Column('template_id', sa.String(255), nullable=True),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), server_default='queued', nullable=False),
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_message_logs_tenant_id', 'message_logs', ['tenant_id'])
    op.create_index('ix_message_logs_provider_message_id', 'message_logs', ['provider_message_id'])
    op.create_index('idx_message_logs_tenant_created', 'message_logs', ['tenant_id', 'created_at'])
    op.create_index('idx_message_logs_tenant_direction', 'message_logs', ['tenant_id', 'direction'])

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    op.create_table(
        'conversations',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('customer_phone', sa.String(32), nullable=False),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('last_message_preview', sa.Text(), nullable=True),
        sa.Column('unread_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'customer_phone', name='uq_conversations_tenant_phone'),
    )
    op.create_index('ix_conversations_tenant_id', 'conversations', ['tenant_id'])
    op.create_index('idx_conversations_tenant_last_message', 'conversations', ['tenant_id', 'last_message_at'])

    op.create_table(
        'chat_messages',
        _id(),
        sa.Column('conversation_id', UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('content_type', sa.String(20), server_default='text', nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('media_mime_type', sa.String(100), nullable=True),
        sa.Column('media_filename', sa.String(255), nullable=True),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('contact_json', JSONB(), nullable=True),
        sa.Column('sender_phone', sa.String(32), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='sent', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_chat_messages_conversation_id', 'chat_messages', ['conversation_id'])
    op.create_index('ix_chat_messages_tenant_id', 'chat_messages', ['tenant_id'])
    op.create_index('ix_chat_messages_provider_message_id', 'chat_messages', ['provider_message_id'])

    # =========================================================================
    # TEMPLATES AND TRIGGERS
    # =========================================================================

    op.create_table(
        'message_templates',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('category', sa.String(20), server_default='utility', nullable=False),
        sa.Column('language', sa.String(10), server_default='es', nullable=False),
        sa.Column('header_text', sa.Text(), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=False),
        sa.Column('footer_text', sa.Text(), nullable=True),
        sa.Column('buttons', JSONB(), server_default='[]', nullable=False),
        sa.Column('variables_sample', JSONB(), server_default='{}', nullable=False),
        sa.Column('provider_template_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', 'language', name='uq_message_templates_tenant_name_lang'),
    )
    op.create_index('ix_message_templates_tenant_id', 'message_templates', ['tenant_id'])
    op.create_index('ix_message_templates_provider_template_id', 'message_templates', ['provider_template_id'])
    op.create_index('idx_message_templates_tenant_status', 'message_templates', ['tenant_id', 'status'])

    op.create_table(
        'trigger_mappings',
        _id(),
        sa.Column('tenant_id', UUID(as_uuid=True), nullable=False),
        sa.Column('event', sa.String(50), nullable=False),
        sa.Column('template_id', UUID(as_uuid=True), nullable=False),
        sa.Column('variable_mapping', JSONB(), server_default='{}', nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['template_id'], ['message_templates.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id', 'event', name='uq_trigger_mappings_tenant_event'),
    )
    op.create_index('ix_trigger_mappings_tenant_id', 'trigger_mappings', ['tenant_id'])


def downgrade():
    op.drop_table('trigger_mappings')
    op.drop_table('message_templates')
    op.drop_table('chat_messages')
    op.drop_table('conversations')
    op.drop_table('message_logs')
    op.drop_table('quota_subscriptions')
    op.drop_table('message_packages')
    op.drop_table('tenant_messaging_configs')
    op.drop_table('platform_settings')
    op.drop_table('tenant_addons')
    op.drop_table('addon_definitions')
    op.drop_table('tenants')
