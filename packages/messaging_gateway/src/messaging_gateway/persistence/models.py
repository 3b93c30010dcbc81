"""
Messaging Gateway Database Models

Tables owned by the messaging gateway.

Tables:
- tenants: Tenant directory (tier only; the rest of the tenant lives elsewhere)
- addon_definitions / tenant_addons: Paid feature entitlements
- platform_settings: Provider-level shared credentials
- tenant_messaging_configs: Per-tenant provider configuration
- message_packages / quota_subscriptions: Purchased message allowance
- message_logs: One row per send attempt (and per inbound message)
- conversations / chat_messages: Two-way threads
- message_templates / trigger_mappings: Template workflow and event bindings
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

GatewayBase = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")

MESSAGING_ADDON_KEY = "whatsapp_notifications"


def utcnow() -> datetime:
    """Naive UTC timestamp (all columns store UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageDirection(str, Enum):
    """Direction of a message."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    """Delivery status of a message."""

    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class MessageKind(str, Enum):
    """Business purpose of a logged message."""

    RECEIPT = "receipt"
    ALERT = "alert"
    MANUAL = "manual"
    COMMAND = "command"
    AUTO_REPLY = "auto_reply"
    CHAT = "chat"


class SubscriptionStatus(str, Enum):
    """Lifecycle of a quota subscription."""

    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


# Statuses that allow sending
LIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value)


class AddonStatus(str, Enum):
    """Lifecycle of a tenant addon."""

    ACTIVE = "active"
    TRIAL = "trial"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TemplateStatus(str, Enum):
    """Template approval workflow."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TemplateCategory(str, Enum):
    """Provider template categories."""

    UTILITY = "utility"
    MARKETING = "marketing"
    AUTHENTICATION = "authentication"


class ChatContentType(str, Enum):
    """Content type of a chat message."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"


class TriggerEvent(str, Enum):
    """Business events that can fire a template message."""

    SALE_COMPLETED = "sale_completed"
    LOW_STOCK_ALERT = "low_stock_alert"
    ORDER_READY = "order_ready"
    PAYMENT_RECEIVED = "payment_received"
    DAILY_SUMMARY = "daily_summary"


class GatewayModelMixin:
    """Common fields for all gateway models."""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class TenantScopedMixin(GatewayModelMixin):
    """Models owned by a single tenant."""

    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)


# =============================================================================
# Tenants and entitlements
# =============================================================================


class Tenant(GatewayBase, GatewayModelMixin):
    """Tenant directory entry. Only the fields the gateway reads."""

    __tablename__ = "tenants"

    name = Column(String(255), nullable=False)
    subscription_tier = Column(String(50), nullable=False, default="basic")
    is_active = Column(Boolean, nullable=False, default=True)


class AddonDefinition(GatewayBase, GatewayModelMixin):
    """Catalog entry for a paid addon."""

    __tablename__ = "addon_definitions"

    addon_key = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    monthly_price = Column(Integer, nullable=False, default=0)  # cents
    trial_days = Column(Integer, nullable=False, default=0)
    included_in_tiers = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)


class TenantAddon(GatewayBase, TenantScopedMixin):
    """
    A tenant's entitlement to an addon.

    trial_used_at is never cleared, so a trial can only be granted once.
    """

    __tablename__ = "tenant_addons"

    addon_key = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=AddonStatus.ACTIVE.value)
    monthly_price = Column(Integer, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    trial_used_at = Column(DateTime, nullable=True)
    activated_at = Column(DateTime, nullable=True, default=utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "addon_key", name="uq_tenant_addons_tenant_addon"),
    )


# =============================================================================
# Configuration
# =============================================================================


class PlatformSetting(GatewayBase):
    """Platform-wide key/value store; secrets go in encrypted_value."""

    __tablename__ = "platform_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    encrypted_value = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class TenantMessagingConfig(GatewayBase, TenantScopedMixin):
    """
    Per-tenant messaging configuration.

    Unset credential fields fall back to the platform values.
    """

    __tablename__ = "tenant_messaging_configs"

    enabled = Column(Boolean, nullable=False, default=False)
    api_key_encrypted = Column(Text, nullable=True)
    app_name = Column(String(255), nullable=True)
    sender_phone = Column(String(32), nullable=True)

    notify_on_sale = Column(Boolean, nullable=False, default=False)
    notify_on_low_stock = Column(Boolean, nullable=False, default=False)
    notify_daily_summary = Column(Boolean, nullable=False, default=False)

    business_hours = Column(Text, nullable=True)
    support_info = Column(Text, nullable=True)

    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_messaging_configs_tenant"),
        Index("idx_tenant_messaging_configs_sender", "sender_phone"),
    )


# =============================================================================
# Quota
# =============================================================================


class MessagePackage(GatewayBase, GatewayModelMixin):
    """Purchasable message allowance."""

    __tablename__ = "message_packages"

    name = Column(String(255), nullable=False)
    message_limit = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # cents
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)


class QuotaSubscription(GatewayBase, TenantScopedMixin):
    """
    A tenant's purchased allowance.

    messages_used never exceeds message_limit: the atomic deduction only
    matches rows with remaining allowance and flips the status to exhausted
    on the last message.
    """

    __tablename__ = "quota_subscriptions"

    package_id = Column(Uuid(as_uuid=True), ForeignKey("message_packages.id"), nullable=True)
    message_limit = Column(Integer, nullable=False)
    messages_used = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    renewal_date = Column(DateTime, nullable=True)
    activated_at = Column(DateTime, nullable=True, default=utcnow)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_quota_subscriptions_tenant_live",
            "tenant_id",
            unique=True,
            postgresql_where=text("status IN ('active', 'trial')"),
            sqlite_where=text("status IN ('active', 'trial')"),
        ),
        Index("idx_quota_subscriptions_tenant_status", "tenant_id", "status"),
        CheckConstraint("messages_used <= message_limit", name="ck_quota_subscriptions_within_limit"),
    )

    @property
    def remaining(self) -> int:
        return self.message_limit - (self.messages_used or 0)


# =============================================================================
# Message log
# =============================================================================


class MessageLog(GatewayBase, TenantScopedMixin):
    """
    One row per send attempt.

    Append-only except for status/provider id/error, which the dispatcher
    and delivery webhooks update.
    """

    __tablename__ = "message_logs"

    direction = Column(String(10), nullable=False)
    phone = Column(String(32), nullable=False)
    message_kind = Column(String(20), nullable=False)
    template_id = Column(String(255), nullable=True)  # provider template id
    body = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=MessageStatus.QUEUED.value)
    provider_message_id = Column(String(255), nullable=True, index=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_message_logs_tenant_created", "tenant_id", "created_at"),
        Index("idx_message_logs_tenant_direction", "tenant_id", "direction"),
    )


# =============================================================================
# Conversations
# =============================================================================


class Conversation(GatewayBase, TenantScopedMixin):
    """A thread with one customer. Unique per (tenant, customer_phone)."""

    __tablename__ = "conversations"

    customer_phone = Column(String(32), nullable=False)
    customer_name = Column(String(255), nullable=True)
    last_message_at = Column(DateTime, nullable=True, default=utcnow)
    last_message_preview = Column(Text, nullable=True)
    unread_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "customer_phone", name="uq_conversations_tenant_phone"),
        Index("idx_conversations_tenant_last_message", "tenant_id", "last_message_at"),
    )


class ChatMessage(GatewayBase):
    """A message inside a conversation. Immutable except status."""

    __tablename__ = "chat_messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    conversation_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    direction = Column(String(10), nullable=False)
    content_type = Column(String(20), nullable=False, default=ChatContentType.TEXT.value)
    body = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    media_mime_type = Column(String(100), nullable=True)
    media_filename = Column(String(255), nullable=True)
    caption = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    contact_json = Column(JSONType, nullable=True)
    sender_phone = Column(String(32), nullable=True)
    sender_name = Column(String(255), nullable=True)
    provider_message_id = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=MessageStatus.SENT.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# =============================================================================
# Templates and triggers
# =============================================================================


class MessageTemplate(GatewayBase, TenantScopedMixin):
    """
    A reusable message template.

    draft -> pending -> approved | rejected. Editing approved/rejected
    templates sends them back to draft.
    """

    __tablename__ = "message_templates"

    name = Column(String(512), nullable=False)  # normalized
    category = Column(String(20), nullable=False, default=TemplateCategory.UTILITY.value)
    language = Column(String(10), nullable=False, default="es")
    header_text = Column(Text, nullable=True)
    body_text = Column(Text, nullable=False)
    footer_text = Column(Text, nullable=True)
    buttons = Column(JSONType, nullable=False, default=list)
    variables_sample = Column(JSONType, nullable=False, default=dict)
    provider_template_id = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=TemplateStatus.DRAFT.value)
    rejection_reason = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", "language", name="uq_message_templates_tenant_name_lang"),
        Index("idx_message_templates_tenant_status", "tenant_id", "status"),
    )


class TriggerMapping(GatewayBase, TenantScopedMixin):
    """Binds a business event to an approved template."""

    __tablename__ = "trigger_mappings"

    event = Column(String(50), nullable=False)
    template_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("message_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    variable_mapping = Column(JSONType, nullable=False, default=dict)  # {"1": "customer_name"}
    enabled = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "event", name="uq_trigger_mappings_tenant_event"),
    )
