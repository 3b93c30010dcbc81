"""
Messaging Gateway Repository

Repository pattern for gateway database operations.
Provides CRUD operations and common queries for gateway tables.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from messaging_gateway.persistence.models import (
    LIVE_SUBSCRIPTION_STATUSES,
    AddonDefinition,
    ChatMessage,
    Conversation,
    MessageDirection,
    MessageLog,
    MessagePackage,
    MessageTemplate,
    PlatformSetting,
    QuotaSubscription,
    SubscriptionStatus,
    Tenant,
    TenantAddon,
    TenantMessagingConfig,
    TriggerMapping,
    utcnow,
)


class GatewayRepository:
    """Repository for messaging gateway database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Tenants and Addons
    # =========================================================================

    def get_tenant(self, tenant_id: UUID) -> Tenant | None:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def create_tenant(self, name: str, subscription_tier: str = "basic") -> Tenant:
        tenant = Tenant(name=name, subscription_tier=subscription_tier)
        self.db.add(tenant)
        self.db.flush()
        return tenant

    def get_addon_definition(self, addon_key: str) -> AddonDefinition | None:
        return (
            self.db.query(AddonDefinition)
            .filter(AddonDefinition.addon_key == addon_key)
            .first()
        )

    def get_tenant_addon(self, tenant_id: UUID, addon_key: str) -> TenantAddon | None:
        return (
            self.db.query(TenantAddon)
            .filter(
                TenantAddon.tenant_id == tenant_id,
                TenantAddon.addon_key == addon_key,
            )
            .first()
        )

    # =========================================================================
    # Platform Settings
    # =========================================================================

    def get_platform_setting(self, key: str) -> PlatformSetting | None:
        return self.db.query(PlatformSetting).filter(PlatformSetting.key == key).first()

    def set_platform_setting(
        self,
        key: str,
        value: str | None = None,
        encrypted_value: str | None = None,
    ) -> PlatformSetting:
        """Insert or replace a platform setting."""
        setting = self.get_platform_setting(key)
        if setting is None:
            setting = PlatformSetting(key=key)
            self.db.add(setting)
        setting.value = value
        setting.encrypted_value = encrypted_value
        setting.updated_at = utcnow()
        self.db.flush()
        return setting

    # =========================================================================
    # Tenant Messaging Config
    # =========================================================================

    def get_config(self, tenant_id: UUID) -> TenantMessagingConfig | None:
        return (
            self.db.query(TenantMessagingConfig)
            .filter(TenantMessagingConfig.tenant_id == tenant_id)
            .first()
        )

    def get_or_create_config(self, tenant_id: UUID) -> TenantMessagingConfig:
        config = self.get_config(tenant_id)
        if config is None:
            config = TenantMessagingConfig(tenant_id=tenant_id, enabled=False)
            self.db.add(config)
            self.db.flush()
        return config

    def list_enabled_configs(self) -> list[TenantMessagingConfig]:
        return (
            self.db.query(TenantMessagingConfig)
            .filter(TenantMessagingConfig.enabled == True)  # noqa: E712
            .all()
        )

    def reset_error_count(self, tenant_id: UUID) -> None:
        self.db.query(TenantMessagingConfig).filter(
            TenantMessagingConfig.tenant_id == tenant_id
        ).update(
            {
                TenantMessagingConfig.error_count: 0,
                TenantMessagingConfig.last_error: None,
            },
            synchronize_session=False,
        )

    def increment_error_count(self, tenant_id: UUID, error: str | None) -> None:
        self.db.query(TenantMessagingConfig).filter(
            TenantMessagingConfig.tenant_id == tenant_id
        ).update(
            {
                TenantMessagingConfig.error_count: TenantMessagingConfig.error_count + 1,
                TenantMessagingConfig.last_error: error,
            },
            synchronize_session=False,
        )

    # =========================================================================
    # Packages and Subscriptions
    # =========================================================================

    def list_packages(self, active_only: bool = True) -> list[MessagePackage]:
        query = self.db.query(MessagePackage)
        if active_only:
            query = query.filter(MessagePackage.is_active == True)  # noqa: E712
        return query.order_by(MessagePackage.sort_order, MessagePackage.message_limit).all()

    def get_package(self, package_id: UUID) -> MessagePackage | None:
        return self.db.query(MessagePackage).filter(MessagePackage.id == package_id).first()

    def create_package(
        self,
        name: str,
        message_limit: int,
        price: int,
        sort_order: int = 0,
    ) -> MessagePackage:
        package = MessagePackage(
            name=name,
            message_limit=message_limit,
            price=price,
            sort_order=sort_order,
            is_active=True,
        )
        self.db.add(package)
        self.db.flush()
        return package

    def get_live_subscription(self, tenant_id: UUID) -> QuotaSubscription | None:
        """Get the tenant's usable (active or trial) subscription."""
        return (
            self.db.query(QuotaSubscription)
            .filter(
                QuotaSubscription.tenant_id == tenant_id,
                QuotaSubscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
            )
            .order_by(QuotaSubscription.created_at.desc())
            .first()
        )

    def get_latest_subscription(self, tenant_id: UUID) -> QuotaSubscription | None:
        return (
            self.db.query(QuotaSubscription)
            .filter(QuotaSubscription.tenant_id == tenant_id)
            .order_by(QuotaSubscription.created_at.desc())
            .first()
        )

    def create_subscription(self, **fields: Any) -> QuotaSubscription:
        subscription = QuotaSubscription(**fields)
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def set_subscription_status(self, subscription: QuotaSubscription, status: SubscriptionStatus) -> None:
        subscription.status = status.value
        subscription.updated_at = utcnow()

    def deduct_message(self, tenant_id: UUID) -> bool:
        """
        Atomically consume one message from the live subscription.

        A single UPDATE increments the counter only while allowance remains
        and marks the row exhausted when the last message is consumed.

        Returns:
            True if one row was debited
        """
        rows = (
            self.db.query(QuotaSubscription)
            .filter(
                QuotaSubscription.tenant_id == tenant_id,
                QuotaSubscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
                QuotaSubscription.messages_used < QuotaSubscription.message_limit,
            )
            .update(
                {
                    QuotaSubscription.messages_used: QuotaSubscription.messages_used + 1,
                    QuotaSubscription.status: case(
                        (
                            QuotaSubscription.messages_used + 1 >= QuotaSubscription.message_limit,
                            SubscriptionStatus.EXHAUSTED.value,
                        ),
                        else_=QuotaSubscription.status,
                    ),
                    QuotaSubscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        return rows == 1

    # =========================================================================
    # Message Logs
    # =========================================================================

    def create_message_log(self, **fields: Any) -> MessageLog:
        log = MessageLog(**fields)
        self.db.add(log)
        self.db.flush()
        return log

    def get_message_logs_by_provider_id(self, provider_message_id: str) -> list[MessageLog]:
        return (
            self.db.query(MessageLog)
            .filter(MessageLog.provider_message_id == provider_message_id)
            .all()
        )

    def list_message_logs(
        self,
        tenant_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MessageLog], int]:
        """List logs newest first, with the tenant's total count."""
        query = self.db.query(MessageLog).filter(MessageLog.tenant_id == tenant_id)
        total = query.count()
        rows = (
            query.order_by(MessageLog.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    def count_outbound(self, tenant_id: UUID) -> int:
        return (
            self.db.query(func.count(MessageLog.id))
            .filter(
                MessageLog.tenant_id == tenant_id,
                MessageLog.direction == MessageDirection.OUTBOUND.value,
            )
            .scalar()
        ) or 0

    # =========================================================================
    # Conversations
    # =========================================================================

    def get_conversation(self, tenant_id: UUID, customer_phone: str) -> Conversation | None:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.tenant_id == tenant_id,
                Conversation.customer_phone == customer_phone,
            )
            .first()
        )

    def get_conversation_by_id(self, tenant_id: UUID, conversation_id: UUID) -> Conversation | None:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
            .first()
        )

    def list_conversations(
        self,
        tenant_id: UUID,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Conversation]:
        query = self.db.query(Conversation).filter(Conversation.tenant_id == tenant_id)

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Conversation.customer_phone.ilike(pattern),
                    Conversation.customer_name.ilike(pattern),
                )
            )

        return (
            query.order_by(Conversation.last_message_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Chat Messages
    # =========================================================================

    def create_chat_message(self, **fields: Any) -> ChatMessage:
        message = ChatMessage(**fields)
        self.db.add(message)
        self.db.flush()
        return message

    def get_chat_messages_by_provider_id(self, provider_message_id: str) -> list[ChatMessage]:
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.provider_message_id == provider_message_id)
            .all()
        )

    def is_chat_message_processed(self, provider_message_id: str) -> bool:
        """Check if an inbound message was already stored (idempotency)."""
        return (
            self.db.query(ChatMessage.id)
            .filter(ChatMessage.provider_message_id == provider_message_id)
            .first()
            is not None
        )

    def list_chat_messages(
        self,
        conversation_id: UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ChatMessage]:
        """Get messages oldest first."""
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.created_at.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Templates
    # =========================================================================

    def get_template(self, tenant_id: UUID, template_id: UUID) -> MessageTemplate | None:
        return (
            self.db.query(MessageTemplate)
            .filter(
                MessageTemplate.id == template_id,
                MessageTemplate.tenant_id == tenant_id,
            )
            .first()
        )

    def get_template_by_name(self, tenant_id: UUID, name: str, language: str) -> MessageTemplate | None:
        return (
            self.db.query(MessageTemplate)
            .filter(
                MessageTemplate.tenant_id == tenant_id,
                MessageTemplate.name == name,
                MessageTemplate.language == language,
            )
            .first()
        )

    def get_template_by_provider_id(self, tenant_id: UUID, provider_template_id: str) -> MessageTemplate | None:
        return (
            self.db.query(MessageTemplate)
            .filter(
                MessageTemplate.tenant_id == tenant_id,
                MessageTemplate.provider_template_id == provider_template_id,
            )
            .first()
        )

    def list_templates(self, tenant_id: UUID, status: str | None = None) -> list[MessageTemplate]:
        query = self.db.query(MessageTemplate).filter(MessageTemplate.tenant_id == tenant_id)
        if status:
            query = query.filter(MessageTemplate.status == status)
        return query.order_by(MessageTemplate.created_at.desc()).all()

    def create_template(self, **fields: Any) -> MessageTemplate:
        template = MessageTemplate(**fields)
        self.db.add(template)
        self.db.flush()
        return template

    # =========================================================================
    # Triggers
    # =========================================================================

    def get_trigger(self, tenant_id: UUID, event: str) -> TriggerMapping | None:
        return (
            self.db.query(TriggerMapping)
            .filter(
                TriggerMapping.tenant_id == tenant_id,
                TriggerMapping.event == event,
            )
            .first()
        )

    def list_triggers(self, tenant_id: UUID) -> list[TriggerMapping]:
        return (
            self.db.query(TriggerMapping)
            .filter(TriggerMapping.tenant_id == tenant_id)
            .order_by(TriggerMapping.event)
            .all()
        )

    def create_trigger(self, **fields: Any) -> TriggerMapping:
        trigger = TriggerMapping(**fields)
        self.db.add(trigger)
        self.db.flush()
        return trigger
