"""
Messaging Gateway Persistence

SQLAlchemy models and repository for gateway tables.
"""

from messaging_gateway.persistence.models import (
    GatewayBase,
    ChatMessage,
    Conversation,
    MessageLog,
    MessagePackage,
    MessageTemplate,
    QuotaSubscription,
    TenantMessagingConfig,
    TriggerMapping,
    MessageDirection,
    MessageKind,
    MessageStatus,
    SubscriptionStatus,
    TemplateStatus,
)
from messaging_gateway.persistence.repo import GatewayRepository

__all__ = [
    "GatewayBase",
    "GatewayRepository",
    "ChatMessage",
    "Conversation",
    "MessageLog",
    "MessagePackage",
    "MessageTemplate",
    "QuotaSubscription",
    "TenantMessagingConfig",
    "TriggerMapping",
    "MessageDirection",
    "MessageKind",
    "MessageStatus",
    "SubscriptionStatus",
    "TemplateStatus",
]
