"""
Messaging Gateway Service Layer

Gating, dispatch, templates, triggers and webhook processing.
"""

from messaging_gateway.service.automation import AutoReplyEngine
from messaging_gateway.service.chat import ChatService
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.dispatcher import DispatchResult, MessageDispatcher
from messaging_gateway.service.entitlement import EntitlementGate
from messaging_gateway.service.notifications import BusinessNotifier
from messaging_gateway.service.quota import QuotaLedger
from messaging_gateway.service.templates import TemplateLifecycleManager
from messaging_gateway.service.triggers import TriggerMap
from messaging_gateway.service.webhook_ingestor import WebhookIngestor

__all__ = [
    "AutoReplyEngine",
    "BusinessNotifier",
    "ChatService",
    "CredentialStore",
    "DispatchResult",
    "EntitlementGate",
    "MessageDispatcher",
    "QuotaLedger",
    "TemplateLifecycleManager",
    "TriggerMap",
    "WebhookIngestor",
]
