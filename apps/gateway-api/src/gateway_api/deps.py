"""
Request dependencies.

Tenant identity arrives in the X-Tenant-Id header, set by the upstream
auth layer. Management routes additionally require the messaging
entitlement.
"""

from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from basecore.db import get_db
from basecore.settings import Settings
from messaging_gateway.providers.base import MessagingProvider
from messaging_gateway.realtime.notifier import ConnectionRegistry, RealtimeNotifier
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service.chat import ChatService
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.dispatcher import MessageDispatcher
from messaging_gateway.service.entitlement import EntitlementGate
from messaging_gateway.service.templates import TemplateLifecycleManager

__all__ = [
    "get_db",
    "get_tenant_id",
    "require_messaging_access",
    "get_app_settings",
    "get_provider",
    "get_vault",
    "get_notifier",
    "get_registry",
    "get_credential_store",
    "get_dispatcher",
    "get_template_manager",
    "get_chat_service",
]


def get_tenant_id(x_tenant_id: str = Header(..., alias="X-Tenant-Id")) -> UUID:
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-Tenant-Id header")


def require_messaging_access(
    tenant_id: UUID = Depends(get_tenant_id),
    db: Session = Depends(get_db),
) -> UUID:
    """Resolve the tenant and reject it (403) without the messaging addon."""
    EntitlementGate(db).require_access(tenant_id)
    return tenant_id


# =============================================================================
# Process-wide components (built at startup)
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_provider(request: Request) -> MessagingProvider:
    return request.app.state.provider


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.vault


def get_notifier(request: Request) -> RealtimeNotifier:
    return request.app.state.notifier


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


# =============================================================================
# Per-request services
# =============================================================================


def get_credential_store(
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> CredentialStore:
    return CredentialStore(db, vault)


def get_dispatcher(
    db: Session = Depends(get_db),
    provider: MessagingProvider = Depends(get_provider),
    vault: CredentialVault = Depends(get_vault),
) -> MessageDispatcher:
    return MessageDispatcher(db, provider, vault)


def get_template_manager(
    db: Session = Depends(get_db),
    provider: MessagingProvider = Depends(get_provider),
    credentials: CredentialStore = Depends(get_credential_store),
) -> TemplateLifecycleManager:
    return TemplateLifecycleManager(db, provider, credentials)


def get_chat_service(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> ChatService:
    return ChatService(db, dispatcher, notifier)
