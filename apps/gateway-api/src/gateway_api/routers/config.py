"""Tenant messaging configuration, connection test and addon access."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from messaging_gateway.persistence.models import TenantMessagingConfig
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.phone import normalize_phone
from messaging_gateway.providers.base import MessagingProvider
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.entitlement import EntitlementGate

from gateway_api.deps import (
    get_credential_store,
    get_db,
    get_provider,
    get_tenant_id,
    get_vault,
    require_messaging_access,
)
from gateway_api.schemas import AddonActivateRequest, AddonResponse, ConfigResponse, ConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["config"])

TOGGLE_FIELDS = ("enabled", "notify_on_sale", "notify_on_low_stock", "notify_daily_summary")
TEXT_FIELDS = ("app_name", "business_hours", "support_info")


def _config_response(config: TenantMessagingConfig) -> ConfigResponse:
    return ConfigResponse(
        tenant_id=config.tenant_id,
        enabled=config.enabled,
        has_api_key=bool(config.api_key_encrypted),
        app_name=config.app_name,
        sender_phone=config.sender_phone,
        notify_on_sale=config.notify_on_sale,
        notify_on_low_stock=config.notify_on_low_stock,
        notify_daily_summary=config.notify_daily_summary,
        business_hours=config.business_hours,
        support_info=config.support_info,
        error_count=config.error_count,
        last_error=config.last_error,
    )


# =============================================================================
# Access
# =============================================================================


@router.get("/access")
def get_access(tenant_id: UUID = Depends(get_tenant_id), db: Session = Depends(get_db)):
    """Whether the tenant may use messaging, and why not."""
    return EntitlementGate(db).check_access(tenant_id).to_dict()


@router.post("/addon/activate", response_model=AddonResponse)
def activate_addon(
    body: AddonActivateRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return EntitlementGate(db).activate_addon(tenant_id, with_trial=body.with_trial)


@router.post("/addon/cancel", response_model=AddonResponse)
def cancel_addon(tenant_id: UUID = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return EntitlementGate(db).cancel_addon(tenant_id)


# =============================================================================
# Configuration
# =============================================================================


@router.get("/config", response_model=ConfigResponse)
def get_config(tenant_id: UUID = Depends(require_messaging_access), db: Session = Depends(get_db)):
    config = GatewayRepository(db).get_or_create_config(tenant_id)
    db.commit()
    return _config_response(config)


@router.put("/config", response_model=ConfigResponse)
def update_config(
    body: ConfigUpdate,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
):
    """
    Update configuration. Omitted fields are left unchanged; an empty
    api_key clears the tenant key (platform key applies again).
    """
    config = GatewayRepository(db).get_or_create_config(tenant_id)
    changes = body.model_dump(exclude_unset=True)

    for field in TOGGLE_FIELDS + TEXT_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(config, field, changes[field])

    if "sender_phone" in changes:
        config.sender_phone = normalize_phone(changes["sender_phone"]) or None

    if "api_key" in changes:
        api_key = changes["api_key"]
        config.api_key_encrypted = vault.encrypt(api_key) if api_key else None

    db.commit()
    logger.info(
        "Messaging config updated",
        extra={"tenant_id": str(tenant_id), "fields": sorted(changes)},
    )
    return _config_response(config)


@router.post("/config/test-connection")
async def test_connection(
    tenant_id: UUID = Depends(require_messaging_access),
    credentials: CredentialStore = Depends(get_credential_store),
    provider: MessagingProvider = Depends(get_provider),
):
    """Check the resolved credentials against the provider (tenant need not be enabled yet)."""
    resolved = credentials.resolve_for_tenant(tenant_id, require_enabled=False)
    response = await provider.test_connection(resolved)
    return {
        "success": response.success,
        "error": response.error_message,
        "code": response.error_code,
    }
