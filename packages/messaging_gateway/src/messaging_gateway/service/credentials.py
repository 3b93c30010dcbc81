"""
Credential Resolution

Reads provider credentials from the platform credential store and the
tenant's configuration. Tenant values win; unset tenant values fall back
to the platform ones.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import ConfigurationError
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.phone import normalize_phone
from messaging_gateway.providers.base import PartnerCredentials, ProviderCredentials
from messaging_gateway.security.vault import CredentialVault

logger = logging.getLogger(__name__)

# Platform setting keys
API_KEY = "gupshup_api_key"
APP_NAME = "gupshup_app_name"
APP_ID = "gupshup_app_id"
SENDER_PHONE = "gupshup_sender_phone"
PARTNER_EMAIL = "gupshup_partner_email"
PARTNER_PASSWORD = "gupshup_partner_password"
GLOBAL_ENABLED = "messaging_global_enabled"

SECRET_KEYS = {API_KEY, PARTNER_PASSWORD}

MESSAGING_DISABLED = "MESSAGING_DISABLED"


class CredentialStore:
    """Platform and tenant credential access, decrypting on read."""

    def __init__(self, db: Session, vault: CredentialVault):
        self.db = db
        self.vault = vault
        self.repo = GatewayRepository(db)

    # =========================================================================
    # Platform settings
    # =========================================================================

    def get_platform_value(self, key: str) -> str | None:
        setting = self.repo.get_platform_setting(key)
        if setting is None:
            return None
        if setting.encrypted_value:
            return self.vault.decrypt(setting.encrypted_value)
        return setting.value

    def set_platform_value(self, key: str, value: str | None) -> None:
        """Store a platform setting; secret keys are encrypted."""
        if key in SECRET_KEYS and value:
            self.repo.set_platform_setting(key, encrypted_value=self.vault.encrypt(value))
        else:
            self.repo.set_platform_setting(key, value=value)

    def set_platform_credentials(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            if value is None:
                continue
            if key == GLOBAL_ENABLED:
                value = "true" if value in (True, "true", "1", 1) else "false"
            self.set_platform_value(key, str(value))
        self.db.commit()

    def is_globally_enabled(self) -> bool:
        # Absent flag means enabled
        value = self.get_platform_value(GLOBAL_ENABLED)
        return value is None or value.lower() in ("true", "1", "yes")

    def platform_status(self) -> dict[str, Any]:
        """Which platform settings are present, without revealing secrets."""
        return {
            "api_key_configured": bool(self.repo.get_platform_setting(API_KEY)),
            "app_name": self.get_platform_value(APP_NAME),
            "app_id": self.get_platform_value(APP_ID),
            "sender_phone": self.get_platform_value(SENDER_PHONE),
            "partner_configured": bool(
                self.repo.get_platform_setting(PARTNER_EMAIL)
                and self.repo.get_platform_setting(PARTNER_PASSWORD)
            ),
            "enabled": self.is_globally_enabled(),
        }

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_for_tenant(self, tenant_id: UUID, require_enabled: bool = True) -> ProviderCredentials:
        """
        Resolve send credentials for a tenant.

        Args:
            tenant_id: Tenant ID
            require_enabled: Also require the tenant config to be enabled

        Raises:
            ConfigurationError: Platform disabled, tenant disabled, or a
                credential missing at both levels
        """
        if not self.is_globally_enabled():
            raise ConfigurationError("Messaging service is globally disabled", code=MESSAGING_DISABLED)

        config = self.repo.get_config(tenant_id)
        if require_enabled and (config is None or not config.enabled):
            raise ConfigurationError("Messaging is not enabled for this tenant", code=MESSAGING_DISABLED)

        api_key = None
        if config is not None and config.api_key_encrypted:
            api_key = self.vault.decrypt(config.api_key_encrypted)
        api_key = api_key or self.get_platform_value(API_KEY)

        app_name = (config.app_name if config else None) or self.get_platform_value(APP_NAME)
        sender_phone = (config.sender_phone if config else None) or self.get_platform_value(SENDER_PHONE)

        if not api_key or not app_name or not sender_phone:
            logger.warning(
                "Provider credentials incomplete",
                extra={
                    "tenant_id": str(tenant_id),
                    "has_api_key": bool(api_key),
                    "has_app_name": bool(app_name),
                    "has_sender_phone": bool(sender_phone),
                },
            )
            raise ConfigurationError("Messaging provider is not configured")

        return ProviderCredentials(
            api_key=api_key,
            app_name=app_name,
            sender_phone=normalize_phone(sender_phone),
        )

    def resolve_partner(self) -> PartnerCredentials:
        """
        Resolve partner credentials for template and profile management.

        Raises:
            ConfigurationError: Any partner credential missing
        """
        if not self.is_globally_enabled():
            raise ConfigurationError("Messaging service is globally disabled", code=MESSAGING_DISABLED)

        app_id = self.get_platform_value(APP_ID)
        email = self.get_platform_value(PARTNER_EMAIL)
        password = self.get_platform_value(PARTNER_PASSWORD)

        if not app_id or not email or not password:
            raise ConfigurationError("Provider partner credentials are not configured")

        return PartnerCredentials(app_id=app_id, email=email, password=password)
