"""
Tenant Resolver

Resolves the owning tenant of an inbound message from the configured
sender identities.
"""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.phone import normalize_phone

logger = logging.getLogger(__name__)


class TenantResolver:
    """
    Resolves tenant from inbound webhook data.

    Order:
    1. Destination phone equals an enabled tenant's sender phone
    2. App name equals an enabled tenant's app name
    3. Exactly one enabled tenant config exists (only when the
       single-tenant fallback is switched on)
    """

    def __init__(self, db: Session, single_tenant_fallback: bool = True):
        self.db = db
        self.repo = GatewayRepository(db)
        self.single_tenant_fallback = single_tenant_fallback

    def resolve_inbound(
        self,
        destination_phone: str | None = None,
        app_name: str | None = None,
    ) -> UUID | None:
        """
        Resolve tenant for an inbound message.

        Args:
            destination_phone: Our number the customer wrote to, if known
            app_name: Provider app the message arrived on

        Returns:
            Tenant ID or None when no unambiguous owner exists
        """
        configs = self.repo.list_enabled_configs()

        destination = normalize_phone(destination_phone)
        if destination:
            matches = [c for c in configs if normalize_phone(c.sender_phone) == destination]
            if len(matches) == 1:
                return matches[0].tenant_id

        if app_name:
            matches = [c for c in configs if c.app_name and c.app_name == app_name]
            if len(matches) == 1:
                return matches[0].tenant_id

        if self.single_tenant_fallback and len(configs) == 1:
            logger.debug(
                "Resolved tenant by single-tenant fallback",
                extra={"tenant_id": str(configs[0].tenant_id)},
            )
            return configs[0].tenant_id

        logger.warning(
            "No tenant found for inbound message",
            extra={"app_name": app_name, "enabled_configs": len(configs)},
        )
        return None
