"""
Entitlement Gate

Decides whether a tenant may use the messaging gateway at all.

A tenant is allowed when:
1. it holds the messaging addon with status ``active``, or
2. it holds the addon as a ``trial`` that has not ended, or
3. its subscription tier includes the addon by default.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import EntitlementError, NotFoundError
from messaging_gateway.persistence.models import (
    MESSAGING_ADDON_KEY,
    AddonStatus,
    TenantAddon,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository

logger = logging.getLogger(__name__)


@dataclass
class AccessDecision:
    """Outcome of an entitlement check."""

    allowed: bool
    code: str | None = None
    reason: str | None = None  # addon, trial, tier

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "code": self.code, "reason": self.reason}


class EntitlementGate:
    """Addon/trial/tier check for a single addon key."""

    def __init__(self, db: Session, addon_key: str = MESSAGING_ADDON_KEY):
        self.db = db
        self.addon_key = addon_key
        self.repo = GatewayRepository(db)

    def _tier_includes(self, tenant_id: UUID) -> bool:
        tenant = self.repo.get_tenant(tenant_id)
        definition = self.repo.get_addon_definition(self.addon_key)
        if tenant is None or definition is None:
            return False
        return tenant.subscription_tier in (definition.included_in_tiers or [])

    def check_access(self, tenant_id: UUID) -> AccessDecision:
        """
        Check whether the tenant may use the gateway.

        Args:
            tenant_id: Tenant ID

        Returns:
            AccessDecision; denied decisions carry ADDON_REQUIRED or TRIAL_EXPIRED
        """
        addon = self.repo.get_tenant_addon(tenant_id, self.addon_key)
        now = utcnow()

        if addon is not None:
            if addon.status == AddonStatus.ACTIVE.value:
                return AccessDecision(allowed=True, reason="addon")
            if addon.status == AddonStatus.TRIAL.value and addon.trial_ends_at and addon.trial_ends_at > now:
                return AccessDecision(allowed=True, reason="trial")

        if self._tier_includes(tenant_id):
            return AccessDecision(allowed=True, reason="tier")

        if addon is not None and addon.status == AddonStatus.TRIAL.value:
            return AccessDecision(allowed=False, code=EntitlementError.TRIAL_EXPIRED)

        return AccessDecision(allowed=False, code=EntitlementError.ADDON_REQUIRED)

    def require_access(self, tenant_id: UUID) -> AccessDecision:
        """Same as check_access but raises EntitlementError when denied."""
        decision = self.check_access(tenant_id)
        if not decision.allowed:
            message = (
                "Messaging trial has expired"
                if decision.code == EntitlementError.TRIAL_EXPIRED
                else "Messaging addon is required"
            )
            raise EntitlementError(message, code=decision.code)
        return decision

    def activate_addon(self, tenant_id: UUID, with_trial: bool = False) -> TenantAddon:
        """
        Grant the addon to a tenant.

        A trial is granted only when requested, the tenant never used one,
        the tier does not already include the addon and the definition
        offers trial days. Otherwise the addon is activated directly.

        Returns:
            The tenant addon row
        """
        definition = self.repo.get_addon_definition(self.addon_key)
        if definition is None:
            raise NotFoundError(f"Addon definition not found: {self.addon_key}")

        now = utcnow()
        addon = self.repo.get_tenant_addon(tenant_id, self.addon_key)
        if addon is None:
            addon = TenantAddon(tenant_id=tenant_id, addon_key=self.addon_key)
            self.db.add(addon)

        trial_allowed = (
            with_trial
            and addon.trial_used_at is None
            and not self._tier_includes(tenant_id)
            and (definition.trial_days or 0) > 0
        )

        if trial_allowed:
            addon.status = AddonStatus.TRIAL.value
            addon.trial_ends_at = now + timedelta(days=definition.trial_days)
            addon.trial_used_at = now
        else:
            addon.status = AddonStatus.ACTIVE.value
            addon.trial_ends_at = None

        addon.monthly_price = definition.monthly_price
        addon.activated_at = now
        addon.cancelled_at = None
        self.db.commit()

        logger.info(
            "Addon activated",
            extra={"tenant_id": str(tenant_id), "addon_key": self.addon_key, "status": addon.status},
        )
        return addon

    def cancel_addon(self, tenant_id: UUID) -> TenantAddon:
        addon = self.repo.get_tenant_addon(tenant_id, self.addon_key)
        if addon is None:
            raise NotFoundError("Tenant does not have this addon")

        addon.status = AddonStatus.CANCELLED.value
        addon.cancelled_at = utcnow()
        self.db.commit()

        logger.info("Addon cancelled", extra={"tenant_id": str(tenant_id), "addon_key": self.addon_key})
        return addon
