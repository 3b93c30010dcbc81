"""
Tests for addon, trial and tier entitlement.
"""

from datetime import timedelta

import pytest

from messaging_gateway.errors import EntitlementError, NotFoundError
from messaging_gateway.persistence.models import (
    MESSAGING_ADDON_KEY,
    AddonStatus,
    TenantAddon,
    utcnow,
)
from messaging_gateway.service.entitlement import EntitlementGate


def add_addon(db, tenant_id, status, trial_ends_at=None, trial_used_at=None):
    addon = TenantAddon(
        tenant_id=tenant_id,
        addon_key=MESSAGING_ADDON_KEY,
        status=status.value,
        trial_ends_at=trial_ends_at,
        trial_used_at=trial_used_at,
    )
    db.add(addon)
    db.commit()
    return addon


class TestCheckAccess:
    """Tests for EntitlementGate.check_access."""

    def test_no_addon_requires_addon(self, db, tenant_id, addon_definition):
        decision = EntitlementGate(db).check_access(tenant_id)
        assert decision.allowed is False
        assert decision.code == EntitlementError.ADDON_REQUIRED

    def test_active_addon_allowed(self, db, tenant_id, entitled):
        decision = EntitlementGate(db).check_access(tenant_id)
        assert decision.allowed is True
        assert decision.reason == "addon"

    def test_running_trial_allowed(self, db, tenant_id, addon_definition):
        add_addon(db, tenant_id, AddonStatus.TRIAL, trial_ends_at=utcnow() + timedelta(days=3))

        decision = EntitlementGate(db).check_access(tenant_id)
        assert decision.allowed is True
        assert decision.reason == "trial"

    def test_ended_trial_is_trial_expired(self, db, tenant_id, addon_definition):
        add_addon(db, tenant_id, AddonStatus.TRIAL, trial_ends_at=utcnow() - timedelta(minutes=1))

        decision = EntitlementGate(db).check_access(tenant_id)
        assert decision.allowed is False
        assert decision.code == EntitlementError.TRIAL_EXPIRED

    def test_cancelled_addon_denied(self, db, tenant_id, addon_definition):
        add_addon(db, tenant_id, AddonStatus.CANCELLED)

        decision = EntitlementGate(db).check_access(tenant_id)
        assert decision.allowed is False
        assert decision.code == EntitlementError.ADDON_REQUIRED

    def test_tier_inclusion_allowed_without_addon(self, db, tenant, addon_definition):
        tenant.subscription_tier = "premium"
        db.commit()

        decision = EntitlementGate(db).check_access(tenant.id)
        assert decision.allowed is True
        assert decision.reason == "tier"

    def test_tier_overrides_ended_trial(self, db, tenant, addon_definition):
        tenant.subscription_tier = "premium"
        db.commit()
        add_addon(db, tenant.id, AddonStatus.TRIAL, trial_ends_at=utcnow() - timedelta(days=1))

        assert EntitlementGate(db).check_access(tenant.id).allowed is True

    def test_require_access_raises_with_code(self, db, tenant_id, addon_definition):
        add_addon(db, tenant_id, AddonStatus.TRIAL, trial_ends_at=utcnow() - timedelta(days=1))

        with pytest.raises(EntitlementError) as exc_info:
            EntitlementGate(db).require_access(tenant_id)
        assert exc_info.value.code == EntitlementError.TRIAL_EXPIRED


class TestActivateAddon:
    """Tests for addon activation and cancellation."""

    def test_activate_directly(self, db, tenant_id, addon_definition):
        addon = EntitlementGate(db).activate_addon(tenant_id)

        assert addon.status == AddonStatus.ACTIVE.value
        assert addon.trial_ends_at is None
        assert addon.monthly_price == addon_definition.monthly_price

    def test_activate_with_trial(self, db, tenant_id, addon_definition):
        addon = EntitlementGate(db).activate_addon(tenant_id, with_trial=True)

        assert addon.status == AddonStatus.TRIAL.value
        assert addon.trial_used_at is not None
        remaining = addon.trial_ends_at - utcnow()
        assert timedelta(days=13) < remaining <= timedelta(days=14)

    def test_trial_only_once(self, db, tenant_id, addon_definition):
        gate = EntitlementGate(db)
        gate.activate_addon(tenant_id, with_trial=True)
        gate.cancel_addon(tenant_id)

        addon = gate.activate_addon(tenant_id, with_trial=True)
        assert addon.status == AddonStatus.ACTIVE.value

    def test_no_trial_when_tier_includes_addon(self, db, tenant, addon_definition):
        tenant.subscription_tier = "premium"
        db.commit()

        addon = EntitlementGate(db).activate_addon(tenant.id, with_trial=True)
        assert addon.status == AddonStatus.ACTIVE.value

    def test_no_trial_without_trial_days(self, db, tenant_id, addon_definition):
        addon_definition.trial_days = 0
        db.commit()

        addon = EntitlementGate(db).activate_addon(tenant_id, with_trial=True)
        assert addon.status == AddonStatus.ACTIVE.value

    def test_reactivates_cancelled(self, db, tenant_id, addon_definition):
        gate = EntitlementGate(db)
        gate.activate_addon(tenant_id)
        cancelled = gate.cancel_addon(tenant_id)
        assert cancelled.status == AddonStatus.CANCELLED.value
        assert gate.check_access(tenant_id).allowed is False

        addon = gate.activate_addon(tenant_id)
        assert addon.status == AddonStatus.ACTIVE.value
        assert addon.cancelled_at is None
        assert gate.check_access(tenant_id).allowed is True

    def test_missing_definition(self, db, tenant_id):
        with pytest.raises(NotFoundError):
            EntitlementGate(db).activate_addon(tenant_id)

    def test_cancel_without_addon(self, db, tenant_id, addon_definition):
        with pytest.raises(NotFoundError):
            EntitlementGate(db).cancel_addon(tenant_id)
