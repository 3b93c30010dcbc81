"""
Quota Ledger

Tracks a tenant's purchased message allowance.

validate_quota is a read with lazy status transitions (expired, exhausted).
deduct_message is a single atomic UPDATE and is only called after the
provider accepted a send.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from messaging_gateway.errors import NotFoundError, QuotaError
from messaging_gateway.persistence.models import (
    QuotaSubscription,
    SubscriptionStatus,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository

logger = logging.getLogger(__name__)

SUBSCRIPTION_DAYS = 30


@dataclass
class QuotaCheck:
    """Result of validate_quota."""

    allowed: bool
    remaining: int = 0
    code: str | None = None
    error: str | None = None


def _add_month(value):
    """Same day next month, clamped to the month's last day."""
    month = value.month % 12 + 1
    year = value.year + (1 if value.month == 12 else 0)
    for day in (value.day, 30, 29, 28):
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return value + timedelta(days=SUBSCRIPTION_DAYS)


class QuotaLedger:
    """Message allowance accounting for tenants."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = GatewayRepository(db)

    def _denied_without_live_subscription(self, tenant_id: UUID) -> QuotaCheck:
        latest = self.repo.get_latest_subscription(tenant_id)
        if latest is not None and latest.status == SubscriptionStatus.EXHAUSTED.value:
            return QuotaCheck(False, 0, QuotaError.QUOTA_EXHAUSTED, "Message quota exhausted")
        if latest is not None and latest.status == SubscriptionStatus.EXPIRED.value:
            return QuotaCheck(False, 0, QuotaError.PACKAGE_EXPIRED, "Message package has expired")
        return QuotaCheck(False, 0, QuotaError.NO_SUBSCRIPTION, "No active message package")

    def validate_quota(self, tenant_id: UUID) -> QuotaCheck:
        """
        Check whether the tenant can send one more message.

        Transitions the live subscription to ``expired`` when its expiry has
        passed and to ``exhausted`` when nothing remains.

        Args:
            tenant_id: Tenant ID

        Returns:
            QuotaCheck with remaining allowance or a denial code
        """
        subscription = self.repo.get_live_subscription(tenant_id)
        if subscription is None:
            return self._denied_without_live_subscription(tenant_id)

        if subscription.expires_at is not None and subscription.expires_at < utcnow():
            self.repo.set_subscription_status(subscription, SubscriptionStatus.EXPIRED)
            self.db.commit()
            logger.info("Subscription expired", extra={"tenant_id": str(tenant_id)})
            return QuotaCheck(False, 0, QuotaError.PACKAGE_EXPIRED, "Message package has expired")

        remaining = subscription.remaining
        if remaining <= 0:
            self.repo.set_subscription_status(subscription, SubscriptionStatus.EXHAUSTED)
            self.db.commit()
            logger.info("Subscription exhausted", extra={"tenant_id": str(tenant_id)})
            return QuotaCheck(False, 0, QuotaError.QUOTA_EXHAUSTED, "Message quota exhausted")

        return QuotaCheck(True, remaining)

    def require_quota(self, tenant_id: UUID) -> QuotaCheck:
        check = self.validate_quota(tenant_id)
        if not check.allowed:
            raise QuotaError(check.error or "Quota unavailable", code=check.code)
        return check

    def deduct_message(self, tenant_id: UUID) -> bool:
        """
        Consume exactly one message with an atomic increment.

        Returns:
            True if the allowance was debited, False when nothing remained
        """
        debited = self.repo.deduct_message(tenant_id)
        self.db.commit()

        if not debited:
            logger.warning("Quota deduction matched no subscription", extra={"tenant_id": str(tenant_id)})
        return debited

    def subscribe(self, tenant_id: UUID, package_id: UUID) -> QuotaSubscription:
        """
        Start a subscription to a package.

        Raises:
            NotFoundError: Unknown or inactive package
            QuotaError: ACTIVE_SUBSCRIPTION_EXISTS
        """
        package = self.repo.get_package(package_id)
        if package is None or not package.is_active:
            raise NotFoundError("Message package not found")

        if self.repo.get_live_subscription(tenant_id) is not None:
            raise QuotaError(
                "Tenant already has an active message package",
                code=QuotaError.ACTIVE_SUBSCRIPTION_EXISTS,
            )

        now = utcnow()
        try:
            subscription = self.repo.create_subscription(
                tenant_id=tenant_id,
                package_id=package.id,
                message_limit=package.message_limit,
                messages_used=0,
                status=SubscriptionStatus.ACTIVE.value,
                activated_at=now,
                renewal_date=_add_month(now),
                expires_at=now + timedelta(days=SUBSCRIPTION_DAYS),
            )
            self.db.commit()
        except IntegrityError:
            # Concurrent subscribe won the partial unique index
            self.db.rollback()
            raise QuotaError(
                "Tenant already has an active message package",
                code=QuotaError.ACTIVE_SUBSCRIPTION_EXISTS,
            )

        logger.info(
            "Subscribed to package",
            extra={"tenant_id": str(tenant_id), "package_id": str(package.id), "limit": package.message_limit},
        )
        return subscription

    def usage(self, tenant_id: UUID) -> dict[str, Any]:
        """Current subscription, its package and the total outbound count."""
        subscription = self.repo.get_live_subscription(tenant_id) or self.repo.get_latest_subscription(tenant_id)
        package = self.repo.get_package(subscription.package_id) if subscription and subscription.package_id else None

        return {
            "subscription": subscription,
            "package": package,
            "total_outbound": self.repo.count_outbound(tenant_id),
        }
