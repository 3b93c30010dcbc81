"""Package catalog, subscription and usage."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.service.quota import QuotaLedger

from gateway_api.deps import get_db, require_messaging_access
from gateway_api.schemas import PackageResponse, SubscriptionResponse, UsageResponse

router = APIRouter(tags=["quota"])


@router.get("/packages", response_model=list[PackageResponse])
def list_packages(
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    return GatewayRepository(db).list_packages(active_only=True)


@router.post("/packages/{package_id}/subscribe", response_model=SubscriptionResponse, status_code=201)
def subscribe(
    package_id: UUID,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    return QuotaLedger(db).subscribe(tenant_id, package_id)


@router.get("/usage", response_model=UsageResponse)
def get_usage(
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    usage = QuotaLedger(db).usage(tenant_id)
    subscription = usage["subscription"]
    return UsageResponse(
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        package=PackageResponse.model_validate(usage["package"]) if usage["package"] else None,
        remaining=subscription.remaining if subscription else 0,
        total_outbound=usage["total_outbound"],
    )
