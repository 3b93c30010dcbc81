"""Business event to template bindings."""

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from messaging_gateway.persistence.models import TriggerEvent
from messaging_gateway.service.triggers import TriggerMap

from gateway_api.deps import get_db, require_messaging_access
from gateway_api.schemas import TriggerBind, TriggerCreate, TriggerResponse, TriggerToggle

router = APIRouter(prefix="/triggers", tags=["triggers"])


@router.get("/events")
def list_events(tenant_id: UUID = Depends(require_messaging_access)):
    return {"events": [event.value for event in TriggerEvent]}


@router.get("", response_model=list[TriggerResponse])
def list_triggers(tenant_id: UUID = Depends(require_messaging_access), db: Session = Depends(get_db)):
    return TriggerMap(db).list_triggers(tenant_id)


@router.post("", response_model=TriggerResponse, status_code=201)
def create_trigger(
    body: TriggerCreate,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    """Create a binding; refuses (DUPLICATE_TRIGGER) when the event is already bound."""
    return TriggerMap(db).bind(
        tenant_id,
        body.event,
        body.template_id,
        variable_mapping=body.variable_mapping,
        enabled=body.enabled,
        replace=False,
    )


@router.put("/{event}", response_model=TriggerResponse)
def put_trigger(
    event: str,
    body: TriggerBind,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    return TriggerMap(db).bind(
        tenant_id,
        event,
        body.template_id,
        variable_mapping=body.variable_mapping,
        enabled=body.enabled,
    )


@router.patch("/{event}", response_model=TriggerResponse)
def toggle_trigger(
    event: str,
    body: TriggerToggle,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    return TriggerMap(db).set_enabled(tenant_id, event, body.enabled)


@router.delete("/{event}", status_code=204)
def delete_trigger(
    event: str,
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    TriggerMap(db).unbind(tenant_id, event)
    return Response(status_code=204)
