"""Manual sends and the message log."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messaging_gateway.errors import ValidationError
from messaging_gateway.persistence.models import MessageKind
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.service.dispatcher import MessageDispatcher

from gateway_api.deps import get_db, get_dispatcher, require_messaging_access
from gateway_api.schemas import DispatchResponse, MessageLogPage, SendRequest

router = APIRouter(tags=["messages"])

MAX_LOG_PAGE = 200


@router.post("/send", response_model=DispatchResponse)
async def send_message(
    body: SendRequest,
    tenant_id: UUID = Depends(require_messaging_access),
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """
    Send a template (template_id + params) or a freeform text.

    Gating and provider failures come back in the result with a code,
    not as HTTP errors.
    """
    if body.template_id:
        result = await dispatcher.send_template(
            tenant_id, body.phone, body.template_id, body.params, kind=MessageKind.MANUAL
        )
    elif body.text and body.text.strip():
        result = await dispatcher.send_session(tenant_id, body.phone, body.text, kind=MessageKind.MANUAL)
    else:
        raise ValidationError("Either template_id or text is required")

    return result.to_dict()


@router.get("/logs", response_model=MessageLogPage)
def list_logs(
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    limit = min(limit, MAX_LOG_PAGE)
    rows, total = GatewayRepository(db).list_message_logs(tenant_id, limit=limit, offset=offset)
    return {"items": rows, "total": total, "limit": limit, "offset": offset}
