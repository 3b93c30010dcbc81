"""Realtime WebSocket: one connection per open tenant session."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from basecore.db import get_db
from messaging_gateway.service.entitlement import EntitlementGate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws/{tenant_id}")
async def realtime_socket(websocket: WebSocket, tenant_id: UUID, db: Session = Depends(get_db)):
    """
    Push new_message, message_status and conversation_read events.

    The tenant id in the path is trusted the same way as X-Tenant-Id
    (upstream auth); tenants without the messaging addon are refused
    before the handshake completes. Client frames are ignored (keepalive
    only).
    """
    decision = EntitlementGate(db).check_access(tenant_id)
    if not decision.allowed:
        logger.info("Realtime connection refused", extra={"tenant_id": str(tenant_id), "code": decision.code})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry = websocket.app.state.registry

    await websocket.accept()
    await registry.connect(tenant_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected", extra={"tenant_id": str(tenant_id)})
    finally:
        await registry.disconnect(tenant_id, websocket)
