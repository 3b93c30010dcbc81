"""
Provider webhook ingress.

The provider retries anything that is not a 200, so every outcome,
including internal errors, is answered with 200. Failures are logged.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from basecore.settings import Settings
from messaging_gateway.providers.base import MessagingProvider
from messaging_gateway.realtime.notifier import RealtimeNotifier
from messaging_gateway.routing.tenant_resolver import TenantResolver
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service.dispatcher import MessageDispatcher
from messaging_gateway.service.webhook_ingestor import WebhookIngestor

from gateway_api.deps import get_app_settings, get_db, get_notifier, get_provider, get_vault

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: MessagingProvider = Depends(get_provider),
    vault: CredentialVault = Depends(get_vault),
    notifier: RealtimeNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """
    Receive delivery status and inbound message webhooks.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return {"status": "ok"}

    if not isinstance(payload, dict):
        logger.warning("Webhook body is not a JSON object")
        return {"status": "ok"}

    try:
        ingestor = WebhookIngestor(
            db,
            provider,
            MessageDispatcher(db, provider, vault),
            notifier,
            resolver=TenantResolver(db, single_tenant_fallback=settings.INBOUND_SINGLE_TENANT_FALLBACK),
        )
        result = await ingestor.ingest(payload)
        logger.info("Webhook processed", extra={"result": result.get("status"), "reason": result.get("reason")})
    except Exception as e:
        db.rollback()
        logger.exception(f"Error processing webhook: {e}")

    return {"status": "ok"}
