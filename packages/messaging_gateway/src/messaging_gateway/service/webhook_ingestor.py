"""
Webhook Ingestor

Processes provider callbacks:
1. Classifies the payload (delivery status, inbound message, unknown)
2. Delivery status: updates MessageLog/ChatMessage rows by provider id
3. Inbound message: resolves tenant, threads the message, logs it,
   notifies connected sessions and sends at most one auto-reply

The HTTP layer must acknowledge every callback; ``ingest`` reports what
happened but callers never turn its outcome into an error response.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.contracts.envelope import RealtimeEvent, serialize_chat_message
from messaging_gateway.contracts.event_types import RealtimeEventType
from messaging_gateway.persistence.models import (
    ChatContentType,
    ChatMessage,
    MessageDirection,
    MessageKind,
    MessageLog,
    MessageStatus,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.providers.base import (
    DeliveryStatusEvent,
    InboundMessageEvent,
    MessagingProvider,
    UnknownWebhookEvent,
)
from messaging_gateway.realtime.notifier import RealtimeNotifier
from messaging_gateway.routing.conversation import ConversationStore
from messaging_gateway.routing.tenant_resolver import TenantResolver
from messaging_gateway.service.automation import AutoReplyEngine
from messaging_gateway.service.dispatcher import MessageDispatcher

logger = logging.getLogger(__name__)


class WebhookIngestor:
    """
    Handles provider webhooks.

    Responsibilities:
    - Reconcile delivery status (last write wins, unknown ids ignored)
    - Persist inbound messages into conversations (deduplicated by provider id)
    - Push realtime updates
    - Answer exact-match commands
    """

    def __init__(
        self,
        db: Session,
        provider: MessagingProvider,
        dispatcher: MessageDispatcher,
        notifier: RealtimeNotifier,
        resolver: TenantResolver | None = None,
        auto_replies: AutoReplyEngine | None = None,
    ):
        self.db = db
        self.provider = provider
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.repo = GatewayRepository(db)
        self.resolver = resolver or TenantResolver(db)
        self.conversations = ConversationStore(db)
        self.auto_replies = auto_replies or AutoReplyEngine()

    async def ingest(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Process one webhook payload.

        Args:
            payload: Parsed JSON body

        Returns:
            Processing result dict
        """
        event = self.provider.parse_webhook(payload)

        if isinstance(event, DeliveryStatusEvent):
            return await self.handle_status(event)
        if isinstance(event, InboundMessageEvent):
            return await self.handle_inbound(event)
        if isinstance(event, UnknownWebhookEvent):
            return {"status": "ignored", "type": event.event_type}

        return {"status": "ignored"}

    # =========================================================================
    # Delivery status
    # =========================================================================

    async def handle_status(self, event: DeliveryStatusEvent) -> dict[str, Any]:
        """Apply a delivery status to every row carrying the provider id."""
        logs = self.repo.get_message_logs_by_provider_id(event.provider_message_id)
        chat_messages = self.repo.get_chat_messages_by_provider_id(event.provider_message_id)

        if not logs and not chat_messages:
            logger.debug("Status for unknown message", extra={"provider_message_id": event.provider_message_id})
            return {"status": "ignored", "reason": "unknown_message"}

        rows = [*logs, *chat_messages]
        if all(row.status == event.status.value for row in rows):
            logger.debug(
                "Delivery status already applied",
                extra={"provider_message_id": event.provider_message_id, "status": event.status.value},
            )
            return {"status": "unchanged", "message_status": event.status.value}

        now = utcnow()
        for log in logs:
            log.status = event.status.value
            log.updated_at = now
            if event.status == MessageStatus.FAILED and event.error_message:
                log.error_message = event.error_message
        for message in chat_messages:
            message.status = event.status.value

        self.db.commit()

        tenant_ids = {row.tenant_id for row in logs} | {m.tenant_id for m in chat_messages}
        for tenant_id in tenant_ids:
            await self._notify(
                tenant_id,
                RealtimeEventType.MESSAGE_STATUS,
                {
                    "provider_message_id": event.provider_message_id,
                    "status": event.status.value,
                    "conversation_ids": sorted(
                        {str(m.conversation_id) for m in chat_messages if m.tenant_id == tenant_id}
                    ),
                },
            )

        logger.info(
            "Delivery status applied",
            extra={
                "provider_message_id": event.provider_message_id,
                "status": event.status.value,
                "logs": len(logs),
                "chat_messages": len(chat_messages),
            },
        )
        return {"status": "updated", "message_status": event.status.value, "rows": len(logs) + len(chat_messages)}

    # =========================================================================
    # Inbound messages
    # =========================================================================

    async def handle_inbound(self, event: InboundMessageEvent) -> dict[str, Any]:
        """Thread an inbound message and run auto-replies."""
        if self.repo.is_chat_message_processed(event.provider_message_id):
            logger.debug(f"Message {event.provider_message_id} already processed, skipping")
            return {"status": "skipped", "reason": "already_processed"}

        tenant_id = self.resolver.resolve_inbound(event.destination_phone, event.app_name)
        if tenant_id is None:
            return {"status": "ignored", "reason": "tenant_not_found"}

        conversation, message = self.conversations.record_inbound(tenant_id, event)

        self.repo.create_message_log(
            tenant_id=tenant_id,
            direction=MessageDirection.INBOUND.value,
            phone=event.from_phone,
            message_kind=MessageKind.COMMAND.value,
            body=event.text or event.caption or event.media_url,
            status=MessageStatus.DELIVERED.value,
            provider_message_id=event.provider_message_id,
        )
        self.db.commit()

        logger.info(
            "Inbound message stored",
            extra={
                "tenant_id": str(tenant_id),
                "conversation_id": str(conversation.id),
                "content_type": event.content_type.value,
            },
        )

        await self._notify_new_message(tenant_id, message)

        result: dict[str, Any] = {
            "status": "processed",
            "tenant_id": str(tenant_id),
            "conversation_id": str(conversation.id),
            "message_id": str(message.id),
        }

        if event.content_type == ChatContentType.TEXT:
            reply = await self._auto_reply(tenant_id, conversation, event)
            if reply is not None:
                result["auto_reply"] = reply

        return result

    async def _auto_reply(self, tenant_id: UUID, conversation, event: InboundMessageEvent) -> dict[str, Any] | None:
        config = self.repo.get_config(tenant_id)
        reply = self.auto_replies.build_reply(
            event.text,
            support_info=config.support_info if config else None,
            business_hours=config.business_hours if config else None,
        )
        if reply is None:
            return None

        dispatch = await self.dispatcher.send_session(
            tenant_id, event.from_phone, reply.text, kind=MessageKind.AUTO_REPLY
        )

        outbound = self.conversations.record_outbound(
            conversation,
            body=reply.text,
            provider_message_id=dispatch.message_id,
            status=MessageStatus.SENT if dispatch.success else MessageStatus.FAILED,
        )
        self.db.commit()

        await self._notify_new_message(tenant_id, outbound)

        return {"command": reply.command.value, "success": dispatch.success, "code": dispatch.code}

    # =========================================================================
    # Realtime
    # =========================================================================

    async def _notify_new_message(self, tenant_id: UUID, message: ChatMessage) -> None:
        await self._notify(
            tenant_id,
            RealtimeEventType.NEW_MESSAGE,
            {
                "conversation_id": str(message.conversation_id),
                "message": serialize_chat_message(message),
            },
        )

    async def _notify(self, tenant_id: UUID, event_type: RealtimeEventType, data: dict[str, Any]) -> None:
        try:
            await self.notifier.broadcast(
                tenant_id,
                RealtimeEvent(type=event_type.value, tenant_id=tenant_id, data=data),
            )
        except Exception as e:
            # Realtime is best effort and must not undo persisted work
            logger.warning(f"Realtime broadcast failed: {e}", extra={"tenant_id": str(tenant_id)})
