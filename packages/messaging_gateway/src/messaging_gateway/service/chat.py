"""
Chat Service

Agent-side conversation actions: reply, start a conversation, mark read.
Each outbound chat message goes through the dispatcher (gated, logged,
quota-accounted) and is recorded in the thread with its send status.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.contracts.envelope import RealtimeEvent, serialize_chat_message
from messaging_gateway.contracts.event_types import RealtimeEventType
from messaging_gateway.errors import ValidationError
from messaging_gateway.persistence.models import (
    ChatContentType,
    ChatMessage,
    Conversation,
    MessageKind,
    MessageStatus,
)
from messaging_gateway.realtime.notifier import RealtimeNotifier
from messaging_gateway.routing.conversation import ConversationStore
from messaging_gateway.service.dispatcher import DispatchResult, MessageDispatcher

logger = logging.getLogger(__name__)

MEDIA_TYPES = (
    ChatContentType.IMAGE,
    ChatContentType.VIDEO,
    ChatContentType.AUDIO,
    ChatContentType.DOCUMENT,
    ChatContentType.STICKER,
)


@dataclass
class ChatSendResult:
    conversation: Conversation
    message: ChatMessage
    dispatch: DispatchResult


class ChatService:
    """Sends agent messages into conversations."""

    def __init__(
        self,
        db: Session,
        dispatcher: MessageDispatcher,
        notifier: RealtimeNotifier,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.store = ConversationStore(db)

    async def send_message(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        body: str | None = None,
        content_type: ChatContentType = ChatContentType.TEXT,
        media_url: str | None = None,
        caption: str | None = None,
        filename: str | None = None,
    ) -> ChatSendResult:
        """
        Reply inside an existing conversation.

        Raises:
            NotFoundError: Conversation not found for the tenant
            ValidationError: Empty text or media without URL
        """
        conversation = self.store.get(tenant_id, conversation_id)
        return await self._send(conversation, body, content_type, media_url, caption, filename)

    async def start_conversation(
        self,
        tenant_id: UUID,
        phone: str,
        body: str,
        customer_name: str | None = None,
    ) -> ChatSendResult:
        """Open (or reuse) the customer's conversation and send the first text."""
        conversation, _ = self.store.get_or_create(tenant_id, phone, customer_name)
        self.db.commit()
        return await self._send(conversation, body, ChatContentType.TEXT, None, None, None)

    async def mark_read(self, tenant_id: UUID, conversation_id: UUID) -> Conversation:
        conversation = self.store.mark_read(tenant_id, conversation_id)
        await self._broadcast(
            tenant_id,
            RealtimeEventType.CONVERSATION_READ,
            {"conversation_id": str(conversation.id)},
        )
        return conversation

    async def _send(
        self,
        conversation: Conversation,
        body: str | None,
        content_type: ChatContentType,
        media_url: str | None,
        caption: str | None,
        filename: str | None,
    ) -> ChatSendResult:
        tenant_id = conversation.tenant_id

        if content_type == ChatContentType.TEXT:
            if not body or not body.strip():
                raise ValidationError("Message text is required")
            dispatch = await self.dispatcher.send_session(
                tenant_id, conversation.customer_phone, body, kind=MessageKind.CHAT
            )
        elif content_type in MEDIA_TYPES:
            if not media_url:
                raise ValidationError("media_url is required for media messages")
            dispatch = await self.dispatcher.send_media(
                tenant_id,
                conversation.customer_phone,
                content_type,
                media_url,
                caption=caption,
                filename=filename,
            )
        else:
            raise ValidationError(f"Cannot send {content_type.value} messages")

        message = self.store.record_outbound(
            conversation,
            body=body,
            provider_message_id=dispatch.message_id,
            status=MessageStatus.SENT if dispatch.success else MessageStatus.FAILED,
            content_type=content_type,
            media_url=media_url,
            caption=caption,
            media_filename=filename,
        )
        self.db.commit()

        await self._broadcast(
            tenant_id,
            RealtimeEventType.NEW_MESSAGE,
            {"conversation_id": str(conversation.id), "message": serialize_chat_message(message)},
        )

        logger.info(
            "Chat message sent",
            extra={
                "tenant_id": str(tenant_id),
                "conversation_id": str(conversation.id),
                "success": dispatch.success,
            },
        )
        return ChatSendResult(conversation=conversation, message=message, dispatch=dispatch)

    async def _broadcast(self, tenant_id: UUID, event_type: RealtimeEventType, data: dict) -> None:
        try:
            await self.notifier.broadcast(
                tenant_id,
                RealtimeEvent(type=event_type.value, tenant_id=tenant_id, data=data),
            )
        except Exception as e:
            logger.warning(f"Realtime broadcast failed: {e}", extra={"tenant_id": str(tenant_id)})
