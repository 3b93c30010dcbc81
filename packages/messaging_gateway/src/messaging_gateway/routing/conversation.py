"""
Conversation Store

Per-customer threads built from inbound and outbound traffic.

Conversations are unique per (tenant, customer_phone) and created lazily.
unread_count is incremented in SQL so concurrent inbound webhooks do not
lose counts.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from messaging_gateway.errors import NotFoundError
from messaging_gateway.persistence.models import (
    ChatContentType,
    ChatMessage,
    Conversation,
    MessageDirection,
    MessageStatus,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.phone import normalize_phone
from messaging_gateway.providers.base import InboundMessageEvent

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


def message_preview(content_type: ChatContentType, body: str | None, caption: str | None = None) -> str:
    """Short text shown in conversation lists."""
    if content_type == ChatContentType.TEXT:
        text = body or ""
    else:
        text = caption or f"[{content_type.value}]"
    return text[:PREVIEW_LENGTH]


class ConversationStore:
    """
    Manages conversations and their messages.

    Provides methods to:
    - Get or create conversations
    - Record inbound and outbound messages
    - Mark conversations read
    - List and search conversations
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = GatewayRepository(db)

    def get_or_create(
        self,
        tenant_id: UUID,
        customer_phone: str,
        customer_name: str | None = None,
    ) -> tuple[Conversation, bool]:
        """
        Get or create the conversation for a customer.

        Returns:
            Tuple of (conversation, created)
        """
        phone = normalize_phone(customer_phone)
        conversation = self.repo.get_conversation(tenant_id, phone)
        if conversation is not None:
            return conversation, False

        try:
            with self.db.begin_nested():
                conversation = Conversation(
                    tenant_id=tenant_id,
                    customer_phone=phone,
                    customer_name=customer_name,
                    unread_count=0,
                    last_message_at=utcnow(),
                )
                self.db.add(conversation)
        except IntegrityError:
            # Another request created it first
            conversation = self.repo.get_conversation(tenant_id, phone)
            if conversation is None:
                raise
            return conversation, False

        logger.info("Conversation created", extra={"tenant_id": str(tenant_id), "conversation_id": str(conversation.id)})
        return conversation, True

    def get(self, tenant_id: UUID, conversation_id: UUID) -> Conversation:
        conversation = self.repo.get_conversation_by_id(tenant_id, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    def _touch(
        self,
        conversation: Conversation,
        preview: str,
        at: datetime,
        increment_unread: bool,
        customer_name: str | None = None,
    ) -> None:
        values: dict[Any, Any] = {
            Conversation.last_message_at: at,
            Conversation.last_message_preview: preview,
            Conversation.updated_at: utcnow(),
        }
        if increment_unread:
            values[Conversation.unread_count] = Conversation.unread_count + 1
        if customer_name:
            values[Conversation.customer_name] = customer_name

        self.db.query(Conversation).filter(Conversation.id == conversation.id).update(
            values, synchronize_session=False
        )
        self.db.expire(conversation)

    def record_inbound(self, tenant_id: UUID, event: InboundMessageEvent) -> tuple[Conversation, ChatMessage]:
        """
        Append an inbound message to the customer's conversation.

        Updates preview and last_message_at and increments unread_count.
        The caller commits.
        """
        conversation, _ = self.get_or_create(tenant_id, event.from_phone, event.sender_name)

        message = self.repo.create_chat_message(
            conversation_id=conversation.id,
            tenant_id=tenant_id,
            direction=MessageDirection.INBOUND.value,
            content_type=event.content_type.value,
            body=event.text,
            media_url=event.media_url,
            media_mime_type=event.media_mime_type,
            media_filename=event.media_filename,
            caption=event.caption,
            latitude=event.latitude,
            longitude=event.longitude,
            contact_json=event.contact,
            sender_phone=event.from_phone,
            sender_name=event.sender_name,
            provider_message_id=event.provider_message_id,
            status=MessageStatus.DELIVERED.value,
        )

        self._touch(
            conversation,
            message_preview(event.content_type, event.text, event.caption),
            event.timestamp or message.created_at,
            increment_unread=True,
            customer_name=event.sender_name,
        )
        return conversation, message

    def record_outbound(
        self,
        conversation: Conversation,
        body: str | None,
        provider_message_id: str | None,
        status: MessageStatus,
        content_type: ChatContentType = ChatContentType.TEXT,
        media_url: str | None = None,
        caption: str | None = None,
        media_filename: str | None = None,
    ) -> ChatMessage:
        """Append an outbound message. The caller commits."""
        message = self.repo.create_chat_message(
            conversation_id=conversation.id,
            tenant_id=conversation.tenant_id,
            direction=MessageDirection.OUTBOUND.value,
            content_type=content_type.value,
            body=body,
            media_url=media_url,
            caption=caption,
            media_filename=media_filename,
            provider_message_id=provider_message_id,
            status=status.value,
        )
        self._touch(
            conversation,
            message_preview(content_type, body, caption),
            message.created_at,
            increment_unread=False,
        )
        return message

    def mark_read(self, tenant_id: UUID, conversation_id: UUID) -> Conversation:
        conversation = self.get(tenant_id, conversation_id)
        conversation.unread_count = 0
        conversation.updated_at = utcnow()
        self.db.commit()
        return conversation

    def list_conversations(
        self,
        tenant_id: UUID,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Conversation]:
        """List conversations, most recent activity first, optionally matching phone or name."""
        return self.repo.list_conversations(tenant_id, search, limit, offset)

    def get_messages(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ChatMessage]:
        conversation = self.get(tenant_id, conversation_id)
        return self.repo.list_chat_messages(conversation.id, limit, offset)
