"""
Realtime Event Envelope

Wire format for realtime events: ``{"type", "tenant_id", "data"}``.
"""

import json
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from messaging_gateway.persistence.models import ChatMessage


@dataclass
class RealtimeEvent:
    """
    A realtime event for one tenant.

    Attributes:
        type: RealtimeEventType value
        tenant_id: Tenant whose sessions receive it
        data: Event-specific data (JSON-serializable)
    """

    type: str
    tenant_id: UUID
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RealtimeEvent":
        tenant_id = data["tenant_id"]
        return cls(
            type=data["type"],
            tenant_id=UUID(tenant_id) if isinstance(tenant_id, str) else tenant_id,
            data=data.get("data", {}),
        )

    @classmethod
    def from_json(cls, raw: str) -> "RealtimeEvent":
        return cls.from_dict(json.loads(raw))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": str(self.type),
            "tenant_id": str(self.tenant_id),
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def serialize_chat_message(message: ChatMessage) -> dict[str, Any]:
    """JSON-safe representation of a chat message for realtime payloads."""
    return {
        "id": str(message.id),
        "conversation_id": str(message.conversation_id),
        "direction": message.direction,
        "content_type": message.content_type,
        "body": message.body,
        "media_url": message.media_url,
        "media_mime_type": message.media_mime_type,
        "media_filename": message.media_filename,
        "caption": message.caption,
        "latitude": message.latitude,
        "longitude": message.longitude,
        "contact": message.contact_json,
        "sender_phone": message.sender_phone,
        "sender_name": message.sender_name,
        "provider_message_id": message.provider_message_id,
        "status": message.status,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }
