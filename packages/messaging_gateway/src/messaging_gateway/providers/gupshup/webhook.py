"""
Gupshup Webhook Parsing

Classifies Gupshup callbacks into the provider-agnostic event variants.

Handled shapes:
- v2 ``{"type": "message-event", "payload": {"id", "gsId", "type", ...}}``
- v2 ``{"type": "message", "app": ..., "payload": {"source", "type", "payload", "sender"}}``
- v1 ``{"messageId": ..., "eventType": "DELIVERED"}``

Anything else becomes UnknownWebhookEvent.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from messaging_gateway.persistence.models import ChatContentType, MessageStatus
from messaging_gateway.phone import normalize_phone
from messaging_gateway.providers.base import (
    DeliveryStatusEvent,
    InboundMessageEvent,
    UnknownWebhookEvent,
    WebhookEvent,
    extract_error_message,
)

logger = logging.getLogger(__name__)

STATUS_EVENT_TYPE = "message-event"
INBOUND_EVENT_TYPE = "message"

# Provider event name -> our status
STATUS_MAP: dict[str, MessageStatus] = {
    "enqueued": MessageStatus.SENT,
    "sent": MessageStatus.SENT,
    "delivered": MessageStatus.DELIVERED,
    "read": MessageStatus.READ,
    "failed": MessageStatus.FAILED,
}

# Provider inbound type -> our content type
CONTENT_TYPE_MAP: dict[str, ChatContentType] = {
    "text": ChatContentType.TEXT,
    "quick_reply": ChatContentType.TEXT,
    "button_reply": ChatContentType.TEXT,
    "list_reply": ChatContentType.TEXT,
    "image": ChatContentType.IMAGE,
    "video": ChatContentType.VIDEO,
    "audio": ChatContentType.AUDIO,
    "voice": ChatContentType.AUDIO,
    "file": ChatContentType.DOCUMENT,
    "document": ChatContentType.DOCUMENT,
    "sticker": ChatContentType.STICKER,
    "location": ChatContentType.LOCATION,
    "contact": ChatContentType.CONTACT,
}


def parse_gupshup_webhook(payload: dict[str, Any]) -> WebhookEvent:
    """
    Parse a Gupshup webhook payload.

    Args:
        payload: Parsed JSON body

    Returns:
        DeliveryStatusEvent, InboundMessageEvent or UnknownWebhookEvent
    """
    if not isinstance(payload, dict):
        return UnknownWebhookEvent(event_type=None)

    event_type = payload.get("type")

    if event_type == STATUS_EVENT_TYPE:
        return _parse_status_event(payload)

    if event_type == INBOUND_EVENT_TYPE:
        return _parse_inbound_message(payload)

    if event_type is None and payload.get("messageId") and payload.get("eventType"):
        return _parse_v1_status(payload)

    logger.debug("Ignoring webhook", extra={"webhook_type": event_type})
    return UnknownWebhookEvent(event_type=event_type, raw_payload=payload)


def _parse_status_event(payload: dict[str, Any]) -> WebhookEvent:
    event = payload.get("payload") or {}
    provider_event = str(event.get("type") or "").lower()
    status = STATUS_MAP.get(provider_event)

    # gsId is the id returned on submit; id is the channel id
    message_id = event.get("gsId") or event.get("id")

    if not message_id or status is None:
        return UnknownWebhookEvent(event_type=f"{STATUS_EVENT_TYPE}:{provider_event}", raw_payload=payload)

    error_message = None
    if status == MessageStatus.FAILED:
        error_message = extract_error_message(event.get("payload") or {}, default="Delivery failed")

    return DeliveryStatusEvent(
        provider_message_id=str(message_id),
        status=status,
        provider_event=provider_event,
        recipient_phone=event.get("destination"),
        error_message=error_message,
        raw_payload=payload,
    )


def _parse_v1_status(payload: dict[str, Any]) -> WebhookEvent:
    provider_event = str(payload.get("eventType")).lower()
    status = STATUS_MAP.get(provider_event)
    if status is None:
        return UnknownWebhookEvent(event_type=provider_event, raw_payload=payload)

    return DeliveryStatusEvent(
        provider_message_id=str(payload["messageId"]),
        status=status,
        provider_event=provider_event,
        recipient_phone=payload.get("destAddr"),
        error_message=payload.get("cause") if status == MessageStatus.FAILED else None,
        raw_payload=payload,
    )


def _parse_inbound_message(payload: dict[str, Any]) -> WebhookEvent:
    message = payload.get("payload") or {}
    content = message.get("payload") or {}
    sender = message.get("sender") or {}

    message_id = message.get("id")
    from_phone = normalize_phone(message.get("source") or sender.get("phone"))

    if not message_id or not from_phone:
        return UnknownWebhookEvent(event_type=INBOUND_EVENT_TYPE, raw_payload=payload)

    provider_type = str(message.get("type") or "text").lower()
    content_type = CONTENT_TYPE_MAP.get(provider_type, ChatContentType.TEXT)

    event = InboundMessageEvent(
        provider_message_id=str(message_id),
        from_phone=from_phone,
        content_type=content_type,
        timestamp=_parse_timestamp(payload.get("timestamp")),
        app_name=payload.get("app"),
        destination_phone=normalize_phone(payload.get("destination")) or None,
        sender_name=sender.get("name"),
        raw_payload=payload,
    )

    if content_type == ChatContentType.TEXT:
        event.text = content.get("text") or content.get("title")
    elif content_type == ChatContentType.LOCATION:
        event.latitude = _to_float(content.get("latitude"))
        event.longitude = _to_float(content.get("longitude"))
    elif content_type == ChatContentType.CONTACT:
        contacts = content.get("contacts") or []
        event.contact = contacts[0] if contacts else None
    else:
        event.media_url = content.get("url")
        event.media_mime_type = content.get("contentType")
        event.media_filename = content.get("name")
        event.caption = content.get("caption")

    return event


def _parse_timestamp(value: Any) -> datetime:
    """Gupshup sends epoch milliseconds; fall back to now."""
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
