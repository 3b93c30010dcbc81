"""
Messaging Gateway Contracts

Realtime event types and envelope.
"""

from messaging_gateway.contracts.event_types import RealtimeEventType
from messaging_gateway.contracts.envelope import RealtimeEvent, serialize_chat_message

__all__ = [
    "RealtimeEventType",
    "RealtimeEvent",
    "serialize_chat_message",
]
