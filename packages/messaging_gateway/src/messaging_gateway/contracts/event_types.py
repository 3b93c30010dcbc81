"""
Realtime Event Types

Events pushed to connected tenant sessions.
"""

from enum import Enum


class RealtimeEventType(str, Enum):
    """
    Event types delivered over the realtime channel.

    - NEW_MESSAGE: A chat message was added to a conversation
    - MESSAGE_STATUS: A sent message changed delivery status
    - CONVERSATION_READ: A conversation's unread counter was reset
    """

    NEW_MESSAGE = "new_message"
    MESSAGE_STATUS = "message_status"
    CONVERSATION_READ = "conversation_read"

    def __str__(self) -> str:
        return self.value
