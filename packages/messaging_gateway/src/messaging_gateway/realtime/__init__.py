"""Realtime fan-out to connected tenant sessions."""

from messaging_gateway.realtime.notifier import (
    ConnectionRegistry,
    RealtimeNotifier,
    RedisRealtimeNotifier,
)

__all__ = [
    "ConnectionRegistry",
    "RealtimeNotifier",
    "RedisRealtimeNotifier",
]
