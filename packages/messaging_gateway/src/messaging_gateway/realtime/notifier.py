"""
Realtime Notifier

Best-effort fan-out of events to connected tenant sessions.

- ConnectionRegistry: WebSocket sessions held by this process
- RedisRealtimeNotifier: publishes to Redis; every API process relays
  messages from its subscription into its own registry

No persistence or replay: a disconnected client misses events until it
polls again.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol
from uuid import UUID

import redis.asyncio as aioredis

from messaging_gateway.contracts.envelope import RealtimeEvent

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "realtime"


class RealtimeSession(Protocol):
    """Anything that can receive a JSON message (e.g. a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class RealtimeNotifier(ABC):
    """Delivers events to every connected session of a tenant."""

    @abstractmethod
    async def broadcast(self, tenant_id: UUID, event: RealtimeEvent) -> int:
        """
        Deliver an event.

        Returns:
            Number of local sessions reached (0 when delivery is remote)
        """
        ...


class ConnectionRegistry(RealtimeNotifier):
    """In-process registry of sessions per tenant."""

    def __init__(self):
        self._sessions: dict[UUID, set[RealtimeSession]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, tenant_id: UUID, session: RealtimeSession) -> None:
        async with self._lock:
            self._sessions.setdefault(tenant_id, set()).add(session)
        logger.debug("Realtime session connected", extra={"tenant_id": str(tenant_id)})

    async def disconnect(self, tenant_id: UUID, session: RealtimeSession) -> None:
        async with self._lock:
            sessions = self._sessions.get(tenant_id)
            if sessions is None:
                return
            sessions.discard(session)
            if not sessions:
                del self._sessions[tenant_id]

    def session_count(self, tenant_id: UUID) -> int:
        return len(self._sessions.get(tenant_id, ()))

    async def broadcast(self, tenant_id: UUID, event: RealtimeEvent) -> int:
        async with self._lock:
            sessions = list(self._sessions.get(tenant_id, ()))

        message = event.to_dict()
        delivered = 0
        for session in sessions:
            try:
                await session.send_json(message)
                delivered += 1
            except Exception as e:
                # Dead socket; drop it and keep going
                logger.info(f"Dropping realtime session: {e}", extra={"tenant_id": str(tenant_id)})
                await self.disconnect(tenant_id, session)
        return delivered


class RedisRealtimeNotifier(RealtimeNotifier):
    """
    Publishes events on ``realtime:{tenant_id}``.

    Run ``relay`` in each API process to forward published events to the
    local ConnectionRegistry.
    """

    def __init__(self, redis_client: aioredis.Redis, channel_prefix: str = CHANNEL_PREFIX, retry_delay: float = 5.0):
        self.redis = redis_client
        self.channel_prefix = channel_prefix
        self.retry_delay = retry_delay

    def channel(self, tenant_id: UUID) -> str:
        return f"{self.channel_prefix}:{tenant_id}"

    async def broadcast(self, tenant_id: UUID, event: RealtimeEvent) -> int:
        try:
            await self.redis.publish(self.channel(tenant_id), event.to_json())
        except aioredis.RedisError as e:
            logger.error(f"Failed to publish realtime event: {e}", extra={"tenant_id": str(tenant_id)})
        return 0

    async def relay(self, registry: ConnectionRegistry) -> None:
        """
        Forward every published event to local sessions until cancelled.

        A lost Redis connection is logged and the subscription is opened
        again after ``retry_delay`` seconds.
        """
        while True:
            try:
                await self._relay_once(registry)
            except aioredis.RedisError as e:
                logger.error(f"Realtime relay lost Redis: {e}")
            await asyncio.sleep(self.retry_delay)

    async def _relay_once(self, registry: ConnectionRegistry) -> None:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.psubscribe(f"{self.channel_prefix}:*")
            logger.info("Realtime relay subscribed")

            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                try:
                    event = RealtimeEvent.from_json(message["data"])
                except (ValueError, KeyError) as e:
                    logger.warning(f"Malformed realtime message: {e}")
                    continue
                await registry.broadcast(event.tenant_id, event)
        finally:
            try:
                await pubsub.aclose()
            except aioredis.RedisError as e:
                logger.debug(f"Closing realtime subscription failed: {e}")
