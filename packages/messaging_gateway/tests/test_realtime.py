"""
Tests for realtime fan-out.
"""

import asyncio
import json
from uuid import uuid4

import redis.asyncio as aioredis

from messaging_gateway.contracts.envelope import RealtimeEvent
from messaging_gateway.realtime.notifier import ConnectionRegistry, RedisRealtimeNotifier


class FakeSession:
    def __init__(self, broken=False):
        self.received = []
        self.broken = broken

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("socket closed")
        self.received.append(data)


class FakeRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


class FakePubSub:
    def __init__(self, messages, fail_subscribe=False):
        self.messages = messages
        self.fail_subscribe = fail_subscribe
        self.closed = False

    async def psubscribe(self, pattern):
        if self.fail_subscribe:
            raise aioredis.ConnectionError("Connection refused")

    async def listen(self):
        for message in self.messages:
            yield message
        await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FlakyRedis:
    """Refuses the first subscription, then serves the given messages."""

    def __init__(self, messages):
        self.pubsubs = [FakePubSub([], fail_subscribe=True), FakePubSub(messages)]

    def pubsub(self):
        return self.pubsubs.pop(0)


def event(tenant_id, **data):
    return RealtimeEvent(type="new_message", tenant_id=tenant_id, data=data)


class TestConnectionRegistry:
    """Tests for the in-process registry."""

    def test_broadcast_reaches_only_tenant_sessions(self, registry):
        tenant_a, tenant_b = uuid4(), uuid4()
        first, second, other = FakeSession(), FakeSession(), FakeSession()

        async def scenario():
            await registry.connect(tenant_a, first)
            await registry.connect(tenant_a, second)
            await registry.connect(tenant_b, other)
            return await registry.broadcast(tenant_a, event(tenant_a, text="hola"))

        delivered = asyncio.run(scenario())

        assert delivered == 2
        assert first.received == [{"type": "new_message", "tenant_id": str(tenant_a), "data": {"text": "hola"}}]
        assert second.received == first.received
        assert other.received == []

    def test_dead_session_is_dropped(self, registry):
        tenant_id = uuid4()
        alive, dead = FakeSession(), FakeSession(broken=True)

        async def scenario():
            await registry.connect(tenant_id, alive)
            await registry.connect(tenant_id, dead)
            return await registry.broadcast(tenant_id, event(tenant_id))

        assert asyncio.run(scenario()) == 1
        assert registry.session_count(tenant_id) == 1

    def test_broadcast_without_sessions(self, registry):
        tenant_id = uuid4()
        assert asyncio.run(registry.broadcast(tenant_id, event(tenant_id))) == 0

    def test_disconnect(self, registry):
        tenant_id = uuid4()
        session = FakeSession()

        async def scenario():
            await registry.connect(tenant_id, session)
            await registry.disconnect(tenant_id, session)
            await registry.disconnect(tenant_id, session)

        asyncio.run(scenario())
        assert registry.session_count(tenant_id) == 0


class TestRedisRealtimeNotifier:
    def test_publishes_on_tenant_channel(self):
        tenant_id = uuid4()
        redis = FakeRedis()

        asyncio.run(RedisRealtimeNotifier(redis).broadcast(tenant_id, event(tenant_id, n=1)))

        [(channel, message)] = redis.published
        assert channel == f"realtime:{tenant_id}"
        assert json.loads(message)["data"] == {"n": 1}

    def test_relay_resubscribes_after_connection_error(self, registry):
        tenant_id = uuid4()
        session = FakeSession()
        published = event(tenant_id, text="hola").to_json()
        redis = FlakyRedis([
            {"type": "psubscribe", "data": 1},
            {"type": "pmessage", "data": "not json"},
            {"type": "pmessage", "data": published},
        ])
        notifier = RedisRealtimeNotifier(redis, retry_delay=0)

        async def scenario():
            await registry.connect(tenant_id, session)
            task = asyncio.create_task(notifier.relay(registry))
            for _ in range(100):
                if session.received:
                    break
                await asyncio.sleep(0.01)
            task.cancel()
            return task

        task = asyncio.run(scenario())

        assert task.cancelled()
        assert session.received == [{"type": "new_message", "tenant_id": str(tenant_id), "data": {"text": "hola"}}]


class TestRealtimeEvent:
    def test_json_round_trip(self):
        tenant_id = uuid4()
        original = event(tenant_id, conversation_id="c-1")

        restored = RealtimeEvent.from_json(original.to_json())

        assert restored.tenant_id == tenant_id
        assert restored.type == "new_message"
        assert restored.data == {"conversation_id": "c-1"}
