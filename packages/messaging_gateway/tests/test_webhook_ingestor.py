"""
Tests for webhook ingestion.
"""

import asyncio

import pytest

from messaging_gateway.persistence.models import (
    ChatMessage,
    Conversation,
    MessageDirection,
    MessageKind,
    MessageLog,
    MessageStatus,
)
from messaging_gateway.realtime.notifier import RealtimeNotifier
from messaging_gateway.routing.tenant_resolver import TenantResolver
from messaging_gateway.service.automation import DEFAULT_SUPPORT_TEXT
from messaging_gateway.service.webhook_ingestor import WebhookIngestor


class RecordingNotifier(RealtimeNotifier):
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    async def broadcast(self, tenant_id, event):
        if self.fail:
            raise RuntimeError("redis down")
        self.events.append(event)
        return 1


def inbound(text="Hola", message_id="wamid.1", app="ferreteria-app", phone="573009998877"):
    return {
        "app": app,
        "timestamp": 1700000000000,
        "type": "message",
        "payload": {
            "id": message_id,
            "source": phone,
            "type": "text",
            "payload": {"text": text},
            "sender": {"phone": phone, "name": "Ana"},
        },
    }


def status(message_id, event_type="delivered"):
    return {"type": "message-event", "payload": {"id": message_id, "type": event_type}}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ingestor(db, provider, dispatcher, notifier):
    return WebhookIngestor(db, provider, dispatcher, notifier, resolver=TenantResolver(db, single_tenant_fallback=False))


class TestDeliveryStatus:
    """Tests for delivery-status reconciliation."""

    def test_unknown_message_is_noop(self, db, ingestor, notifier):
        result = asyncio.run(ingestor.ingest(status("nobody-sent-this")))

        assert result == {"status": "ignored", "reason": "unknown_message"}
        assert notifier.events == []

    def test_updates_log(self, db, ready_tenant, ingestor, dispatcher, notifier):
        sent = asyncio.run(dispatcher.send_session(ready_tenant, "573009998877", "Hola"))

        result = asyncio.run(ingestor.ingest(status(sent.message_id, "delivered")))

        assert result["status"] == "updated"
        assert result["message_status"] == "delivered"
        log = db.query(MessageLog).one()
        assert log.status == MessageStatus.DELIVERED.value
        assert notifier.events[0].type == "message_status"

    def test_replayed_status_is_not_reapplied(self, db, ready_tenant, ingestor, dispatcher, notifier):
        sent = asyncio.run(dispatcher.send_session(ready_tenant, "573009998877", "Hola"))
        asyncio.run(ingestor.ingest(status(sent.message_id, "delivered")))
        first_update = db.query(MessageLog).one().updated_at

        result = asyncio.run(ingestor.ingest(status(sent.message_id, "delivered")))

        assert result == {"status": "unchanged", "message_status": "delivered"}
        assert len(notifier.events) == 1
        assert db.query(MessageLog).one().updated_at == first_update

    def test_last_write_wins(self, db, ready_tenant, ingestor, dispatcher):
        sent = asyncio.run(dispatcher.send_session(ready_tenant, "573009998877", "Hola"))

        asyncio.run(ingestor.ingest(status(sent.message_id, "read")))
        asyncio.run(ingestor.ingest(status(sent.message_id, "delivered")))

        assert db.query(MessageLog).one().status == MessageStatus.DELIVERED.value

    def test_failed_status_stores_reason(self, db, ready_tenant, ingestor, dispatcher):
        sent = asyncio.run(dispatcher.send_session(ready_tenant, "573009998877", "Hola"))
        payload = status(sent.message_id, "failed")
        payload["payload"]["payload"] = {"reason": "Message undeliverable"}

        asyncio.run(ingestor.ingest(payload))

        log = db.query(MessageLog).one()
        assert log.status == MessageStatus.FAILED.value
        assert log.error_message == "Message undeliverable"

    def test_unknown_payload_is_ignored(self, ingestor):
        result = asyncio.run(ingestor.ingest({"type": "user-event"}))
        assert result["status"] == "ignored"


class TestInbound:
    """Tests for inbound customer messages."""

    def test_creates_conversation_and_logs(self, db, ready_tenant, ingestor, notifier):
        result = asyncio.run(ingestor.ingest(inbound("Tienen cemento?")))

        assert result["status"] == "processed"
        assert result["tenant_id"] == str(ready_tenant)
        assert "auto_reply" not in result

        conversation = db.query(Conversation).one()
        assert conversation.customer_phone == "573009998877"
        assert conversation.customer_name == "Ana"
        assert conversation.unread_count == 1
        assert conversation.last_message_preview == "Tienen cemento?"

        message = db.query(ChatMessage).one()
        assert message.direction == MessageDirection.INBOUND.value
        assert message.body == "Tienen cemento?"

        log = db.query(MessageLog).one()
        assert log.direction == MessageDirection.INBOUND.value

        assert notifier.events[0].type == "new_message"
        assert notifier.events[0].data["message"]["body"] == "Tienen cemento?"

    def test_duplicate_delivery_is_skipped(self, db, ready_tenant, ingestor):
        asyncio.run(ingestor.ingest(inbound(message_id="wamid.dup")))
        result = asyncio.run(ingestor.ingest(inbound(message_id="wamid.dup")))

        assert result == {"status": "skipped", "reason": "already_processed"}
        assert db.query(ChatMessage).count() == 1
        assert db.query(Conversation).one().unread_count == 1

    def test_unread_count_accumulates(self, db, ready_tenant, ingestor):
        asyncio.run(ingestor.ingest(inbound("uno", message_id="wamid.1")))
        asyncio.run(ingestor.ingest(inbound("dos", message_id="wamid.2")))

        conversation = db.query(Conversation).one()
        assert conversation.unread_count == 2
        assert conversation.last_message_preview == "dos"

    def test_help_command_replies_once(self, db, ready_tenant, ingestor, provider):
        result = asyncio.run(ingestor.ingest(inbound("  AYUDA ")))

        assert result["auto_reply"] == {"command": "help", "success": True, "code": None}
        assert len(provider.sent_messages) == 1
        assert provider.sent_messages[0]["text"] == DEFAULT_SUPPORT_TEXT

        outbound = db.query(ChatMessage).filter(ChatMessage.direction == MessageDirection.OUTBOUND.value).one()
        assert outbound.status == MessageStatus.SENT.value

        reply_log = db.query(MessageLog).filter(MessageLog.direction == MessageDirection.OUTBOUND.value).one()
        assert reply_log.message_kind == MessageKind.AUTO_REPLY.value

    def test_hours_uses_tenant_text(self, db, ready_tenant, ingestor, provider, messaging_config):
        messaging_config.business_hours = "Lunes a sabado 8am - 6pm"
        db.commit()

        asyncio.run(ingestor.ingest(inbound("horario")))

        assert provider.sent_messages[0]["text"] == "Lunes a sabado 8am - 6pm"

    def test_partial_command_does_not_reply(self, db, ready_tenant, ingestor, provider):
        asyncio.run(ingestor.ingest(inbound("necesito ayuda por favor")))
        assert provider.sent_messages == []

    def test_unknown_tenant(self, db, tenant_id, ingestor):
        result = asyncio.run(ingestor.ingest(inbound(app="other-app")))

        assert result == {"status": "ignored", "reason": "tenant_not_found"}
        assert db.query(ChatMessage).count() == 0

    def test_single_tenant_fallback(self, db, ready_tenant, provider, dispatcher, notifier):
        ingestor = WebhookIngestor(db, provider, dispatcher, notifier, resolver=TenantResolver(db, single_tenant_fallback=True))

        result = asyncio.run(ingestor.ingest(inbound(app="other-app")))

        assert result["status"] == "processed"
        assert result["tenant_id"] == str(ready_tenant)

    def test_out_of_range_timestamp_keeps_message(self, db, ready_tenant, ingestor):
        payload = inbound()
        payload["timestamp"] = 10**20

        result = asyncio.run(ingestor.ingest(payload))

        assert result["status"] == "processed"
        assert db.query(ChatMessage).count() == 1

    def test_broadcast_failure_keeps_message(self, db, ready_tenant, provider, dispatcher):
        ingestor = WebhookIngestor(db, provider, dispatcher, RecordingNotifier(fail=True))

        result = asyncio.run(ingestor.ingest(inbound()))

        assert result["status"] == "processed"
        assert db.query(ChatMessage).count() == 1
