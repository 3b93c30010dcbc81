"""
Tests for event trigger bindings.
"""

import asyncio
from uuid import uuid4

import pytest

from messaging_gateway.errors import NotFoundError, ValidationError
from messaging_gateway.persistence.models import (
    MessageKind,
    MessageLog,
    MessageTemplate,
    TemplateStatus,
)
from messaging_gateway.service.triggers import (
    DUPLICATE_TRIGGER,
    TEMPLATE_NOT_APPROVED,
    TriggerMap,
    resolve_params,
)


def add_template(db, tenant_id, name="recibo", status=TemplateStatus.APPROVED, provider_template_id="gs-recibo"):
    template = MessageTemplate(
        tenant_id=tenant_id,
        name=name,
        body_text="Hola {{1}}, total {{2}}",
        status=status.value,
        provider_template_id=provider_template_id,
    )
    db.add(template)
    db.commit()
    return template


@pytest.fixture
def approved(db, tenant_id):
    return add_template(db, tenant_id)


class TestResolveParams:
    def test_orders_positions_numerically(self):
        mapping = {"10": "j", "2": "b", "1": "a"}
        assert resolve_params(mapping, {"a": "A", "b": "B", "j": "J"}) == ["A", "B", "J"]

    def test_missing_fields_become_empty(self):
        assert resolve_params({"1": "customer_name", "2": "total"}, {"total": 125000}) == ["", "125000"]

    def test_no_mapping(self):
        assert resolve_params(None, {"a": 1}) == []


class TestBind:
    """Tests for TriggerMap.bind."""

    def test_bind_approved_template(self, db, tenant_id, approved):
        trigger = TriggerMap(db).bind(tenant_id, "sale_completed", approved.id, {"1": "customer_name"})

        assert trigger.event == "sale_completed"
        assert trigger.template_id == approved.id
        assert trigger.variable_mapping == {"1": "customer_name"}
        assert trigger.enabled is True

    def test_draft_template_refused(self, db, tenant_id):
        draft = add_template(db, tenant_id, status=TemplateStatus.DRAFT, provider_template_id=None)

        with pytest.raises(ValidationError) as exc_info:
            TriggerMap(db).bind(tenant_id, "sale_completed", draft.id)
        assert exc_info.value.code == TEMPLATE_NOT_APPROVED

    def test_unknown_event(self, db, tenant_id, approved):
        with pytest.raises(ValidationError):
            TriggerMap(db).bind(tenant_id, "birthday", approved.id)

    def test_bad_mapping_position(self, db, tenant_id, approved):
        with pytest.raises(ValidationError):
            TriggerMap(db).bind(tenant_id, "sale_completed", approved.id, {"first": "customer_name"})

    def test_template_of_other_tenant(self, db, approved):
        with pytest.raises(NotFoundError):
            TriggerMap(db).bind(uuid4(), "sale_completed", approved.id)

    def test_duplicate_refused_without_replace(self, db, tenant_id, approved):
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "sale_completed", approved.id, replace=False)

        with pytest.raises(ValidationError) as exc_info:
            triggers.bind(tenant_id, "sale_completed", approved.id, replace=False)
        assert exc_info.value.code == DUPLICATE_TRIGGER

    def test_rebind_replaces(self, db, tenant_id, approved):
        other = add_template(db, tenant_id, name="recibo_v2", provider_template_id="gs-recibo-v2")
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "sale_completed", approved.id)

        trigger = triggers.bind(tenant_id, "sale_completed", other.id, {"1": "total"})

        assert trigger.template_id == other.id
        assert len(triggers.list_triggers(tenant_id)) == 1

    def test_toggle_and_unbind(self, db, tenant_id, approved):
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "low_stock_alert", approved.id)

        assert triggers.set_enabled(tenant_id, "low_stock_alert", False).enabled is False

        triggers.unbind(tenant_id, "low_stock_alert")
        assert triggers.list_triggers(tenant_id) == []

        with pytest.raises(NotFoundError):
            triggers.unbind(tenant_id, "low_stock_alert")


class TestResolve:
    def test_resolves_provider_id_and_params(self, db, tenant_id, approved):
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "sale_completed", approved.id, {"1": "customer_name", "2": "total"})

        resolved = triggers.resolve(tenant_id, "sale_completed", {"customer_name": "Ana", "total": "$10.000 COP"})
        assert resolved == ("gs-recibo", ["Ana", "$10.000 COP"])

    def test_disabled_trigger(self, db, tenant_id, approved):
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "sale_completed", approved.id, enabled=False)

        assert triggers.resolve(tenant_id, "sale_completed", {}) is None

    def test_template_edited_back_to_draft(self, db, tenant_id, approved):
        triggers = TriggerMap(db)
        triggers.bind(tenant_id, "sale_completed", approved.id)
        approved.status = TemplateStatus.DRAFT.value
        db.commit()

        assert triggers.resolve(tenant_id, "sale_completed", {}) is None


class TestFire:
    """Tests for firing business events."""

    def test_fire_sends_template(self, db, ready_tenant, approved, dispatcher, provider):
        triggers = TriggerMap(db)
        triggers.bind(ready_tenant, "sale_completed", approved.id, {"1": "customer_name", "2": "total"})

        result = asyncio.run(
            triggers.fire(dispatcher, ready_tenant, "sale_completed", "573009998877", {"customer_name": "Ana", "total": "5"})
        )

        assert result.success is True
        assert provider.sent_messages[0]["template_id"] == "gs-recibo"
        assert provider.sent_messages[0]["params"] == ["Ana", "5"]
        log = db.query(MessageLog).one()
        assert log.message_kind == MessageKind.RECEIPT.value

    def test_fire_respects_event_toggle(self, db, ready_tenant, approved, dispatcher, provider, messaging_config):
        messaging_config.notify_on_sale = False
        db.commit()
        TriggerMap(db).bind(ready_tenant, "sale_completed", approved.id)

        result = asyncio.run(TriggerMap(db).fire(dispatcher, ready_tenant, "sale_completed", "573009998877", {}))

        assert result is None
        assert provider.sent_messages == []

    def test_event_without_toggle_fires_when_enabled(self, db, ready_tenant, approved, dispatcher, provider):
        TriggerMap(db).bind(ready_tenant, "order_ready", approved.id)

        result = asyncio.run(TriggerMap(db).fire(dispatcher, ready_tenant, "order_ready", "573009998877", {}))

        assert result.success is True

    def test_fire_without_mapping(self, db, ready_tenant, dispatcher, provider):
        result = asyncio.run(TriggerMap(db).fire(dispatcher, ready_tenant, "payment_received", "573009998877", {}))

        assert result is None
        assert provider.sent_messages == []
