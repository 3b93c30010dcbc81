"""
Trigger Map

Binds business events to approved templates and fires them.

A mapping is unique per (tenant, event) and stores a positional variable
mapping: ``{"1": "customer_name", "2": "total"}`` turns the event context
into the ordered template parameters.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import NotFoundError, ValidationError
from messaging_gateway.persistence.models import (
    MessageKind,
    TemplateStatus,
    TriggerEvent,
    TriggerMapping,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.service.dispatcher import DispatchResult, MessageDispatcher

logger = logging.getLogger(__name__)

TEMPLATE_NOT_APPROVED = "TEMPLATE_NOT_APPROVED"
DUPLICATE_TRIGGER = "DUPLICATE_TRIGGER"

# Event -> tenant notification toggle that must be on
EVENT_TOGGLES: dict[TriggerEvent, str] = {
    TriggerEvent.SALE_COMPLETED: "notify_on_sale",
    TriggerEvent.LOW_STOCK_ALERT: "notify_on_low_stock",
    TriggerEvent.DAILY_SUMMARY: "notify_daily_summary",
}

EVENT_KINDS: dict[TriggerEvent, MessageKind] = {
    TriggerEvent.SALE_COMPLETED: MessageKind.RECEIPT,
    TriggerEvent.ORDER_READY: MessageKind.RECEIPT,
    TriggerEvent.PAYMENT_RECEIVED: MessageKind.RECEIPT,
    TriggerEvent.LOW_STOCK_ALERT: MessageKind.ALERT,
    TriggerEvent.DAILY_SUMMARY: MessageKind.ALERT,
}


def parse_event(event: str) -> TriggerEvent:
    try:
        return TriggerEvent(event)
    except ValueError:
        raise ValidationError(f"Unknown trigger event: {event}")


def resolve_params(variable_mapping: dict[str, str] | None, context: dict[str, Any]) -> list[str]:
    """
    Build ordered template parameters from an event context.

    Positions are sorted numerically; missing context fields become "".
    """
    mapping = variable_mapping or {}
    positions = sorted(mapping, key=lambda k: int(k))
    params = []
    for position in positions:
        value = context.get(mapping[position])
        params.append("" if value is None else str(value))
    return params


def _validate_mapping(variable_mapping: dict[str, Any] | None) -> dict[str, str]:
    mapping = variable_mapping or {}
    for key, field in mapping.items():
        if not str(key).isdigit() or int(key) < 1:
            raise ValidationError(f"Variable positions must be positive integers, got '{key}'")
        if not isinstance(field, str) or not field:
            raise ValidationError(f"Variable {key} must map to a context field name")
    return {str(k): v for k, v in mapping.items()}


class TriggerMap:
    """Event bindings for a tenant."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = GatewayRepository(db)

    def list_triggers(self, tenant_id: UUID) -> list[TriggerMapping]:
        return self.repo.list_triggers(tenant_id)

    def bind(
        self,
        tenant_id: UUID,
        event: str,
        template_id: UUID,
        variable_mapping: dict[str, str] | None = None,
        enabled: bool = True,
        replace: bool = True,
    ) -> TriggerMapping:
        """
        Bind an event to an approved template.

        Args:
            tenant_id: Tenant ID
            event: TriggerEvent value
            template_id: Local template ID (must be approved)
            variable_mapping: Position -> context field
            enabled: Whether the trigger fires
            replace: Upsert when a mapping exists; otherwise refuse

        Raises:
            NotFoundError: Template does not belong to the tenant
            ValidationError: TEMPLATE_NOT_APPROVED, DUPLICATE_TRIGGER, bad mapping
        """
        trigger_event = parse_event(event)
        mapping = _validate_mapping(variable_mapping)

        template = self.repo.get_template(tenant_id, template_id)
        if template is None:
            raise NotFoundError("Template not found")
        if template.status != TemplateStatus.APPROVED.value:
            raise ValidationError(
                "Only approved templates can be bound to events",
                code=TEMPLATE_NOT_APPROVED,
            )

        trigger = self.repo.get_trigger(tenant_id, trigger_event.value)
        if trigger is not None and not replace:
            raise ValidationError(
                f"A trigger already exists for {trigger_event.value}",
                code=DUPLICATE_TRIGGER,
            )

        if trigger is None:
            trigger = self.repo.create_trigger(
                tenant_id=tenant_id,
                event=trigger_event.value,
                template_id=template.id,
                variable_mapping=mapping,
                enabled=enabled,
            )
        else:
            trigger.template_id = template.id
            trigger.variable_mapping = mapping
            trigger.enabled = enabled
            trigger.updated_at = utcnow()

        self.db.commit()

        logger.info(
            "Trigger bound",
            extra={"tenant_id": str(tenant_id), "event": trigger_event.value, "template": template.name},
        )
        return trigger

    def set_enabled(self, tenant_id: UUID, event: str, enabled: bool) -> TriggerMapping:
        trigger = self.repo.get_trigger(tenant_id, parse_event(event).value)
        if trigger is None:
            raise NotFoundError("Trigger not found")
        trigger.enabled = enabled
        trigger.updated_at = utcnow()
        self.db.commit()
        return trigger

    def unbind(self, tenant_id: UUID, event: str) -> None:
        trigger = self.repo.get_trigger(tenant_id, parse_event(event).value)
        if trigger is None:
            raise NotFoundError("Trigger not found")
        self.db.delete(trigger)
        self.db.commit()

    def resolve(self, tenant_id: UUID, event: str, context: dict[str, Any]) -> tuple[str, list[str]] | None:
        """
        Resolve an event into (provider template id, params).

        Returns None when no enabled mapping with an approved template exists.
        """
        trigger = self.repo.get_trigger(tenant_id, parse_event(event).value)
        if trigger is None or not trigger.enabled:
            return None

        template = self.repo.get_template(tenant_id, trigger.template_id)
        if (
            template is None
            or template.status != TemplateStatus.APPROVED.value
            or not template.provider_template_id
        ):
            logger.warning(
                "Trigger template is not usable",
                extra={"tenant_id": str(tenant_id), "event": event},
            )
            return None

        return template.provider_template_id, resolve_params(trigger.variable_mapping, context)

    def notifications_enabled(self, tenant_id: UUID, event: str) -> bool:
        """Tenant config is enabled and the event's toggle (if any) is on."""
        config = self.repo.get_config(tenant_id)
        if config is None or not config.enabled:
            return False
        toggle = EVENT_TOGGLES.get(parse_event(event))
        return toggle is None or bool(getattr(config, toggle))

    async def fire(
        self,
        dispatcher: MessageDispatcher,
        tenant_id: UUID,
        event: str,
        phone: str,
        context: dict[str, Any],
    ) -> DispatchResult | None:
        """
        Fire a business event.

        Returns:
            DispatchResult, or None when notifications are off or no mapping applies
        """
        if not self.notifications_enabled(tenant_id, event):
            return None

        resolved = self.resolve(tenant_id, event, context)
        if resolved is None:
            return None

        template_id, params = resolved
        kind = EVENT_KINDS.get(parse_event(event), MessageKind.MANUAL)
        return await dispatcher.send_template(tenant_id, phone, template_id, params, kind=kind)
