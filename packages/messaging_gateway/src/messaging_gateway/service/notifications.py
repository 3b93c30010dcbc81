"""
Business Notifications

Entry points the rest of the application calls after business events.

A bound trigger template is preferred; without one, a plain session text
is sent. Notifications never raise into the caller (a failed receipt must
not fail the sale).
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import GatewayError
from messaging_gateway.persistence.models import MessageKind, TriggerEvent
from messaging_gateway.service.dispatcher import DispatchResult, MessageDispatcher
from messaging_gateway.service.triggers import TriggerMap

logger = logging.getLogger(__name__)


def format_amount(total: Any, currency: str = "COP") -> str:
    """Whole-unit amount with thousands separators (``$125.000 COP``)."""
    try:
        value = Decimal(str(total))
    except (InvalidOperation, ValueError):
        return f"{total} {currency}"
    return f"${int(value.quantize(Decimal('1'))):,}".replace(",", ".") + f" {currency}"


class BusinessNotifier:
    """Receipt and stock alert notifications."""

    def __init__(self, db: Session, dispatcher: MessageDispatcher, triggers: TriggerMap | None = None):
        self.db = db
        self.dispatcher = dispatcher
        self.triggers = triggers or TriggerMap(db)

    async def _notify(
        self,
        tenant_id: UUID,
        event: TriggerEvent,
        phone: str,
        context: dict[str, Any],
        fallback_text: str,
        kind: MessageKind,
    ) -> DispatchResult | None:
        try:
            if not self.dispatcher.entitlement.check_access(tenant_id).allowed:
                return None
            if not self.triggers.notifications_enabled(tenant_id, event.value):
                return None

            result = await self.triggers.fire(self.dispatcher, tenant_id, event.value, phone, context)
            if result is not None:
                return result

            return await self.dispatcher.send_session(tenant_id, phone, fallback_text, kind=kind)
        except GatewayError as e:
            logger.error(
                f"Notification failed: {e.message}",
                extra={"tenant_id": str(tenant_id), "event": event.value, "code": e.code},
            )
            return None

    async def send_receipt(
        self,
        tenant_id: UUID,
        customer_phone: str,
        order_number: str,
        total: Any,
        company_name: str,
        currency: str = "COP",
        customer_name: str | None = None,
    ) -> DispatchResult | None:
        """Notify a customer of a completed sale."""
        formatted_total = format_amount(total, currency)
        text = (
            f"{company_name} - Recibo de compra\n\n"
            f"Orden: #{order_number}\n"
            f"Total: {formatted_total}\n\n"
            f"Gracias por su compra."
        )
        context = {
            "order_number": order_number,
            "total": formatted_total,
            "company_name": company_name,
            "customer_name": customer_name or "",
            "currency": currency,
        }
        return await self._notify(
            tenant_id, TriggerEvent.SALE_COMPLETED, customer_phone, context, text, MessageKind.RECEIPT
        )

    async def send_low_stock(
        self,
        tenant_id: UUID,
        owner_phone: str,
        product_name: str,
        current_stock: int,
        threshold: int,
        sku: str | None = None,
    ) -> DispatchResult | None:
        """Alert the store owner that a product is under its stock threshold."""
        text = f"ALERTA: Stock bajo\n\nProducto: {product_name}"
        if sku:
            text += f"\nSKU: {sku}"
        text += f"\nStock actual: {current_stock}\nMinimo: {threshold}"
        text += "\n\nPor favor reponga inventario."

        context = {
            "product_name": product_name,
            "sku": sku or "",
            "current_stock": current_stock,
            "threshold": threshold,
        }
        return await self._notify(
            tenant_id, TriggerEvent.LOW_STOCK_ALERT, owner_phone, context, text, MessageKind.ALERT
        )
