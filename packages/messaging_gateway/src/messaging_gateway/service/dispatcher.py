"""
Message Dispatcher

Sends a single outbound message through the provider.

Protocol per send:
1. Entitlement check
2. Quota validation
3. Credential resolution
4. Insert a ``queued`` MessageLog row
5. Call the provider
6. Success: mark ``sent``, store provider id, deduct quota, reset error counter
7. Failure: mark ``failed``, store error text, increment error counter

No automatic retry. Gating failures write no log row. Nothing raises past
this boundary; callers get a DispatchResult.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import GatewayError
from messaging_gateway.persistence.models import (
    ChatContentType,
    MessageDirection,
    MessageKind,
    MessageLog,
    MessageStatus,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.phone import normalize_phone
from messaging_gateway.providers.base import (
    MessagingProvider,
    ProviderCredentials,
    ProviderError,
    ProviderResponse,
)
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.entitlement import EntitlementGate
from messaging_gateway.service.quota import QuotaLedger

logger = logging.getLogger(__name__)

SendCall = Callable[[ProviderCredentials], Awaitable[ProviderResponse]]


@dataclass
class DispatchResult:
    """Outcome of one send attempt."""

    success: bool
    message_id: str | None = None
    log_id: UUID | None = None
    error: str | None = None
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "log_id": str(self.log_id) if self.log_id else None,
            "error": self.error,
            "code": self.code,
        }


class MessageDispatcher:
    """
    Gated, logged, quota-accounted sends.

    Responsibilities:
    - Gate on entitlement and quota
    - Keep exactly one MessageLog row per attempt
    - Track the tenant's rolling error counter
    """

    def __init__(
        self,
        db: Session,
        provider: MessagingProvider,
        vault: CredentialVault,
        entitlement: EntitlementGate | None = None,
        quota: QuotaLedger | None = None,
        credentials: CredentialStore | None = None,
    ):
        self.db = db
        self.provider = provider
        self.repo = GatewayRepository(db)
        self.entitlement = entitlement or EntitlementGate(db)
        self.quota = quota or QuotaLedger(db)
        self.credentials = credentials or CredentialStore(db, vault)

    async def send_template(
        self,
        tenant_id: UUID,
        phone: str,
        template_id: str,
        params: list[str],
        kind: MessageKind = MessageKind.MANUAL,
    ) -> DispatchResult:
        """
        Send a pre-approved template.

        Args:
            tenant_id: Tenant ID
            phone: Recipient phone
            template_id: Provider template ID
            params: Ordered template parameters
            kind: Business purpose recorded on the log row

        Returns:
            DispatchResult
        """
        to = normalize_phone(phone)
        return await self._dispatch(
            tenant_id=tenant_id,
            phone=to,
            kind=kind,
            template_id=template_id,
            body=None,
            call=lambda creds: self.provider.send_template(creds, to, template_id, list(params)),
        )

    async def send_session(
        self,
        tenant_id: UUID,
        phone: str,
        text: str,
        kind: MessageKind = MessageKind.MANUAL,
    ) -> DispatchResult:
        """Send freeform text (only valid inside the provider's reply window)."""
        to = normalize_phone(phone)
        return await self._dispatch(
            tenant_id=tenant_id,
            phone=to,
            kind=kind,
            template_id=None,
            body=text,
            call=lambda creds: self.provider.send_session(creds, to, text),
        )

    async def send_media(
        self,
        tenant_id: UUID,
        phone: str,
        content_type: ChatContentType,
        url: str,
        caption: str | None = None,
        filename: str | None = None,
        kind: MessageKind = MessageKind.CHAT,
    ) -> DispatchResult:
        """Send a media attachment by URL."""
        to = normalize_phone(phone)
        return await self._dispatch(
            tenant_id=tenant_id,
            phone=to,
            kind=kind,
            template_id=None,
            body=caption or url,
            call=lambda creds: self.provider.send_media(creds, to, content_type, url, caption, filename),
        )

    async def _dispatch(
        self,
        tenant_id: UUID,
        phone: str,
        kind: MessageKind,
        template_id: str | None,
        body: str | None,
        call: SendCall,
    ) -> DispatchResult:
        log_extra = {"tenant_id": str(tenant_id), "kind": kind.value}

        if not phone:
            return DispatchResult(success=False, error="Recipient phone is required", code="VALIDATION_ERROR")

        # 1-3. Gates
        decision = self.entitlement.check_access(tenant_id)
        if not decision.allowed:
            logger.info("Send denied by entitlement", extra={**log_extra, "code": decision.code})
            return DispatchResult(success=False, error="Messaging addon is not available", code=decision.code)

        quota = self.quota.validate_quota(tenant_id)
        if not quota.allowed:
            logger.info("Send denied by quota", extra={**log_extra, "code": quota.code})
            return DispatchResult(success=False, error=quota.error, code=quota.code)

        try:
            credentials = self.credentials.resolve_for_tenant(tenant_id)
        except GatewayError as e:
            logger.warning(f"Send denied: {e.message}", extra={**log_extra, "code": e.code})
            return DispatchResult(success=False, error=e.message, code=e.code)

        # 4. Log row
        log = self.repo.create_message_log(
            tenant_id=tenant_id,
            direction=MessageDirection.OUTBOUND.value,
            phone=phone,
            message_kind=kind.value,
            template_id=template_id,
            body=body,
            status=MessageStatus.QUEUED.value,
        )
        self.db.commit()

        # 5. Provider call
        try:
            response = await call(credentials)
        except ProviderError as e:
            response = ProviderResponse(success=False, error_code=e.code, error_message=e.message)
        except Exception as e:
            logger.exception("Provider call raised", extra={**log_extra, "log_id": str(log.id)})
            response = ProviderResponse(success=False, error_code="PROVIDER_EXCEPTION", error_message=str(e))

        # 6/7. Outcome
        if response.success:
            return self._record_success(tenant_id, log, response)
        return self._record_failure(tenant_id, log, response)

    def _record_success(self, tenant_id: UUID, log: MessageLog, response: ProviderResponse) -> DispatchResult:
        log.status = MessageStatus.SENT.value
        log.provider_message_id = response.message_id
        log.updated_at = utcnow()
        self.db.commit()

        if not self.quota.deduct_message(tenant_id):
            # Provider already accepted; a concurrent send consumed the last message
            logger.warning(
                "Message sent without quota remaining",
                extra={"tenant_id": str(tenant_id), "log_id": str(log.id)},
            )

        self.repo.reset_error_count(tenant_id)
        self.db.commit()

        logger.info(
            "Message sent",
            extra={"tenant_id": str(tenant_id), "log_id": str(log.id), "message_id": response.message_id},
        )
        return DispatchResult(success=True, message_id=response.message_id, log_id=log.id)

    def _record_failure(self, tenant_id: UUID, log: MessageLog, response: ProviderResponse) -> DispatchResult:
        error = response.error_message or "Provider rejected the message"

        log.status = MessageStatus.FAILED.value
        log.error_message = error
        log.updated_at = utcnow()
        self.repo.increment_error_count(tenant_id, error)
        self.db.commit()

        logger.warning(
            "Message send failed",
            extra={"tenant_id": str(tenant_id), "log_id": str(log.id), "error_code": response.error_code},
        )
        return DispatchResult(success=False, log_id=log.id, error=error, code=ProviderError.default_code)
