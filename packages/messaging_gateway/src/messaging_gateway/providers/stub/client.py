"""
Stub Messaging Provider

Development provider that records all operations without making real API calls.
Useful for local development and testing.
"""

import logging
from typing import Any
from uuid import uuid4

from messaging_gateway.persistence.models import ChatContentType
from messaging_gateway.providers.base import (
    MessagingProvider,
    PartnerCredentials,
    ProviderCredentials,
    ProviderResponse,
    RemoteTemplate,
    TemplateSubmission,
    WebhookEvent,
)
from messaging_gateway.providers.gupshup.webhook import parse_gupshup_webhook

logger = logging.getLogger(__name__)


class StubMessagingProvider(MessagingProvider):
    """
    Stub provider for development and testing.

    - Records every outbound message in ``sent_messages``
    - Generates fake message IDs
    - ``fail_sends`` / ``fail_submissions`` simulate provider rejections
    - ``remote_templates`` is what ``list_templates`` returns
    - Parses webhooks in the Gupshup shape
    """

    def __init__(
        self,
        fail_sends: bool = False,
        fail_submissions: bool = False,
        failure_message: str = "Simulated failure for testing",
    ):
        self.fail_sends = fail_sends
        self.fail_submissions = fail_submissions
        self.failure_message = failure_message
        self.sent_messages: list[dict[str, Any]] = []
        self.submitted_templates: list[TemplateSubmission] = []
        self.remote_templates: list[RemoteTemplate] = []
        self.profile: dict[str, Any] = {}

    def _record(self, message_type: str, to: str, **data: Any) -> ProviderResponse:
        if self.fail_sends:
            logger.info("[STUB] Simulating send failure", extra={"type": message_type})
            return ProviderResponse(
                success=False,
                error_code="STUB_SIMULATED_FAILURE",
                error_message=self.failure_message,
            )

        message_id = f"stub_{message_type}_{uuid4().hex[:16]}"
        self.sent_messages.append({"type": message_type, "to": to, "message_id": message_id, **data})

        logger.info("[STUB] Sending message", extra={"type": message_type, "message_id": message_id})

        return ProviderResponse(
            success=True,
            message_id=message_id,
            raw_response={"status": "submitted", "messageId": message_id},
        )

    async def send_template(
        self,
        credentials: ProviderCredentials,
        to: str,
        template_id: str,
        params: list[str],
    ) -> ProviderResponse:
        return self._record("template", to, template_id=template_id, params=list(params))

    async def send_session(
        self,
        credentials: ProviderCredentials,
        to: str,
        text: str,
    ) -> ProviderResponse:
        return self._record("text", to, text=text)

    async def send_media(
        self,
        credentials: ProviderCredentials,
        to: str,
        content_type: ChatContentType,
        url: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> ProviderResponse:
        return self._record(content_type.value, to, url=url, caption=caption, filename=filename)

    async def test_connection(self, credentials: ProviderCredentials) -> ProviderResponse:
        return ProviderResponse(success=True, raw_response={"balance": 0, "stub": True})

    async def submit_template(
        self,
        partner: PartnerCredentials,
        submission: TemplateSubmission,
    ) -> ProviderResponse:
        self.submitted_templates.append(submission)

        if self.fail_submissions:
            return ProviderResponse(
                success=False,
                error_code="STUB_REJECTED",
                error_message=self.failure_message,
            )

        return ProviderResponse(success=True, message_id=f"stub_tpl_{uuid4().hex[:12]}")

    async def list_templates(self, partner: PartnerCredentials) -> list[RemoteTemplate]:
        return list(self.remote_templates)

    async def get_business_profile(self, partner: PartnerCredentials) -> dict[str, Any]:
        return dict(self.profile)

    async def update_business_profile(
        self,
        partner: PartnerCredentials,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        self.profile.update({k: v for k, v in fields.items() if v is not None})
        return dict(self.profile)

    async def update_profile_photo(
        self,
        partner: PartnerCredentials,
        image_url: str,
    ) -> ProviderResponse:
        self.profile["photo_url"] = image_url
        return ProviderResponse(success=True)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        return parse_gupshup_webhook(payload)
