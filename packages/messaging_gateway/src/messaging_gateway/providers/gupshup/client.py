"""
Gupshup Messaging Provider

Production provider for the Gupshup WhatsApp API.

Sends go to the messaging API authenticated with the app's ``apikey``.
Template and profile management go to the partner API, authenticated with
an app token obtained through a partner login; both tokens are kept in an
injected TokenCache.
"""

import json
import logging
from typing import Any

import httpx

from messaging_gateway.persistence.models import ChatContentType
from messaging_gateway.providers.base import (
    MessagingProvider,
    PartnerCredentials,
    ProviderCredentials,
    ProviderError,
    ProviderResponse,
    RemoteTemplate,
    TemplateSubmission,
    WebhookEvent,
    extract_error_message,
)
from messaging_gateway.providers.gupshup.webhook import parse_gupshup_webhook
from messaging_gateway.providers.token_cache import TokenCache

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.gupshup.io"
DEFAULT_PARTNER_BASE_URL = "https://partner.gupshup.io"

SUBMITTED = "submitted"

# Profile fields we expose -> partner API form fields
PROFILE_FIELD_MAP = {
    "address": "addLine1",
    "description": "desc",
    "vertical": "vertical",
    "email": "profileEmail",
}


class GupshupMessagingProvider(MessagingProvider):
    """
    Gupshup provider for WhatsApp Business.

    Uses form-encoded requests to the messaging API and the partner API.
    """

    def __init__(
        self,
        token_cache: TokenCache,
        api_base_url: str = DEFAULT_API_BASE_URL,
        partner_base_url: str = DEFAULT_PARTNER_BASE_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_cache = token_cache
        self.api_base_url = api_base_url.rstrip("/")
        self.partner_base_url = partner_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request and return the decoded body, raising ProviderError on failure."""
        client = await self._get_client()

        try:
            response = await client.request(method, url, headers=headers, data=data)
        except httpx.TimeoutException as e:
            logger.error("Provider request timed out", extra={"url": url})
            raise ProviderError(
                message=f"Provider request timed out: {e}",
                code="TIMEOUT",
                retryable=True,
            )
        except httpx.RequestError as e:
            logger.error("Provider request failed", extra={"url": url, "error": str(e)})
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            )

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"message": response.text}

        if not isinstance(response_data, dict):
            response_data = {"data": response_data}

        if response.status_code >= 400 or response_data.get("status") == "error":
            raise ProviderError(
                message=extract_error_message(response_data, default=f"HTTP {response.status_code}"),
                code=str(response.status_code),
                details=response_data,
                retryable=response.status_code >= 500,
            )

        return response_data

    # =========================================================================
    # Messaging API
    # =========================================================================

    def _send_headers(self, credentials: ProviderCredentials) -> dict[str, str]:
        return {
            "apikey": credentials.api_key,
            "Content-Type": "application/x-www-form-urlencoded",
        }

    async def _submit(
        self,
        url: str,
        credentials: ProviderCredentials,
        form: dict[str, Any],
    ) -> ProviderResponse:
        try:
            response = await self._request("POST", url, self._send_headers(credentials), form)
        except ProviderError as e:
            logger.error(f"Failed to send message: {e}", extra={"code": e.code})
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )

        if response.get("status") != SUBMITTED:
            return ProviderResponse(
                success=False,
                error_code="NOT_SUBMITTED",
                error_message=extract_error_message(response, default=json.dumps(response)),
                raw_response=response,
            )

        return ProviderResponse(
            success=True,
            message_id=response.get("messageId"),
            raw_response=response,
        )

    async def send_template(
        self,
        credentials: ProviderCredentials,
        to: str,
        template_id: str,
        params: list[str],
    ) -> ProviderResponse:
        """Send a template message."""
        form = {
            "channel": "whatsapp",
            "source": credentials.sender_phone,
            "destination": to,
            "src.name": credentials.app_name,
            "template": json.dumps({"id": template_id, "params": params}),
        }
        result = await self._submit(f"{self.api_base_url}/sm/api/v1/template/msg", credentials, form)

        if result.success:
            logger.info(
                "Sent template message via Gupshup",
                extra={"template_id": template_id, "message_id": result.message_id},
            )
        return result

    async def send_session(
        self,
        credentials: ProviderCredentials,
        to: str,
        text: str,
    ) -> ProviderResponse:
        """Send a freeform text message."""
        return await self._send_message(credentials, to, {"type": "text", "text": text})

    async def send_media(
        self,
        credentials: ProviderCredentials,
        to: str,
        content_type: ChatContentType,
        url: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> ProviderResponse:
        """Send a media message by URL."""
        if content_type == ChatContentType.IMAGE:
            message: dict[str, Any] = {"type": "image", "originalUrl": url, "previewUrl": url}
        elif content_type == ChatContentType.DOCUMENT:
            message = {"type": "file", "url": url, "filename": filename or "document"}
        elif content_type in (ChatContentType.VIDEO, ChatContentType.AUDIO, ChatContentType.STICKER):
            message = {"type": content_type.value, "url": url}
        else:
            raise ProviderError(f"Unsupported media type: {content_type.value}", code="UNSUPPORTED_MEDIA")

        if caption and content_type in (ChatContentType.IMAGE, ChatContentType.VIDEO, ChatContentType.DOCUMENT):
            message["caption"] = caption

        return await self._send_message(credentials, to, message)

    async def _send_message(
        self,
        credentials: ProviderCredentials,
        to: str,
        message: dict[str, Any],
    ) -> ProviderResponse:
        form = {
            "channel": "whatsapp",
            "source": credentials.sender_phone,
            "destination": to,
            "src.name": credentials.app_name,
            "message": json.dumps(message),
        }
        result = await self._submit(f"{self.api_base_url}/sm/api/v1/msg", credentials, form)

        if result.success:
            logger.info(
                "Sent session message via Gupshup",
                extra={"type": message.get("type"), "message_id": result.message_id},
            )
        return result

    async def test_connection(self, credentials: ProviderCredentials) -> ProviderResponse:
        """Check the API key with a wallet balance lookup."""
        try:
            response = await self._request(
                "GET",
                f"{self.api_base_url}/sm/api/v1/wallet/balance",
                {"apikey": credentials.api_key},
            )
        except ProviderError as e:
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )
        return ProviderResponse(success=True, raw_response=response)

    # =========================================================================
    # Partner API
    # =========================================================================

    async def _partner_token(self, partner: PartnerCredentials) -> str:
        cache_key = f"partner:{partner.email}"
        token = self.token_cache.get(cache_key)
        if token:
            return token

        response = await self._request(
            "POST",
            f"{self.partner_base_url}/partner/account/login",
            {"Content-Type": "application/x-www-form-urlencoded"},
            {"email": partner.email, "password": partner.password},
        )
        token = response.get("token")
        if not token:
            raise ProviderError("Partner login returned no token", code="AUTH_FAILED", details=response)

        self.token_cache.set(cache_key, token)
        logger.info("Refreshed partner token")
        return token

    async def _app_token(self, partner: PartnerCredentials) -> str:
        cache_key = f"app:{partner.app_id}"
        token = self.token_cache.get(cache_key)
        if token:
            return token

        partner_token = await self._partner_token(partner)
        try:
            response = await self._request(
                "GET",
                f"{self.partner_base_url}/partner/app/{partner.app_id}/token",
                {"Authorization": partner_token},
            )
        except ProviderError as e:
            if e.code == "401":
                self.token_cache.invalidate(f"partner:{partner.email}")
            raise

        token_data = response.get("token")
        token = token_data.get("token") if isinstance(token_data, dict) else token_data
        if not token:
            raise ProviderError("App token request returned no token", code="AUTH_FAILED", details=response)

        self.token_cache.set(cache_key, token)
        return token

    async def _partner_request(
        self,
        partner: PartnerCredentials,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self._app_token(partner)
        url = f"{self.partner_base_url}/partner/app/{partner.app_id}{path}"
        headers = {"Authorization": token}
        if data is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        try:
            return await self._request(method, url, headers, data)
        except ProviderError as e:
            if e.code == "401":
                self.token_cache.invalidate(f"app:{partner.app_id}")
            raise

    async def submit_template(
        self,
        partner: PartnerCredentials,
        submission: TemplateSubmission,
    ) -> ProviderResponse:
        """Register a template for approval."""
        form: dict[str, Any] = {
            "elementName": submission.name,
            "languageCode": submission.language,
            "category": submission.category.upper(),
            "templateType": "TEXT",
            "vertical": submission.name,
            "content": submission.body,
            "example": submission.example,
            "allowTemplateCategoryChange": "false",
        }
        if submission.header:
            form["header"] = submission.header
        if submission.footer:
            form["footer"] = submission.footer
        if submission.buttons:
            form["buttons"] = json.dumps(submission.buttons)

        try:
            response = await self._partner_request(partner, "POST", "/templates", form)
        except ProviderError as e:
            logger.warning(f"Template submission rejected: {e}", extra={"template": submission.name})
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )

        template = response.get("template") or {}
        template_id = template.get("id")
        if not template_id:
            return ProviderResponse(
                success=False,
                error_code="NO_TEMPLATE_ID",
                error_message=extract_error_message(response, default="Provider returned no template id"),
                raw_response=response,
            )

        logger.info(
            "Submitted template to Gupshup",
            extra={"template": submission.name, "provider_template_id": template_id},
        )
        return ProviderResponse(success=True, message_id=template_id, raw_response=response)

    async def list_templates(self, partner: PartnerCredentials) -> list[RemoteTemplate]:
        """Fetch every template registered for the app."""
        response = await self._partner_request(partner, "GET", "/templates")

        templates = []
        for item in response.get("templates") or []:
            if not item.get("id"):
                continue
            templates.append(
                RemoteTemplate(
                    provider_template_id=str(item["id"]),
                    name=item.get("elementName") or "",
                    category=str(item.get("category") or "UTILITY").lower(),
                    language=item.get("languageCode") or "es",
                    body=item.get("data") or "",
                    status=str(item.get("status") or ""),
                )
            )
        return templates

    async def get_business_profile(self, partner: PartnerCredentials) -> dict[str, Any]:
        response = await self._partner_request(partner, "GET", "/business/profile")
        return response.get("profile") or {}

    async def update_business_profile(
        self,
        partner: PartnerCredentials,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Update profile fields.

        Args:
            partner: Partner credentials
            fields: Any of about, address, description, vertical, email, websites

        Returns:
            Profile after the update
        """
        if fields.get("about") is not None:
            await self._partner_request(partner, "PUT", "/business/profile/about", {"about": fields["about"]})

        form: dict[str, Any] = {}
        for key, provider_key in PROFILE_FIELD_MAP.items():
            if fields.get(key) is not None:
                form[provider_key] = fields[key]
        for i, website in enumerate((fields.get("websites") or [])[:2], start=1):
            form[f"website{i}"] = website

        if form:
            await self._partner_request(partner, "PUT", "/business/profile", form)

        return await self.get_business_profile(partner)

    async def update_profile_photo(
        self,
        partner: PartnerCredentials,
        image_url: str,
    ) -> ProviderResponse:
        try:
            response = await self._partner_request(
                partner, "PUT", "/business/profile/photo", {"image_url": image_url}
            )
        except ProviderError as e:
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )
        return ProviderResponse(success=True, raw_response=response)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        return parse_gupshup_webhook(payload)
