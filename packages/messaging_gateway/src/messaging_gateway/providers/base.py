"""
Messaging Provider Base

Abstract interface for conversational-messaging providers.
Implementations: Gupshup (production), Stub (development and tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from messaging_gateway.errors import GatewayError
from messaging_gateway.persistence.models import ChatContentType, MessageStatus


class ProviderError(GatewayError):
    """Error from the messaging provider."""

    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, code=code, details=details)
        self.retryable = retryable


@dataclass
class ProviderCredentials:
    """Resolved credentials for sending on behalf of a tenant."""

    api_key: str
    app_name: str
    sender_phone: str


@dataclass
class PartnerCredentials:
    """Credentials for privileged app management (templates, profile)."""

    app_id: str
    email: str
    password: str


@dataclass
class ProviderResponse:
    """
    Response from provider after a send or management call.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TemplateSubmission:
    """Content sent to the provider when registering a template."""

    name: str
    category: str
    language: str
    body: str
    example: str
    header: str | None = None
    footer: str | None = None
    buttons: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class RemoteTemplate:
    """A template as the provider reports it."""

    provider_template_id: str
    name: str
    category: str
    language: str
    body: str
    status: str  # provider status, e.g. APPROVED

    @property
    def is_approved(self) -> bool:
        return self.status.upper() == "APPROVED"


# =============================================================================
# Webhook events
# =============================================================================


@dataclass
class DeliveryStatusEvent:
    """
    Delivery-status callback for a message we sent.
    """

    provider_message_id: str
    status: MessageStatus
    provider_event: str
    recipient_phone: str | None = None
    error_message: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class InboundMessageEvent:
    """
    Parsed inbound customer message.

    Provider-agnostic representation of an incoming message.
    """

    provider_message_id: str
    from_phone: str
    content_type: ChatContentType
    timestamp: datetime
    app_name: str | None = None
    destination_phone: str | None = None
    sender_name: str | None = None
    text: str | None = None
    media_url: str | None = None
    media_mime_type: str | None = None
    media_filename: str | None = None
    caption: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    contact: dict[str, Any] | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class UnknownWebhookEvent:
    """Anything else the provider posts; acknowledged and ignored."""

    event_type: str | None
    raw_payload: dict[str, Any] = field(default_factory=dict)


WebhookEvent = Union[DeliveryStatusEvent, InboundMessageEvent, UnknownWebhookEvent]


class MessagingProvider(ABC):
    """
    Abstract interface for messaging providers.

    Implementations must handle:
    - Template and session (freeform) sends
    - Template registration and listing
    - Business profile management
    - Webhook payload parsing
    """

    @abstractmethod
    async def send_template(
        self,
        credentials: ProviderCredentials,
        to: str,
        template_id: str,
        params: list[str],
    ) -> ProviderResponse:
        """
        Send a pre-approved template message.

        Args:
            credentials: Tenant send credentials
            to: Recipient phone number (digits)
            template_id: Provider template ID
            params: Ordered template parameters

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    async def send_session(
        self,
        credentials: ProviderCredentials,
        to: str,
        text: str,
    ) -> ProviderResponse:
        """
        Send a freeform text message inside the reply window.

        Args:
            credentials: Tenant send credentials
            to: Recipient phone number (digits)
            text: Message text

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    async def send_media(
        self,
        credentials: ProviderCredentials,
        to: str,
        content_type: ChatContentType,
        url: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> ProviderResponse:
        """
        Send a media message (image, video, audio, document) by URL.
        """
        ...

    @abstractmethod
    async def test_connection(self, credentials: ProviderCredentials) -> ProviderResponse:
        """Check that the API key is accepted by the provider."""
        ...

    @abstractmethod
    async def submit_template(
        self,
        partner: PartnerCredentials,
        submission: TemplateSubmission,
    ) -> ProviderResponse:
        """
        Register a template for approval.

        Returns:
            ProviderResponse whose message_id is the provider template ID
        """
        ...

    @abstractmethod
    async def list_templates(self, partner: PartnerCredentials) -> list[RemoteTemplate]:
        """Fetch every template registered for the app."""
        ...

    @abstractmethod
    async def get_business_profile(self, partner: PartnerCredentials) -> dict[str, Any]:
        """Fetch the business profile."""
        ...

    @abstractmethod
    async def update_business_profile(
        self,
        partner: PartnerCredentials,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Update profile fields and return the resulting profile."""
        ...

    @abstractmethod
    async def update_profile_photo(
        self,
        partner: PartnerCredentials,
        image_url: str,
    ) -> ProviderResponse:
        """Replace the profile photo with the image at image_url."""
        ...

    @abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        """
        Classify a webhook payload.

        Args:
            payload: Parsed JSON webhook payload

        Returns:
            One WebhookEvent variant; never raises on unknown shapes
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None


def extract_error_message(data: Any, default: str = "Unknown provider error") -> str:
    """
    Best-effort error text from the provider's assorted error shapes.

    Handles ``{"message": ...}``, ``{"error": "..."}``,
    ``{"error": {"message": ...}}``, ``{"response": {"details": ...}}`` and
    ``{"errors": [{"message": ...}]}``.
    """
    if isinstance(data, str):
        return data or default
    if not isinstance(data, dict):
        return default

    message = data.get("message")
    if isinstance(message, str) and message:
        return message
    if isinstance(message, dict):
        return extract_error_message(message, default)

    error = data.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        return extract_error_message(error, default)

    response = data.get("response")
    if isinstance(response, dict):
        details = response.get("details") or response.get("message")
        if isinstance(details, str) and details:
            return details

    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        return extract_error_message(errors[0], default)

    reason = data.get("reason")
    if isinstance(reason, str) and reason:
        return reason

    return default
