"""
Messaging Providers

Provider implementations for conversational-messaging APIs.
Supports Gupshup (production) and Stub (development).
"""

from messaging_gateway.providers.base import (
    MessagingProvider,
    PartnerCredentials,
    ProviderCredentials,
    ProviderError,
    ProviderResponse,
)
from messaging_gateway.providers.gupshup import GupshupMessagingProvider
from messaging_gateway.providers.stub import StubMessagingProvider
from messaging_gateway.providers.token_cache import TokenCache


def get_provider(settings=None, token_cache: TokenCache | None = None) -> MessagingProvider:
    """
    Build the configured provider.

    Uses MESSAGING_PROVIDER from settings (``gupshup`` or ``stub``).
    """
    if settings is None:
        from basecore.settings import get_settings

        settings = get_settings()

    if settings.MESSAGING_PROVIDER == "gupshup":
        return GupshupMessagingProvider(
            token_cache=token_cache or TokenCache(settings.PARTNER_TOKEN_TTL_SECONDS),
            api_base_url=settings.GUPSHUP_API_BASE_URL,
            partner_base_url=settings.GUPSHUP_PARTNER_BASE_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    return StubMessagingProvider()


__all__ = [
    "MessagingProvider",
    "PartnerCredentials",
    "ProviderCredentials",
    "ProviderError",
    "ProviderResponse",
    "GupshupMessagingProvider",
    "StubMessagingProvider",
    "TokenCache",
    "get_provider",
]
