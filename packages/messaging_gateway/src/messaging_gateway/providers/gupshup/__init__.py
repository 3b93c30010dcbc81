"""Gupshup messaging provider."""

from messaging_gateway.providers.gupshup.client import GupshupMessagingProvider
from messaging_gateway.providers.gupshup.webhook import parse_gupshup_webhook

__all__ = [
    "GupshupMessagingProvider",
    "parse_gupshup_webhook",
]
