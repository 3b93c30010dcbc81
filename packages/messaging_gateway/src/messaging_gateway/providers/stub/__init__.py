"""Stub messaging provider."""

from messaging_gateway.providers.stub.client import StubMessagingProvider

__all__ = ["StubMessagingProvider"]
