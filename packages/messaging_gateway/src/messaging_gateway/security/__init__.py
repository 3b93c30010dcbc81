"""Secret storage for provider credentials."""

from messaging_gateway.security.vault import CredentialVault

__all__ = ["CredentialVault"]
