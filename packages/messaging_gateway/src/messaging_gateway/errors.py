"""
Gateway Errors

Every error carries a machine-readable ``code`` so API clients can branch on it.
"""

from typing import Any


class GatewayError(Exception):
    """Base error for the messaging gateway."""

    default_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ConfigurationError(GatewayError):
    """Global provider credentials absent or messaging disabled."""

    default_code = "PROVIDER_NOT_CONFIGURED"


class EntitlementError(GatewayError):
    """Tenant is not entitled to use the gateway."""

    ADDON_REQUIRED = "ADDON_REQUIRED"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"

    default_code = ADDON_REQUIRED


class QuotaError(GatewayError):
    """No usable message allowance."""

    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"
    PACKAGE_EXPIRED = "PACKAGE_EXPIRED"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    ACTIVE_SUBSCRIPTION_EXISTS = "ACTIVE_SUBSCRIPTION_EXISTS"

    default_code = NO_SUBSCRIPTION


class EncryptionError(GatewayError):
    """Bad master secret or corrupted ciphertext."""

    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    MISSING_MASTER_SECRET = "MISSING_MASTER_SECRET"

    default_code = DECRYPTION_FAILED


class ValidationError(GatewayError):
    """Request violates a domain rule."""

    default_code = "VALIDATION_ERROR"


class NotFoundError(GatewayError):
    """Entity does not exist or belongs to another tenant."""

    default_code = "NOT_FOUND"
