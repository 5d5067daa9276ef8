"""
Billing error taxonomy.

Every failure leaving the billing package is one of these kinds, each with a
stable code the API boundary returns as ``{"error": ..., "code": ...}``.
"""

from typing import Any, Dict, Optional

from common.core.exceptions import AppException


class BillingError(AppException):
    """Base class for billing failures."""

    code = "BILLING_ERROR"
    status_code = 400


class ConfigurationError(BillingError):
    """Provider credentials missing/invalid or the gateway is disabled."""

    code = "CONFIGURATION_ERROR"
    status_code = 400


class VerificationError(BillingError):
    """Webhook signature missing or invalid."""

    code = "VERIFICATION_FAILED"
    status_code = 400


class NotFoundError(BillingError):
    code = "NOT_FOUND"
    status_code = 404


class StateConflictError(BillingError):
    """Requested transition is not valid from the current state."""

    code = "STATE_CONFLICT"
    status_code = 409


class TransientProviderError(BillingError):
    """Provider unreachable, timed out or failed on its side. Retryable."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 503

    def __init__(
        self,
        message: str = "Payment provider is temporarily unavailable. Please try again.",
        code: Optional[str] = None,
    ):
        super().__init__(message, code)


class QuotaExceededError(BillingError):
    """A plan limit blocks the operation."""

    code = "LIMIT_EXCEEDED"
    status_code = 403

    def __init__(
        self,
        message: str,
        limit: Optional[int] = None,
        usage: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, code)
        self.limit = limit
        self.usage = usage

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.limit is not None:
            body["limit"] = self.limit
        if self.usage is not None:
            body["usage"] = self.usage
        return body


class FeatureNotIncludedError(QuotaExceededError):
    code = "NOT_INCLUDED_IN_PLAN"


class SubscriptionInactiveError(QuotaExceededError):
    code = "SUBSCRIPTION_INACTIVE"
