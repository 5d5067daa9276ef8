"""
FastAPI dependencies for metered endpoints.
"""

from fastapi import Depends

from packages.auth.dependencies import get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.models.domain.usage import QuotaCheck
from packages.billing.services.quota_service import QuotaGuard


def get_quota_guard() -> QuotaGuard:
    return QuotaGuard()


async def require_api_quota(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    quota_guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaCheck:
    """
    Consume one API call for the caller.

    Raises QuotaExceededError (403) when the plan does not include API access,
    the monthly cap is reached or the subscription is not active.
    """
    return await quota_guard.consume_api_call(current_user.user_id)
