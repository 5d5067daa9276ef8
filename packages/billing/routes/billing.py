"""
Billing API routes.

Protected endpoints acting on the caller's own subscription.
"""

from fastapi import APIRouter, Depends, Query

from packages.auth.dependencies import get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.models.domain.enums import BillingCycle, SubscriptionStatus
from packages.billing.models.schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckoutResponse,
    PlanResponse,
    PortalResponse,
    QuotaCheckResponse,
    QuotaStatusResponse,
    SubscriptionResponse,
    UsageResponse,
)
from packages.billing.providers.payment.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from packages.billing.services.quota_service import (
    QuotaGuard,
    evaluate_api,
    evaluate_channel,
    evaluate_episode,
)
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.subscription_state_machine import (
    SubscriptionStateMachine,
)

router = APIRouter()


# ============================================================================
# Subscription Status
# ============================================================================


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Get the caller's subscription, plan limits and cycle usage.

    Users without a subscription are reported on the free plan; nothing is
    written for them.
    """
    summary = await SubscriptionService(registry).get_summary(current_user.user_id)
    subscription = summary.subscription

    if subscription is None:
        return SubscriptionResponse(
            status=SubscriptionStatus.ACTIVE,
            has_access=True,
            billing_cycle=BillingCycle.MONTHLY,
            plan=PlanResponse.from_plan(summary.plan),
            usage=UsageResponse(**summary.usage.model_dump()),
        )

    return SubscriptionResponse(
        status=subscription.status,
        has_access=subscription.has_access(),
        billing_cycle=subscription.billing_cycle,
        gateway=subscription.gateway,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        trial_ends_at=subscription.trial_ends_at,
        canceled_at=subscription.canceled_at,
        plan=PlanResponse.from_plan(summary.plan),
        usage=UsageResponse(**summary.usage.model_dump()),
    )


@router.get("/quota", response_model=QuotaStatusResponse)
async def get_quota_status(
    channel_count: int = Query(0, ge=0, description="Channels the caller owns"),
    current_user: AuthenticatedUser = Depends(get_current_active_user),
):
    """Pre-flight channel, episode and API checks. Nothing is consumed."""
    subscription, plan = await QuotaGuard().load(current_user.user_id)

    return QuotaStatusResponse(
        channel=QuotaCheckResponse.from_check(
            evaluate_channel(subscription, plan, channel_count)
        ),
        episode=QuotaCheckResponse.from_check(evaluate_episode(subscription, plan)),
        api=QuotaCheckResponse.from_check(evaluate_api(subscription, plan)),
    )


# ============================================================================
# Checkout & Portal
# ============================================================================


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Start a hosted checkout for a paid plan.

    A trial is added automatically for first-time subscribers.
    """
    result = await SubscriptionService(registry).create_checkout(
        user_id=current_user.user_id,
        user_email=current_user.email,
        plan_id=request.plan_id,
        billing_cycle=request.billing_cycle,
        gateway=request.gateway,
    )
    return CheckoutResponse(checkout_url=result.url, session_id=result.session_id)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Open the provider's billing portal for the caller's billing account."""
    url = await SubscriptionService(registry).create_portal(current_user.user_id)
    return PortalResponse(url=url)


# ============================================================================
# Cancellation
# ============================================================================


@router.post("/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Cancel the caller's subscription.

    The provider stops renewing and the row is marked canceled at once, so
    quota checks fail from now on. Plan and billed period are kept on the row
    until the provider reports the subscription deleted.
    """
    canceled = await SubscriptionStateMachine().cancel(current_user.user_id, registry)

    return CancelSubscriptionResponse(
        status=canceled.status,
        canceled_at=canceled.canceled_at,
        current_period_end=canceled.current_period_end,
    )
