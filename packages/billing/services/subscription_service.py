"""
Service for the caller-facing subscription flows: checkout, portal, status.
"""

from typing import Optional

from pydantic import BaseModel

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import (
    ConfigurationError,
    NotFoundError,
    StateConflictError,
)
from packages.billing.models.domain.enums import (
    BillingCycle,
    PaymentGateway,
    SubscriptionStatus,
)
from packages.billing.models.domain.events import CheckoutResult
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.usage import UsageSnapshot
from packages.billing.providers.payment.registry import GatewayRegistry
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.usage_service import UsageMeter

logger = get_logger(__name__)


class SubscriptionSummary(BaseModel):
    # None for users still on the implicit free tier
    subscription: Optional[Subscription] = None
    plan: Plan
    usage: UsageSnapshot


def success_url(gateway: PaymentGateway) -> str:
    base = f"{settings.app_base_url}/dashboard/billing?success=true"
    if gateway == PaymentGateway.STRIPE:
        # Stripe substitutes the session id into this template
        return f"{base}&session_id={{CHECKOUT_SESSION_ID}}"
    return base


def cancel_url() -> str:
    return f"{settings.app_base_url}/pricing?canceled=true"


def portal_return_url() -> str:
    return f"{settings.app_base_url}/dashboard/billing"


def trial_days_for(existing: Optional[Subscription], plan: Plan) -> int:
    """Trials go to new (or expired) users buying a paid plan, once."""
    if not plan.is_paid:
        return 0
    if existing is None:
        return settings.trial_days
    if existing.status != SubscriptionStatus.EXPIRED:
        return 0
    if existing.trial_consumed_at is not None:
        return 0
    return settings.trial_days


class SubscriptionService:
    """Checkout, billing portal and subscription summary for the current user."""

    def __init__(
        self,
        registry: GatewayRegistry,
        subscription_repo: Optional[SubscriptionRepository] = None,
        plan_repo: Optional[PlanRepository] = None,
        usage_meter: Optional[UsageMeter] = None,
    ):
        self.registry = registry
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.plan_repo = plan_repo or PlanRepository()
        self.usage_meter = usage_meter or UsageMeter(self.subscription_repo)

    @trace_span
    async def create_checkout(
        self,
        user_id: str,
        user_email: Optional[str],
        plan_id: int,
        billing_cycle: BillingCycle,
        gateway: PaymentGateway,
    ) -> CheckoutResult:
        plan = await self.plan_repo.get(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found")
        if not plan.is_active:
            raise StateConflictError(f"Plan {plan.name} is no longer available")
        if not plan.is_paid:
            raise StateConflictError("The free plan does not require checkout")
        if not plan.price_reference(gateway, billing_cycle):
            raise ConfigurationError(
                f"{plan.name} is not available with {gateway.value} "
                f"({billing_cycle.value} billing)"
            )

        existing = await self.subscription_repo.get_by_user_id(user_id)
        trial_days = trial_days_for(existing, plan)

        customer_id = None
        if existing and existing.gateway == gateway == PaymentGateway.STRIPE:
            customer_id = existing.customer_id

        adapter = await self.registry.resolve(gateway)
        try:
            result = await adapter.create_checkout(
                plan=plan,
                user_id=user_id,
                user_email=user_email,
                billing_cycle=billing_cycle,
                success_url=success_url(gateway),
                cancel_url=cancel_url(),
                trial_days=trial_days,
                customer_id=customer_id,
            )
        finally:
            await adapter.aclose()

        logger.info(
            f"Checkout started for plan {plan.slug}",
            extra={
                "user_id": user_id,
                "provider": gateway.value,
                "billing_cycle": billing_cycle.value,
                "trial_days": trial_days,
                "session_id": result.session_id,
            },
        )
        return result

    @trace_span
    async def create_portal(self, user_id: str) -> str:
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if subscription is None or not subscription.gateway or not subscription.customer_id:
            raise NotFoundError("No billing account found")

        adapter = await self.registry.resolve(subscription.gateway)
        try:
            return await adapter.create_portal(
                subscription.customer_id, portal_return_url()
            )
        finally:
            await adapter.aclose()

    @trace_span
    async def get_summary(self, user_id: str) -> SubscriptionSummary:
        """
        Read-only view of the caller's subscription. Users without a row are
        reported on the free plan and no row is created.
        """
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            free_plan = await self.plan_repo.get_free_plan()
            if free_plan is None:
                raise NotFoundError("Free plan is not configured")
            return SubscriptionSummary(plan=free_plan, usage=UsageSnapshot())

        subscription = await self.usage_meter.refresh(subscription)
        plan = await self.plan_repo.get(subscription.plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {subscription.plan_id} not found")
        return SubscriptionSummary(
            subscription=subscription,
            plan=plan,
            usage=UsageSnapshot(
                api_calls_used=subscription.api_calls_used,
                episodes_created=subscription.episodes_created,
                usage_reset_at=subscription.usage_reset_at,
            ),
        )
