"""
Quota checks for metered operations.

Checks are pure functions over a (subscription, plan) pair and return a
QuotaCheck; the consume_* methods turn a denial into a QuotaExceededError
and otherwise increment the counter atomically.
"""

from typing import Dict, Optional, Tuple, Type

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import (
    FeatureNotIncludedError,
    NotFoundError,
    QuotaExceededError,
    SubscriptionInactiveError,
)
from packages.billing.models.domain.enums import PlanFeature, QuotaKind, UNLIMITED
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
)
from packages.billing.models.domain.usage import QuotaCheck
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.usage_service import UsageMeter

logger = get_logger(__name__)

QUOTA_ERRORS: Dict[str, Type[QuotaExceededError]] = {
    QuotaExceededError.code: QuotaExceededError,
    FeatureNotIncludedError.code: FeatureNotIncludedError,
    SubscriptionInactiveError.code: SubscriptionInactiveError,
}


def _inactive(kind: QuotaKind) -> QuotaCheck:
    return QuotaCheck(
        kind=kind,
        allowed=False,
        error="Subscription is not active",
        code=SubscriptionInactiveError.code,
    )


def evaluate_channel(
    subscription: Subscription, plan: Plan, channel_count: int
) -> QuotaCheck:
    if not subscription.has_access():
        return _inactive(QuotaKind.CHANNEL)

    limit = plan.max_channels
    if limit == UNLIMITED or channel_count < limit:
        return QuotaCheck.allow(QuotaKind.CHANNEL, limit, channel_count)
    return QuotaCheck(
        kind=QuotaKind.CHANNEL,
        allowed=False,
        error=(
            f"Channel limit reached ({channel_count}/{limit}). "
            "Upgrade your plan for more channels."
        ),
        code=QuotaExceededError.code,
        limit=limit,
        usage=channel_count,
    )


def evaluate_episode(subscription: Subscription, plan: Plan) -> QuotaCheck:
    if not subscription.has_access():
        return _inactive(QuotaKind.EPISODE)

    limit = plan.max_episodes_per_month
    used = subscription.episodes_created
    if limit == UNLIMITED or used < limit:
        return QuotaCheck.allow(QuotaKind.EPISODE, limit, used)
    return QuotaCheck(
        kind=QuotaKind.EPISODE,
        allowed=False,
        error=(
            f"Monthly episode limit reached ({used}/{limit}). "
            "Upgrade your plan or wait until next billing cycle."
        ),
        code=QuotaExceededError.code,
        limit=limit,
        usage=used,
    )


def evaluate_api(subscription: Subscription, plan: Plan) -> QuotaCheck:
    if not subscription.has_access():
        return _inactive(QuotaKind.API)

    limit = plan.max_api_calls
    used = subscription.api_calls_used
    if limit == UNLIMITED:
        return QuotaCheck.allow(QuotaKind.API, limit, used)
    if limit == 0:
        # 0 means not included, never unlimited
        return QuotaCheck(
            kind=QuotaKind.API,
            allowed=False,
            error="API access is not included in your plan. Upgrade to Starter or higher.",
            code=FeatureNotIncludedError.code,
            limit=0,
            usage=used,
        )
    if used < limit:
        return QuotaCheck.allow(QuotaKind.API, limit, used)
    return QuotaCheck(
        kind=QuotaKind.API,
        allowed=False,
        error=(
            f"Monthly API limit reached ({used}/{limit}). "
            "Upgrade your plan or wait until next billing cycle."
        ),
        code=QuotaExceededError.code,
        limit=limit,
        usage=used,
    )


def raise_for_check(check: QuotaCheck) -> None:
    if check.allowed:
        return
    error_class = QUOTA_ERRORS.get(check.code, QuotaExceededError)
    raise error_class(check.error, limit=check.limit, usage=check.usage)


class QuotaGuard:
    """Pre-flight quota checks and atomic consumption per user."""

    def __init__(
        self,
        subscription_repo: Optional[SubscriptionRepository] = None,
        plan_repo: Optional[PlanRepository] = None,
        usage_meter: Optional[UsageMeter] = None,
    ):
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.plan_repo = plan_repo or PlanRepository()
        self.usage_meter = usage_meter or UsageMeter(self.subscription_repo)

    @trace_span
    async def get_or_create_subscription(self, user_id: str) -> Subscription:
        """The user's row, created on the free plan when absent."""
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if subscription is not None:
            return subscription

        free_plan = await self.plan_repo.get_free_plan()
        if free_plan is None:
            raise NotFoundError("Free plan is not configured")
        return await self.subscription_repo.get_or_create(
            SubscriptionCreateModel(
                user_id=user_id,
                plan_id=free_plan.id,
                usage_reset_at=self.usage_meter.first_reset_at(),
            )
        )

    async def load(self, user_id: str) -> Tuple[Subscription, Plan]:
        subscription = await self.get_or_create_subscription(user_id)
        subscription = await self.usage_meter.refresh(subscription)
        plan = await self.plan_repo.get(subscription.plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {subscription.plan_id} not found")
        return subscription, plan

    @trace_span
    async def check_channel(self, user_id: str, channel_count: int) -> QuotaCheck:
        subscription, plan = await self.load(user_id)
        return evaluate_channel(subscription, plan, channel_count)

    @trace_span
    async def check_episode(self, user_id: str) -> QuotaCheck:
        subscription, plan = await self.load(user_id)
        return evaluate_episode(subscription, plan)

    @trace_span
    async def check_api(self, user_id: str) -> QuotaCheck:
        subscription, plan = await self.load(user_id)
        return evaluate_api(subscription, plan)

    async def _consume(self, user_id: str, kind: QuotaKind) -> QuotaCheck:
        evaluate = evaluate_api if kind == QuotaKind.API else evaluate_episode
        limits = {
            QuotaKind.API: lambda plan: plan.max_api_calls,
            QuotaKind.EPISODE: lambda plan: plan.max_episodes_per_month,
        }

        subscription, plan = await self.load(user_id)
        check = evaluate(subscription, plan)
        raise_for_check(check)

        if await self.usage_meter.increment(subscription.id, kind, limits[kind](plan)):
            return check.model_copy(update={"usage": (check.usage or 0) + 1})

        # Lost the race for the last unit; report what the winner left behind
        subscription, plan = await self.load(user_id)
        retry_check = evaluate(subscription, plan)
        logger.info(
            f"Concurrent {kind.value} consumption denied",
            extra={"user_id": user_id, "usage": retry_check.usage},
        )
        raise_for_check(retry_check)
        raise QuotaExceededError(
            f"Monthly {kind.value} limit reached. Please try again.",
            limit=retry_check.limit,
            usage=retry_check.usage,
        )

    @trace_span
    async def consume_api_call(self, user_id: str) -> QuotaCheck:
        return await self._consume(user_id, QuotaKind.API)

    @trace_span
    async def consume_episode(self, user_id: str) -> QuotaCheck:
        return await self._consume(user_id, QuotaKind.EPISODE)

    @trace_span
    async def has_feature(self, user_id: str, feature: PlanFeature) -> bool:
        subscription, plan = await self.load(user_id)
        return subscription.has_access() and plan.features.has(feature)
