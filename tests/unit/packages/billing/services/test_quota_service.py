"""
Unit tests for quota evaluation and the QuotaGuard.
"""

import pytest
from datetime import timedelta

from common.db.base import utcnow
from packages.billing.exceptions import (
    FeatureNotIncludedError,
    NotFoundError,
    QuotaExceededError,
    SubscriptionInactiveError,
)
from packages.billing.models.domain.enums import (
    PlanFeature,
    QuotaKind,
    SubscriptionStatus,
)
from packages.billing.models.domain.plans import Plan, PlanFeatures
from packages.billing.models.domain.subscription import Subscription
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.quota_service import (
    QuotaGuard,
    evaluate_api,
    evaluate_channel,
    evaluate_episode,
    raise_for_check,
)


def make_plan(**overrides) -> Plan:
    fields = dict(
        id=1,
        slug="starter",
        name="Starter",
        price_monthly_cents=1900,
        max_channels=3,
        max_episodes_per_month=50,
        max_api_calls=500,
        features=PlanFeatures(api_access=True),
    )
    fields.update(overrides)
    return Plan(**fields)


def make_sub(**overrides) -> Subscription:
    fields = dict(
        id=1,
        user_id="user_123",
        plan_id=1,
        status=SubscriptionStatus.ACTIVE,
        usage_reset_at=utcnow() + timedelta(days=30),
    )
    fields.update(overrides)
    return Subscription(**fields)


class TestEvaluateChannel:
    def test_below_limit(self):
        check = evaluate_channel(make_sub(), make_plan(), channel_count=2)

        assert check.allowed is True
        assert check.limit == 3
        assert check.usage == 2

    def test_at_limit(self):
        check = evaluate_channel(make_sub(), make_plan(), channel_count=3)

        assert check.allowed is False
        assert check.code == "LIMIT_EXCEEDED"
        assert check.error == (
            "Channel limit reached (3/3). Upgrade your plan for more channels."
        )

    def test_unlimited(self):
        check = evaluate_channel(make_sub(), make_plan(max_channels=-1), 10_000)

        assert check.allowed is True
        assert check.limit == -1


class TestEvaluateEpisode:
    def test_below_limit(self):
        check = evaluate_episode(make_sub(episodes_created=49), make_plan())
        assert check.allowed is True

    def test_exhausted(self):
        check = evaluate_episode(make_sub(episodes_created=50), make_plan())

        assert check.allowed is False
        assert check.code == "LIMIT_EXCEEDED"
        assert "(50/50)" in check.error
        assert check.usage == 50

    def test_unlimited(self):
        check = evaluate_episode(
            make_sub(episodes_created=9999), make_plan(max_episodes_per_month=-1)
        )
        assert check.allowed is True


class TestEvaluateApi:
    def test_zero_limit_is_not_included(self):
        check = evaluate_api(make_sub(), make_plan(max_api_calls=0))

        assert check.allowed is False
        assert check.code == "NOT_INCLUDED_IN_PLAN"
        assert check.limit == 0
        assert "not included" in check.error

    def test_exhausted_is_limit_exceeded(self):
        check = evaluate_api(make_sub(api_calls_used=500), make_plan())

        assert check.allowed is False
        assert check.code == "LIMIT_EXCEEDED"
        assert check.limit == 500
        assert check.usage == 500

    def test_unlimited(self):
        check = evaluate_api(make_sub(api_calls_used=10**6), make_plan(max_api_calls=-1))
        assert check.allowed is True


class TestInactiveSubscriptions:
    @pytest.mark.parametrize(
        "status",
        [
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELED,
            SubscriptionStatus.EXPIRED,
        ],
    )
    def test_denied_regardless_of_limits(self, status):
        subscription = make_sub(status=status)
        plan = make_plan(max_channels=-1, max_episodes_per_month=-1, max_api_calls=-1)

        for check in (
            evaluate_channel(subscription, plan, 0),
            evaluate_episode(subscription, plan),
            evaluate_api(subscription, plan),
        ):
            assert check.allowed is False
            assert check.code == "SUBSCRIPTION_INACTIVE"

    def test_trialing_has_access(self):
        check = evaluate_api(make_sub(status=SubscriptionStatus.TRIALING), make_plan())
        assert check.allowed is True


class TestRaiseForCheck:
    def test_allowed_does_not_raise(self):
        raise_for_check(evaluate_api(make_sub(), make_plan()))

    @pytest.mark.parametrize(
        "subscription,plan,error_class",
        [
            (make_sub(api_calls_used=500), make_plan(), QuotaExceededError),
            (make_sub(), make_plan(max_api_calls=0), FeatureNotIncludedError),
            (
                make_sub(status=SubscriptionStatus.EXPIRED),
                make_plan(),
                SubscriptionInactiveError,
            ),
        ],
    )
    def test_denial_maps_to_error(self, subscription, plan, error_class):
        with pytest.raises(error_class) as exc_info:
            raise_for_check(evaluate_api(subscription, plan))

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == error_class.code


@pytest.mark.asyncio
class TestQuotaGuard:
    async def test_first_use_creates_free_subscription(self, seeded_plans):
        guard = QuotaGuard()

        subscription = await guard.get_or_create_subscription("new_user")

        assert subscription.plan_id == seeded_plans["free"].id
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.usage_reset_at > utcnow()
        again = await guard.get_or_create_subscription("new_user")
        assert again.id == subscription.id

    async def test_missing_free_plan(self):
        with pytest.raises(NotFoundError):
            await QuotaGuard().get_or_create_subscription("new_user")

    async def test_free_plan_has_no_api_access(self, seeded_plans):
        with pytest.raises(FeatureNotIncludedError):
            await QuotaGuard().consume_api_call("new_user")

    async def test_consume_increments(self, make_subscription):
        subscription = await make_subscription(plan_slug="starter", api_calls_used=10)

        check = await QuotaGuard().consume_api_call("user_123")

        assert check.allowed is True
        assert check.usage == 11
        stored = await SubscriptionRepository().get(subscription.id)
        assert stored.api_calls_used == 11

    async def test_consume_at_limit_raises_without_incrementing(self, make_subscription):
        subscription = await make_subscription(plan_slug="starter", episodes_created=50)

        with pytest.raises(QuotaExceededError) as exc_info:
            await QuotaGuard().consume_episode("user_123")

        assert exc_info.value.limit == 50
        stored = await SubscriptionRepository().get(subscription.id)
        assert stored.episodes_created == 50

    async def test_lazy_reset_after_boundary(self, make_subscription):
        past = utcnow() - timedelta(days=1)
        subscription = await make_subscription(
            plan_slug="starter", api_calls_used=500, usage_reset_at=past
        )

        check = await QuotaGuard().consume_api_call("user_123")

        assert check.usage == 1
        stored = await SubscriptionRepository().get(subscription.id)
        assert stored.api_calls_used == 1
        assert stored.usage_reset_at > utcnow()

    async def test_check_channel_does_not_consume(self, make_subscription):
        await make_subscription(plan_slug="pro")

        check = await QuotaGuard().check_channel("user_123", channel_count=9)

        assert check.allowed is True
        assert check.kind == QuotaKind.CHANNEL
        assert check.limit == 10

    async def test_has_feature(self, make_subscription):
        await make_subscription(plan_slug="starter")
        guard = QuotaGuard()

        assert await guard.has_feature("user_123", PlanFeature.API_ACCESS) is True
        assert await guard.has_feature("user_123", PlanFeature.PRIORITY_SUPPORT) is False

    async def test_has_feature_requires_access(self, make_subscription):
        await make_subscription(plan_slug="enterprise", status=SubscriptionStatus.PAST_DUE)

        assert (
            await QuotaGuard().has_feature("user_123", PlanFeature.PRIORITY_SUPPORT)
            is False
        )
