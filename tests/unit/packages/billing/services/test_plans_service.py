"""
Unit tests for PlansService.
"""

import pytest

from packages.billing.exceptions import NotFoundError, StateConflictError
from packages.billing.models.domain.plans import PlanCreateModel, PlanUpdateModel
from packages.billing.services.plans_service import DEFAULT_PLANS, PlansService


@pytest.mark.asyncio
class TestPlansService:
    async def test_seed_is_idempotent(self, seeded_plans):
        await PlansService().seed_defaults()

        plans = await PlansService().plan_repo.list_plans()
        assert [plan.slug for plan in plans] == [plan.slug for plan in DEFAULT_PLANS]

    async def test_public_plans_exclude_inactive(self, seeded_plans):
        service = PlansService()
        await service.update_plan(
            seeded_plans["enterprise"].id, PlanUpdateModel(is_active=False)
        )

        plans = await service.get_public_plans()

        assert "enterprise" not in [plan.slug for plan in plans]

    async def test_get_plan_missing(self, seeded_plans):
        with pytest.raises(NotFoundError):
            await PlansService().get_plan(9999)

    async def test_create_plan(self, seeded_plans):
        plan = await PlansService().create_plan(
            PlanCreateModel(
                slug="team",
                name="Team",
                price_monthly_cents=9900,
                max_channels=25,
                max_episodes_per_month=500,
                max_api_calls=5000,
            )
        )

        assert plan.id is not None
        assert plan.is_paid is True

    async def test_duplicate_slug_conflicts(self, seeded_plans):
        with pytest.raises(StateConflictError):
            await PlansService().create_plan(PlanCreateModel(slug="pro", name="Pro 2"))

    async def test_update_is_partial(self, seeded_plans):
        pro = seeded_plans["pro"]

        plan = await PlansService().update_plan(
            pro.id, PlanUpdateModel(price_monthly_cents=5900)
        )

        assert plan.price_monthly_cents == 5900
        assert plan.max_channels == pro.max_channels
        assert plan.features == pro.features

    async def test_free_slug_cannot_change(self, seeded_plans):
        with pytest.raises(StateConflictError):
            await PlansService().update_plan(
                seeded_plans["free"].id, PlanUpdateModel(slug="basic")
            )

    async def test_rename_to_taken_slug_conflicts(self, seeded_plans):
        with pytest.raises(StateConflictError):
            await PlansService().update_plan(
                seeded_plans["starter"].id, PlanUpdateModel(slug="pro")
            )

    async def test_delete_unused_plan(self, seeded_plans):
        service = PlansService()

        await service.delete_plan(seeded_plans["enterprise"].id)

        assert await service.plan_repo.get(seeded_plans["enterprise"].id) is None

    async def test_delete_free_plan_refused(self, seeded_plans):
        with pytest.raises(StateConflictError):
            await PlansService().delete_plan(seeded_plans["free"].id)

    async def test_delete_plan_in_use_refused(self, make_subscription, seeded_plans):
        await make_subscription(plan_slug="pro")

        with pytest.raises(StateConflictError) as exc_info:
            await PlansService().delete_plan(seeded_plans["pro"].id)

        assert "1 subscriptions" in exc_info.value.message

    async def test_subscriber_counts(self, make_subscription):
        await make_subscription(user_id="a", plan_slug="pro")
        await make_subscription(user_id="b", plan_slug="pro")

        counts = {
            plan.slug: count
            for plan, count in await PlansService().list_with_subscriber_counts()
        }

        assert counts["pro"] == 2
        assert counts["free"] == 0
