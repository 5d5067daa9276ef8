"""
Service for the plan catalogue: public listing, seeding and administration.
"""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import NotFoundError, StateConflictError
from packages.billing.models.domain.enums import FREE_PLAN_SLUG, UNLIMITED
from packages.billing.models.domain.plans import (
    Plan,
    PlanCreateModel,
    PlanFeatures,
    PlanUpdateModel,
)
from packages.billing.repositories.plan_repository import PlanRepository

logger = get_logger(__name__)


DEFAULT_PLANS = [
    PlanCreateModel(
        slug=FREE_PLAN_SLUG,
        name="Free",
        description="Get started with the basics",
        price_monthly_cents=0,
        price_yearly_cents=0,
        max_channels=1,
        max_episodes_per_month=5,
        max_api_calls=0,
        features=PlanFeatures(character_customization=True),
        sort_order=0,
    ),
    PlanCreateModel(
        slug="starter",
        name="Starter",
        description="For creators publishing regularly",
        price_monthly_cents=1900,
        price_yearly_cents=19000,
        max_channels=3,
        max_episodes_per_month=50,
        max_api_calls=500,
        features=PlanFeatures(
            api_access=True,
            character_customization=True,
            youtube_strategies=True,
        ),
        sort_order=1,
    ),
    PlanCreateModel(
        slug="pro",
        name="Pro",
        description="For growing channels and small teams",
        price_monthly_cents=4900,
        price_yearly_cents=49000,
        max_channels=10,
        max_episodes_per_month=200,
        max_api_calls=2000,
        features=PlanFeatures(
            api_access=True,
            advanced_cinematic_styles=True,
            all_narrative_templates=True,
            character_customization=True,
            youtube_strategies=True,
            priority_support=True,
        ),
        is_popular=True,
        sort_order=2,
    ),
    PlanCreateModel(
        slug="enterprise",
        name="Enterprise",
        description="Unlimited usage and custom integrations",
        price_monthly_cents=14900,
        price_yearly_cents=149000,
        max_channels=UNLIMITED,
        max_episodes_per_month=UNLIMITED,
        max_api_calls=UNLIMITED,
        features=PlanFeatures(
            api_access=True,
            advanced_cinematic_styles=True,
            all_narrative_templates=True,
            character_customization=True,
            youtube_strategies=True,
            priority_support=True,
            custom_integrations=True,
        ),
        sort_order=3,
    ),
]


class PlansService:
    """Service for plan lookups and admin management."""

    def __init__(self, plan_repo: Optional[PlanRepository] = None):
        self.plan_repo = plan_repo or PlanRepository()

    @trace_span
    async def get_public_plans(self) -> List[Plan]:
        return await self.plan_repo.list_plans(active_only=True)

    @trace_span
    async def get_plan(self, plan_id: int) -> Plan:
        plan = await self.plan_repo.get(plan_id)
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found")
        return plan

    @trace_span
    async def get_free_plan(self) -> Plan:
        plan = await self.plan_repo.get_free_plan()
        if not plan:
            # Seeding runs at startup; a missing free plan is a deployment fault
            raise NotFoundError(f"Plan '{FREE_PLAN_SLUG}' is not configured")
        return plan

    @trace_span
    async def list_with_subscriber_counts(self) -> List[tuple[Plan, int]]:
        plans = await self.plan_repo.list_plans()
        counts = await self.plan_repo.subscriber_counts()
        return [(plan, counts.get(plan.id, 0)) for plan in plans]

    @trace_span
    async def create_plan(self, create_model: PlanCreateModel) -> Plan:
        if await self.plan_repo.get_by_slug(create_model.slug):
            raise StateConflictError(f"Plan slug '{create_model.slug}' already exists")
        try:
            plan = await self.plan_repo.create(create_model)
        except IntegrityError:
            raise StateConflictError(f"Plan slug '{create_model.slug}' already exists")
        logger.info(f"Created plan {plan.slug}", extra={"plan_id": plan.id})
        return plan

    @trace_span
    async def update_plan(self, plan_id: int, update_model: PlanUpdateModel) -> Plan:
        existing = await self.get_plan(plan_id)
        if update_model.slug and update_model.slug != existing.slug:
            if existing.slug == FREE_PLAN_SLUG:
                raise StateConflictError("The free plan's slug cannot be changed")
            if await self.plan_repo.get_by_slug(update_model.slug):
                raise StateConflictError(
                    f"Plan slug '{update_model.slug}' already exists"
                )

        plan = await self.plan_repo.update(plan_id, update_model)
        logger.info(
            f"Updated plan {plan.slug}",
            extra={"plan_id": plan_id, "fields": sorted(update_model.model_fields_set)},
        )
        return plan

    @trace_span
    async def delete_plan(self, plan_id: int) -> None:
        plan = await self.get_plan(plan_id)
        if plan.slug == FREE_PLAN_SLUG:
            raise StateConflictError("The free plan cannot be deleted")

        subscriptions = await self.plan_repo.count_subscriptions(plan_id)
        if subscriptions > 0:
            raise StateConflictError(
                f"Cannot delete plan with {subscriptions} subscriptions"
            )

        await self.plan_repo.delete(plan_id)
        logger.info(f"Deleted plan {plan.slug}", extra={"plan_id": plan_id})

    @trace_span
    async def seed_defaults(self) -> None:
        """Insert the default catalogue entries that are missing, by slug."""
        for default in DEFAULT_PLANS:
            if await self.plan_repo.get_by_slug(default.slug) is None:
                await self.plan_repo.create(default)
                logger.info(f"Seeded plan {default.slug}")
