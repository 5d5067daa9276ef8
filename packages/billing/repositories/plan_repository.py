"""
Repository for subscription plans.
"""

from typing import List, Optional
from sqlalchemy import select, func, update

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.enums import FREE_PLAN_SLUG
from packages.billing.models.domain.plans import (
    Plan,
    PlanCreateModel,
    PlanUpdateModel,
)


class PlanRepository(BaseRepository[PlanEntity, Plan]):
    """Repository for plans. Features are serialized at this boundary."""

    def __init__(self):
        super().__init__(PlanEntity, Plan)

    @trace_span
    async def get_by_slug(self, slug: str) -> Optional[Plan]:
        async with self._get_session() as session:
            result = await session.execute(
                select(PlanEntity).where(PlanEntity.slug == slug)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    async def get_free_plan(self) -> Optional[Plan]:
        return await self.get_by_slug(FREE_PLAN_SLUG)

    @trace_span
    async def list_plans(self, active_only: bool = False) -> List[Plan]:
        query = select(PlanEntity).order_by(PlanEntity.sort_order, PlanEntity.id)
        if active_only:
            query = query.where(PlanEntity.is_active == True)  # noqa: E712

        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def create(self, create_model: PlanCreateModel) -> Plan:
        data = create_model.model_dump(exclude_none=True, exclude={"features"})
        entity = PlanEntity(**data, features=create_model.features.to_storage())
        async with self._get_session() as session:
            session.add(entity)
            await session.flush()
            await session.refresh(entity)
            return self._entity_to_domain(entity)

    @trace_span
    async def update(self, id: int, update_model: PlanUpdateModel) -> Optional[Plan]:
        data = update_model.model_dump(exclude_unset=True, exclude={"features"})
        if "features" in update_model.model_fields_set and update_model.features:
            data["features"] = update_model.features.to_storage()
        if not data:
            return await self.get(id)

        async with self._get_session() as session:
            await session.execute(
                update(PlanEntity).where(PlanEntity.id == id).values(data)
            )
        return await self.get(id)

    @trace_span
    async def subscriber_counts(self) -> dict[int, int]:
        """Number of subscriptions per plan id."""
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity.plan_id, func.count(SubscriptionEntity.id))
                .group_by(SubscriptionEntity.plan_id)
            )
            return {plan_id: count for plan_id, count in result.all()}

    @trace_span
    async def count_subscriptions(self, plan_id: int) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(SubscriptionEntity.id)).where(
                    SubscriptionEntity.plan_id == plan_id
                )
            )
            return result.scalar_one()
