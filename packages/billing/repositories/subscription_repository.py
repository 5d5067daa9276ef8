"""
Repository for subscription management.

Every state-changing write here is a single conditional UPDATE so that
concurrent requests and out-of-order webhooks cannot interleave a read and a
write against the same row.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.database.subscription import (
    EndedSubscriptionEntity,
    SubscriptionEntity,
)
from packages.billing.models.domain.enums import (
    PaymentGateway,
    QuotaKind,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
)

logger = get_logger(__name__)

USAGE_COLUMNS = {
    QuotaKind.API: SubscriptionEntity.api_calls_used,
    QuotaKind.EPISODE: SubscriptionEntity.episodes_created,
}

ACCESS_STATUSES = [
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.TRIALING.value,
]
UPDATABLE_STATUSES = ACCESS_STATUSES + [SubscriptionStatus.PAST_DUE.value]


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """Repository for managing user subscriptions."""

    def __init__(self):
        super().__init__(SubscriptionEntity, Subscription)

    @trace_span
    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity).where(SubscriptionEntity.user_id == user_id)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_external_id(
        self, gateway: PaymentGateway, external_id: str
    ) -> Optional[Subscription]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity).where(
                    SubscriptionEntity.gateway == gateway.value,
                    SubscriptionEntity.external_id == external_id,
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_or_create(self, create_model: SubscriptionCreateModel) -> Subscription:
        """
        Return the user's row, inserting it if absent.

        Two concurrent first requests race on the unique user_id; the loser's
        insert is rolled back to a savepoint and the winner's row returned.
        """
        existing = await self.get_by_user_id(create_model.user_id)
        if existing:
            return existing

        try:
            async with self._get_session() as session:
                entity = SubscriptionEntity(**create_model.model_dump())
                async with session.begin_nested():
                    session.add(entity)
                    await session.flush()
                await session.refresh(entity)
                logger.info(
                    "Created subscription row",
                    extra={"user_id": create_model.user_id, "plan_id": create_model.plan_id},
                )
                return self._entity_to_domain(entity)
        except IntegrityError:
            logger.info(
                "Subscription row created concurrently, reusing it",
                extra={"user_id": create_model.user_id},
            )

        existing = await self.get_by_user_id(create_model.user_id)
        if existing is None:
            raise RuntimeError(
                f"Subscription for user {create_model.user_id} vanished after conflict"
            )
        return existing

    @trace_span
    async def update_fields(self, id: int, values: Dict[str, Any]) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriptionEntity)
                .where(SubscriptionEntity.id == id)
                .values(**values)
            )
            return result.rowcount == 1

    @trace_span
    async def update_if_current(
        self,
        gateway: PaymentGateway,
        external_id: str,
        values: Dict[str, Any],
        incoming_period_end: Optional[datetime],
    ) -> bool:
        """
        Apply a provider update unless it is stale or the row left the
        updatable states. Returns whether a row changed.
        """
        stmt = update(SubscriptionEntity).where(
            SubscriptionEntity.gateway == gateway.value,
            SubscriptionEntity.external_id == external_id,
            SubscriptionEntity.status.in_(UPDATABLE_STATUSES),
        )
        if incoming_period_end is not None:
            stmt = stmt.where(
                or_(
                    SubscriptionEntity.current_period_end.is_(None),
                    SubscriptionEntity.current_period_end <= incoming_period_end,
                )
            )

        async with self._get_session() as session:
            result = await session.execute(stmt.values(**values))
            return result.rowcount == 1

    @trace_span
    async def reset_to_plan(
        self, gateway: PaymentGateway, external_id: str, plan_id: int
    ) -> bool:
        """Detach the provider subscription and put the row back on plan_id."""
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriptionEntity)
                .where(
                    SubscriptionEntity.gateway == gateway.value,
                    SubscriptionEntity.external_id == external_id,
                )
                .values(
                    plan_id=plan_id,
                    status=SubscriptionStatus.ACTIVE.value,
                    gateway=None,
                    external_id=None,
                    customer_id=None,
                    current_period_start=None,
                    current_period_end=None,
                    trial_ends_at=None,
                    canceled_at=None,
                )
            )
            return result.rowcount == 1

    @trace_span
    async def is_ended(self, gateway: PaymentGateway, external_id: str) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                select(EndedSubscriptionEntity.id).where(
                    EndedSubscriptionEntity.gateway == gateway.value,
                    EndedSubscriptionEntity.external_id == external_id,
                )
            )
            return result.scalar_one_or_none() is not None

    @trace_span
    async def record_ended(
        self,
        gateway: PaymentGateway,
        external_id: str,
        user_id: Optional[str],
        ended_at: datetime,
    ) -> bool:
        """
        Remember that a provider subscription has ended. Returns False when it
        was already recorded.
        """
        if await self.is_ended(gateway, external_id):
            return False

        async with self._get_session() as session:
            try:
                async with session.begin_nested():
                    session.add(
                        EndedSubscriptionEntity(
                            gateway=gateway.value,
                            external_id=external_id,
                            user_id=user_id,
                            ended_at=ended_at,
                        )
                    )
                    await session.flush()
            except IntegrityError:
                return False
            return True

    @trace_span
    async def mark_canceled(self, user_id: str, canceled_at: datetime) -> bool:
        """Soft cancel; no-op (returns False) when already canceled."""
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriptionEntity)
                .where(
                    SubscriptionEntity.user_id == user_id,
                    SubscriptionEntity.status != SubscriptionStatus.CANCELED.value,
                )
                .values(status=SubscriptionStatus.CANCELED.value, canceled_at=canceled_at)
            )
            return result.rowcount == 1

    @trace_span
    async def increment_usage(
        self, id: int, kind: QuotaKind, limit: Optional[int]
    ) -> bool:
        """
        Atomically add one unit of usage if the row still has access and is
        below limit (None = unlimited). Returns whether the increment happened.
        """
        column = USAGE_COLUMNS[kind]
        stmt = update(SubscriptionEntity).where(
            SubscriptionEntity.id == id,
            SubscriptionEntity.status.in_(ACCESS_STATUSES),
        )
        if limit is not None:
            stmt = stmt.where(column < limit)

        async with self._get_session() as session:
            result = await session.execute(stmt.values({column.key: column + 1}))
            return result.rowcount == 1

    @trace_span
    async def reset_usage(
        self, id: int, expected_reset_at: datetime, next_reset_at: datetime
    ) -> bool:
        """
        Zero the cycle counters if usage_reset_at still holds the value the
        caller read, so a boundary is only ever reset once.
        """
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriptionEntity)
                .where(
                    SubscriptionEntity.id == id,
                    SubscriptionEntity.usage_reset_at == expected_reset_at,
                )
                .values(api_calls_used=0, episodes_created=0, usage_reset_at=next_reset_at)
            )
            return result.rowcount == 1
