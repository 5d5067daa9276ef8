"""
Per-cycle usage counters.

Counters are reset lazily: the first read after usage_reset_at has passed
zeroes them and moves the boundary forward one cycle at a time. Increments
are single conditional UPDATEs so concurrent consumers can never push a
counter past its limit.
"""

from datetime import datetime, timedelta
from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utcnow
from packages.billing.exceptions import NotFoundError
from packages.billing.models.domain.enums import QuotaKind, UNLIMITED
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.usage import UsageSnapshot
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)

logger = get_logger(__name__)


def next_reset_boundary(reset_at: datetime, cycle: timedelta) -> datetime:
    return reset_at + cycle


class UsageMeter:
    """Reads and increments a subscription's cycle counters."""

    def __init__(
        self,
        subscription_repo: Optional[SubscriptionRepository] = None,
        cycle_days: int = settings.usage_cycle_days,
    ):
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.cycle = timedelta(days=cycle_days)

    def first_reset_at(self, now: Optional[datetime] = None) -> datetime:
        return (now or utcnow()) + self.cycle

    @trace_span
    async def refresh(
        self, subscription: Subscription, now: Optional[datetime] = None
    ) -> Subscription:
        """
        Return the subscription with counters for the current cycle.

        Each elapsed boundary is reset once, moving usage_reset_at forward by
        exactly one cycle. The reset is conditional on the usage_reset_at value
        just read; when a concurrent reader already reset that boundary the
        update is a no-op and the row is re-read.
        """
        now = now or utcnow()
        current = subscription
        while current.usage_reset_at <= now:
            next_reset = next_reset_boundary(current.usage_reset_at, self.cycle)
            reset = await self.subscription_repo.reset_usage(
                current.id, current.usage_reset_at, next_reset
            )
            if reset:
                logger.info(
                    "Reset usage counters for new cycle",
                    extra={
                        "user_id": current.user_id,
                        "api_calls_used": current.api_calls_used,
                        "episodes_created": current.episodes_created,
                        "next_reset_at": next_reset.isoformat(),
                    },
                )

            current = await self.subscription_repo.get(subscription.id)
            if current is None:
                raise NotFoundError(f"Subscription {subscription.id} not found")
        return current

    async def snapshot(
        self, subscription: Subscription, now: Optional[datetime] = None
    ) -> UsageSnapshot:
        current = await self.refresh(subscription, now)
        return UsageSnapshot(
            api_calls_used=current.api_calls_used,
            episodes_created=current.episodes_created,
            usage_reset_at=current.usage_reset_at,
        )

    @trace_span
    async def increment(self, subscription_id: int, kind: QuotaKind, limit: int) -> bool:
        """
        Consume one unit of kind. Returns False when the limit was reached
        (or the subscription lost access) before this increment landed.
        """
        return await self.subscription_repo.increment_usage(
            subscription_id, kind, None if limit == UNLIMITED else limit
        )
