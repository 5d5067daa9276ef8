"""
Unit tests for usage metering: lazy resets and atomic increments.
"""

import asyncio

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from common.db.base import Base, utcnow
from packages.billing.exceptions import QuotaExceededError
from packages.billing.models.domain.enums import QuotaKind
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.plans_service import PlansService
from packages.billing.services.quota_service import QuotaGuard
from packages.billing.services.usage_service import UsageMeter, next_reset_boundary

CYCLE = timedelta(days=30)


class TestNextResetBoundary:
    def test_advances_exactly_one_cycle(self):
        reset_at = datetime(2026, 1, 1, tzinfo=timezone.utc)

        assert next_reset_boundary(reset_at, CYCLE) == datetime(
            2026, 1, 31, tzinfo=timezone.utc
        )


@pytest.mark.asyncio
class TestUsageMeter:
    async def test_refresh_before_boundary_is_noop(self, make_subscription):
        subscription = await make_subscription(api_calls_used=7)

        refreshed = await UsageMeter().refresh(subscription)

        assert refreshed.api_calls_used == 7

    async def test_refresh_resets_once(self, make_subscription):
        past = utcnow() - timedelta(hours=1)
        subscription = await make_subscription(
            api_calls_used=7, episodes_created=2, usage_reset_at=past
        )
        meter = UsageMeter()

        refreshed = await meter.refresh(subscription)
        await meter.increment(subscription.id, QuotaKind.API, 500)
        # A reader still holding the old boundary must not reset again
        again = await meter.refresh(subscription)

        assert refreshed.api_calls_used == 0
        assert refreshed.episodes_created == 0
        assert refreshed.usage_reset_at > utcnow()
        assert again.api_calls_used == 1

    async def test_refresh_catches_up_missed_cycles(self, make_subscription):
        now = utcnow()
        reset_at = now.replace(microsecond=0) - timedelta(days=95)
        subscription = await make_subscription(api_calls_used=7, usage_reset_at=reset_at)
        meter = UsageMeter()

        refreshed = await meter.refresh(subscription, now)
        await meter.increment(subscription.id, QuotaKind.API, 500)
        again = await meter.refresh(refreshed, now)

        # Four single-cycle steps: -95, -65, -35, -5 days
        assert refreshed.usage_reset_at == reset_at + CYCLE * 4
        assert refreshed.usage_reset_at > now
        assert refreshed.api_calls_used == 0
        assert again.api_calls_used == 1

    async def test_snapshot(self, make_subscription):
        subscription = await make_subscription(episodes_created=4)

        snapshot = await UsageMeter().snapshot(subscription)

        assert snapshot.episodes_created == 4
        assert snapshot.api_calls_used == 0
        assert snapshot.usage_reset_at == subscription.usage_reset_at

    async def test_increment_stops_at_limit(self, make_subscription):
        subscription = await make_subscription(episodes_created=49)
        meter = UsageMeter()

        assert await meter.increment(subscription.id, QuotaKind.EPISODE, 50) is True
        assert await meter.increment(subscription.id, QuotaKind.EPISODE, 50) is False

        stored = await SubscriptionRepository().get(subscription.id)
        assert stored.episodes_created == 50

    async def test_unlimited_increment(self, make_subscription):
        subscription = await make_subscription(api_calls_used=10**6)

        assert await UsageMeter().increment(subscription.id, QuotaKind.API, -1) is True


@pytest_asyncio.fixture
async def file_database(tmp_path, monkeypatch):
    """
    File-backed database with independent connections per session, so
    concurrent consumers really race on the same row.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", session_factory)
    yield
    await engine.dispose()


@pytest.mark.asyncio
class TestConcurrentConsumption:
    async def test_last_unit_is_granted_once(self, file_database):
        await PlansService().seed_defaults()
        guard = QuotaGuard()
        subscription = await guard.get_or_create_subscription("user_123")
        starter = await guard.plan_repo.get_by_slug("starter")
        repo = SubscriptionRepository()
        await repo.update_fields(
            subscription.id, {"plan_id": starter.id, "api_calls_used": 499}
        )

        results = await asyncio.gather(
            guard.consume_api_call("user_123"),
            guard.consume_api_call("user_123"),
            return_exceptions=True,
        )

        granted = [r for r in results if not isinstance(r, Exception)]
        denied = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(granted) == 1
        assert len(denied) == 1
        assert denied[0].code == "LIMIT_EXCEEDED"
        stored = await repo.get(subscription.id)
        assert stored.api_calls_used == 500
