# Shared pytest configuration and fixtures for all test types
import pytest
import pytest_asyncio
from datetime import timedelta
from enum import Enum
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from slowapi import Limiter
from slowapi.util import get_remote_address
from unittest.mock import AsyncMock, MagicMock, patch

# Create test limiter with no limits and in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base, utcnow
from packages.auth.dependencies import get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.models.database import (  # noqa: F401
    GatewayCredentialEntity,
    PlanEntity,
    SubscriptionEntity,
)
from packages.billing.models.domain.enums import PaymentGateway
from packages.billing.models.domain.events import (
    CheckoutResult,
    ConnectionResult,
    WebhookResult,
)
from packages.billing.models.domain.plans import PlanUpdateModel
from packages.billing.models.domain.subscription import SubscriptionCreateModel
from packages.billing.providers.payment.registry import get_gateway_registry
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.plans_service import PlansService

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so nested transaction()
    calls create savepoints instead of real nested transactions.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)


@pytest_asyncio.fixture(scope="function")
async def seeded_plans():
    """Default plan catalogue, keyed by slug."""
    await PlansService().seed_defaults()
    plans = await PlanRepository().list_plans()
    return {plan.slug: plan for plan in plans}


@pytest_asyncio.fixture(scope="function")
async def priced_plans(seeded_plans):
    """Catalogue with provider price references on the paid plans."""
    repo = PlanRepository()
    for slug in ("starter", "pro"):
        await repo.update(
            seeded_plans[slug].id,
            PlanUpdateModel(
                stripe_price_monthly=f"price_{slug}_monthly",
                stripe_price_yearly=f"price_{slug}_yearly",
                paypal_plan_monthly=f"P-{slug.upper()}-M",
            ),
        )
    plans = await repo.list_plans()
    return {plan.slug: plan for plan in plans}


@pytest_asyncio.fixture(scope="function")
async def make_subscription(seeded_plans):
    """Factory inserting a subscription row on a catalogue plan."""

    async def _make(user_id: str = "user_123", plan_slug: str = "starter", **fields):
        repo = SubscriptionRepository()
        subscription = await repo.get_or_create(
            SubscriptionCreateModel(
                user_id=user_id,
                plan_id=seeded_plans[plan_slug].id,
                usage_reset_at=utcnow() + timedelta(days=30),
            )
        )
        if fields:
            await repo.update_fields(
                subscription.id,
                {
                    key: value.value if isinstance(value, Enum) else value
                    for key, value in fields.items()
                },
            )
        return await repo.get(subscription.id)

    return _make


@pytest.fixture
def test_user():
    return AuthenticatedUser(user_id="user_123", email="user@example.com")


@pytest.fixture
def admin_user():
    return AuthenticatedUser(user_id="admin_1", email="admin@example.com", is_admin=True)


@pytest.fixture
def mock_gateway():
    """Mock GatewayPort adapter."""
    gateway = MagicMock()
    gateway.gateway = PaymentGateway.STRIPE
    gateway.create_checkout = AsyncMock(
        return_value=CheckoutResult(
            url="https://checkout.stripe.com/c/pay/cs_test_123", session_id="cs_test_123"
        )
    )
    gateway.cancel_subscription = AsyncMock(return_value=None)
    gateway.create_portal = AsyncMock(
        return_value="https://billing.stripe.com/p/session/test_123"
    )
    gateway.handle_webhook = AsyncMock(return_value=WebhookResult(success=True))
    gateway.test_connection = AsyncMock(return_value=ConnectionResult(success=True))
    gateway.checkout_metadata = MagicMock(return_value=None)
    gateway.aclose = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def mock_registry(mock_gateway):
    """Registry that resolves every gateway to mock_gateway."""
    registry = MagicMock()
    registry.resolve = AsyncMock(return_value=mock_gateway)
    return registry


async def _client_for(user: AuthenticatedUser, registry):
    app.dependency_overrides[get_current_active_user] = lambda: user
    app.dependency_overrides[get_gateway_registry] = lambda: registry
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture(scope="function")
async def client(test_user, mock_registry):
    """Create a test client authenticated as a regular user."""
    try:
        async with await _client_for(test_user, mock_registry) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def admin_client(admin_user, mock_registry):
    """Create a test client authenticated as an admin."""
    try:
        async with await _client_for(admin_user, mock_registry) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
