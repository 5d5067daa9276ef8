"""
Unit tests for the subscription API routes.
"""

import pytest
from datetime import datetime, timezone

from common.core.config import settings
from packages.billing.exceptions import TransientProviderError
from packages.billing.models.domain.enums import PaymentGateway, SubscriptionStatus
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)

FEB_1 = datetime(2026, 2, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
class TestGetSubscription:
    async def test_new_user_is_on_free_plan(self, client, seeded_plans):
        response = await client.get("/api/v1/subscription")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert data["hasAccess"] is True
        assert data["plan"]["slug"] == "free"
        assert data["plan"]["maxApiCalls"] == 0
        assert data["plan"]["features"]["characterCustomization"] is True
        assert data["usage"]["apiCallsUsed"] == 0
        assert data["usage"]["usageResetAt"] is None
        assert data["gateway"] is None
        assert await SubscriptionRepository().get_by_user_id("user_123") is None

    async def test_viewing_status_keeps_trial_eligibility(
        self, client, priced_plans, mock_gateway
    ):
        status = await client.get("/api/v1/subscription")
        assert status.status_code == 200

        response = await client.post(
            "/api/v1/subscription/checkout",
            json={"planId": priced_plans["starter"].id},
        )

        assert response.status_code == 200
        kwargs = mock_gateway.create_checkout.call_args.kwargs
        assert kwargs["trial_days"] == settings.trial_days == 14

    async def test_paid_subscription(self, client, make_subscription):
        await make_subscription(
            plan_slug="pro",
            status=SubscriptionStatus.PAST_DUE,
            gateway=PaymentGateway.STRIPE,
            external_id="sub_1",
            episodes_created=12,
        )

        response = await client.get("/api/v1/subscription")

        data = response.json()
        assert data["status"] == "past_due"
        assert data["hasAccess"] is False
        assert data["gateway"] == "stripe"
        assert data["plan"]["slug"] == "pro"
        assert data["plan"]["yearlySavingsCents"] == 4900 * 12 - 49000
        assert data["usage"]["episodesCreated"] == 12


@pytest.mark.asyncio
class TestQuotaStatus:
    async def test_reports_without_consuming(self, client, make_subscription):
        await make_subscription(plan_slug="starter", api_calls_used=500)

        response = await client.get("/api/v1/subscription/quota?channel_count=1")

        assert response.status_code == 200
        data = response.json()
        assert data["channel"]["allowed"] is True
        assert data["episode"]["allowed"] is True
        assert data["api"]["allowed"] is False
        assert data["api"]["code"] == "LIMIT_EXCEEDED"

        again = await client.get("/api/v1/subscription/quota")
        assert again.json()["api"]["usage"] == 500

    async def test_free_plan_api_not_included(self, client, seeded_plans):
        response = await client.get("/api/v1/subscription/quota")

        assert response.json()["api"]["code"] == "NOT_INCLUDED_IN_PLAN"


@pytest.mark.asyncio
class TestCheckout:
    async def test_creates_checkout(self, client, priced_plans, mock_gateway):
        response = await client.post(
            "/api/v1/subscription/checkout",
            json={"planId": priced_plans["starter"].id, "billingCycle": "monthly"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "checkoutUrl": "https://checkout.stripe.com/c/pay/cs_test_123",
            "sessionId": "cs_test_123",
        }
        kwargs = mock_gateway.create_checkout.call_args.kwargs
        assert kwargs["user_email"] == "user@example.com"

    async def test_paypal_checkout(self, client, priced_plans, mock_registry):
        response = await client.post(
            "/api/v1/subscription/checkout",
            json={"planId": priced_plans["pro"].id, "gateway": "paypal"},
        )

        assert response.status_code == 200
        mock_registry.resolve.assert_awaited_once_with(PaymentGateway.PAYPAL)

    async def test_unknown_plan(self, client, priced_plans):
        response = await client.post(
            "/api/v1/subscription/checkout", json={"planId": 9999}
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_free_plan_conflict(self, client, priced_plans):
        response = await client.post(
            "/api/v1/subscription/checkout", json={"planId": priced_plans["free"].id}
        )

        assert response.status_code == 409
        assert response.json()["code"] == "STATE_CONFLICT"

    async def test_unconfigured_price(self, client, priced_plans):
        response = await client.post(
            "/api/v1/subscription/checkout",
            json={"planId": priced_plans["enterprise"].id},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    async def test_provider_outage(self, client, priced_plans, mock_gateway):
        mock_gateway.create_checkout.side_effect = TransientProviderError()

        response = await client.post(
            "/api/v1/subscription/checkout", json={"planId": priced_plans["pro"].id}
        )

        assert response.status_code == 503
        assert response.json()["code"] == "PROVIDER_UNAVAILABLE"

    async def test_invalid_body(self, client, priced_plans):
        response = await client.post(
            "/api/v1/subscription/checkout",
            json={"planId": priced_plans["pro"].id, "billingCycle": "weekly"},
        )

        assert response.status_code == 422


@pytest.mark.asyncio
class TestPortal:
    async def test_portal(self, client, make_subscription):
        await make_subscription(
            gateway=PaymentGateway.STRIPE, external_id="sub_1", customer_id="cus_1"
        )

        response = await client.post("/api/v1/subscription/portal")

        assert response.status_code == 200
        assert response.json()["url"] == "https://billing.stripe.com/p/session/test_123"

    async def test_no_billing_account(self, client, seeded_plans):
        response = await client.post("/api/v1/subscription/portal")

        assert response.status_code == 404


@pytest.mark.asyncio
class TestCancel:
    async def test_soft_cancel(self, client, make_subscription, mock_gateway):
        await make_subscription(
            gateway=PaymentGateway.STRIPE,
            external_id="sub_1",
            current_period_end=FEB_1,
        )

        response = await client.post("/api/v1/subscription/cancel")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "canceled"
        assert data["canceledAt"] is not None
        assert data["currentPeriodEnd"].startswith("2026-02-01")
        assert "accessUntil" not in data
        mock_gateway.cancel_subscription.assert_awaited_once_with("sub_1")

    async def test_quota_is_denied_after_cancel(self, client, make_subscription):
        await make_subscription(plan_slug="starter", current_period_end=FEB_1)

        await client.post("/api/v1/subscription/cancel")
        response = await client.get("/api/v1/subscription/quota")

        data = response.json()
        assert data["api"]["allowed"] is False
        assert data["api"]["code"] == "SUBSCRIPTION_INACTIVE"
        assert data["episode"]["code"] == "SUBSCRIPTION_INACTIVE"

    async def test_cancel_twice(self, client, make_subscription):
        await make_subscription()

        first = await client.post("/api/v1/subscription/cancel")
        second = await client.post("/api/v1/subscription/cancel")

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json() == {
            "error": "Subscription is already canceled",
            "code": "STATE_CONFLICT",
        }

    async def test_no_subscription(self, client, seeded_plans):
        response = await client.post("/api/v1/subscription/cancel")

        assert response.status_code == 404
