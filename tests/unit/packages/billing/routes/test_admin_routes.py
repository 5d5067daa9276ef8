"""
Unit tests for the public plan listing and the admin routes.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from api.main import app
from packages.billing.models.domain.enums import PaymentGateway
from packages.billing.models.domain.events import ConnectionResult


@pytest.mark.asyncio
class TestPublicPlans:
    async def test_lists_active_plans(self, client, seeded_plans):
        response = await client.get("/api/v1/plans")

        assert response.status_code == 200
        plans = response.json()["plans"]
        assert [plan["slug"] for plan in plans] == ["free", "starter", "pro", "enterprise"]
        pro = plans[2]
        assert pro["isPopular"] is True
        assert pro["yearlySavingsCents"] == 9800
        assert "stripePriceMonthly" not in pro

    async def test_requires_no_auth(self, seeded_plans):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as anonymous:
            response = await anonymous.get("/api/v1/plans")

        assert response.status_code == 200


@pytest.mark.asyncio
class TestAdminAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/admin/gateways"),
            ("get", "/api/v1/admin/plans"),
            ("delete", "/api/v1/admin/plans/1"),
        ],
    )
    async def test_non_admin_is_forbidden(self, client, method, path):
        response = await getattr(client, method)(path)

        assert response.status_code == 403


@pytest.mark.asyncio
class TestAdminGateways:
    async def test_list_is_masked(self, admin_client):
        await admin_client.put(
            "/api/v1/admin/gateways",
            json={
                "gateway": "stripe",
                "credentials": {"secretKey": "sk_live_abcdef1234"},
            },
        )

        response = await admin_client.get("/api/v1/admin/gateways")

        assert response.status_code == 200
        stripe = response.json()["gateways"][0]
        assert stripe["gateway"] == "stripe"
        assert stripe["credentials"]["secretKey"] == "sk_l****1234"

    async def test_update_toggles(self, admin_client):
        response = await admin_client.put(
            "/api/v1/admin/gateways",
            json={"gateway": "paypal", "isEnabled": True, "testMode": False},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["isEnabled"] is True
        assert data["testMode"] is False

    async def test_unknown_credential_key(self, admin_client):
        response = await admin_client.put(
            "/api/v1/admin/gateways",
            json={"gateway": "stripe", "credentials": {"apiKey": "sk_live_abcdef1234"}},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    async def test_unknown_gateway(self, admin_client):
        response = await admin_client.put(
            "/api/v1/admin/gateways", json={"gateway": "square", "isEnabled": True}
        )

        assert response.status_code == 404

    async def test_connection_check(self, admin_client, mock_gateway, mock_registry):
        mock_gateway.test_connection.return_value = ConnectionResult(
            success=False, error="Stripe rejected the configured API key"
        )

        response = await admin_client.post(
            "/api/v1/admin/gateways", json={"gateway": "stripe", "action": "test"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "error": "Stripe rejected the configured API key",
        }
        mock_registry.resolve.assert_awaited_once_with(PaymentGateway.STRIPE)
        mock_gateway.aclose.assert_awaited_once()

    async def test_unsupported_action(self, admin_client):
        response = await admin_client.post(
            "/api/v1/admin/gateways", json={"gateway": "stripe", "action": "refund"}
        )

        assert response.status_code == 422


@pytest.mark.asyncio
class TestAdminPlans:
    async def test_list_includes_counts_and_inactive(
        self, admin_client, make_subscription, seeded_plans
    ):
        await make_subscription(plan_slug="pro")
        await admin_client.put(
            "/api/v1/admin/plans",
            json={"id": seeded_plans["enterprise"].id, "isActive": False},
        )

        response = await admin_client.get("/api/v1/admin/plans")

        plans = {plan["slug"]: plan for plan in response.json()["plans"]}
        assert plans["pro"]["subscriberCount"] == 1
        assert plans["enterprise"]["isActive"] is False

    async def test_create(self, admin_client, seeded_plans):
        response = await admin_client.post(
            "/api/v1/admin/plans",
            json={
                "slug": "team",
                "name": "Team",
                "priceMonthlyCents": 9900,
                "priceYearlyCents": 99000,
                "maxChannels": 25,
                "maxEpisodesPerMonth": 500,
                "maxApiCalls": 5000,
                "features": {"apiAccess": True},
                "stripePriceMonthly": "price_team_monthly",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "team"
        assert data["features"]["apiAccess"] is True
        assert data["stripePriceMonthly"] == "price_team_monthly"
        assert data["subscriberCount"] == 0

    async def test_create_rejects_unknown_feature(self, admin_client, seeded_plans):
        response = await admin_client.post(
            "/api/v1/admin/plans",
            json={"slug": "team", "name": "Team", "features": {"teleport": True}},
        )

        assert response.status_code == 422

    async def test_update_is_partial(self, admin_client, seeded_plans):
        starter = seeded_plans["starter"]

        response = await admin_client.put(
            "/api/v1/admin/plans",
            json={"id": starter.id, "stripePriceYearly": "price_starter_yearly"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["stripePriceYearly"] == "price_starter_yearly"
        assert data["maxApiCalls"] == starter.max_api_calls
        assert data["name"] == starter.name

    async def test_delete_in_use_conflicts(
        self, admin_client, make_subscription, seeded_plans
    ):
        await make_subscription(plan_slug="pro")

        response = await admin_client.delete(
            f"/api/v1/admin/plans/{seeded_plans['pro'].id}"
        )

        assert response.status_code == 409

    async def test_delete(self, admin_client, seeded_plans):
        response = await admin_client.delete(
            f"/api/v1/admin/plans/{seeded_plans['enterprise'].id}"
        )

        assert response.status_code == 204
