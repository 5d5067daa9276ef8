"""
Unit tests for the webhook endpoint.

The end-to-end cases run the real Stripe adapter against stored test
credentials; the others use the mocked gateway.
"""

import pytest
import pytest_asyncio

from api.main import app
from packages.billing.exceptions import TransientProviderError
from packages.billing.models.domain.enums import PaymentGateway, SubscriptionStatus
from packages.billing.models.domain.events import WebhookResult
from packages.billing.providers.payment.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.credential_service import CredentialService

STRIPE_WEBHOOK_SECRET = "whsec_test_secret_value"


@pytest_asyncio.fixture
async def stripe_enabled(client, seeded_plans):
    await CredentialService().update(
        PaymentGateway.STRIPE,
        is_enabled=True,
        credentials={
            "secretKey": "sk_test_abcdef123456",
            "webhookSecret": STRIPE_WEBHOOK_SECRET,
        },
    )
    app.dependency_overrides[get_gateway_registry] = lambda: GatewayRegistry()


def checkout_completed(plan_id: int) -> dict:
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "customer": "cus_123",
                "subscription": "sub_123",
                "client_reference_id": "user_123",
                "metadata": {
                    "userId": "user_123",
                    "planId": str(plan_id),
                    "billingCycle": "monthly",
                    "trialDays": "0",
                },
            }
        },
    }


@pytest.mark.asyncio
class TestStripeWebhookEndToEnd:
    async def test_signed_checkout_activates_subscription(
        self, client, stripe_enabled, seeded_plans, sign_stripe_payload
    ):
        body, signature = sign_stripe_payload(checkout_completed(seeded_plans["pro"].id))

        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        subscription = await SubscriptionRepository().get_by_user_id("user_123")
        assert subscription.plan_id == seeded_plans["pro"].id
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.external_id == "sub_123"

    async def test_redelivery_is_acknowledged(
        self, client, stripe_enabled, seeded_plans, sign_stripe_payload
    ):
        body, signature = sign_stripe_payload(checkout_completed(seeded_plans["pro"].id))
        headers = {"Stripe-Signature": signature}

        first = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
        second = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200

    async def test_redelivery_after_deletion_keeps_free_plan(
        self, client, stripe_enabled, seeded_plans, sign_stripe_payload
    ):
        checkout_body, checkout_signature = sign_stripe_payload(
            checkout_completed(seeded_plans["pro"].id)
        )
        deleted_body, deleted_signature = sign_stripe_payload(
            {
                "id": "evt_2",
                "type": "customer.subscription.deleted",
                "data": {
                    "object": {"id": "sub_123", "customer": "cus_123", "status": "canceled"}
                },
            }
        )

        for body, signature in [
            (checkout_body, checkout_signature),
            (deleted_body, deleted_signature),
            (checkout_body, checkout_signature),
        ]:
            response = await client.post(
                "/api/v1/webhooks/stripe",
                content=body,
                headers={"Stripe-Signature": signature},
            )
            assert response.status_code == 200

        subscription = await SubscriptionRepository().get_by_user_id("user_123")
        assert subscription.plan_id == seeded_plans["free"].id
        assert subscription.external_id is None

    async def test_bad_signature_changes_nothing(
        self, client, stripe_enabled, seeded_plans, sign_stripe_payload
    ):
        body, _ = sign_stripe_payload(checkout_completed(seeded_plans["pro"].id))
        _, forged = sign_stripe_payload({"id": "other"})

        response = await client.post(
            "/api/v1/webhooks/stripe", content=body, headers={"Stripe-Signature": forged}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VERIFICATION_FAILED"
        assert await SubscriptionRepository().get_by_user_id("user_123") is None

    async def test_unknown_plan_is_acknowledged(
        self, client, stripe_enabled, sign_stripe_payload
    ):
        body, signature = sign_stripe_payload(checkout_completed(9999))

        response = await client.post(
            "/api/v1/webhooks/stripe", content=body, headers={"Stripe-Signature": signature}
        )

        assert response.status_code == 200
        assert await SubscriptionRepository().get_by_user_id("user_123") is None


@pytest.mark.asyncio
class TestWebhookErrors:
    async def test_unknown_provider(self, client):
        response = await client.post("/api/v1/webhooks/square", content=b"{}")

        assert response.status_code == 404

    async def test_rejected_verification(self, client, mock_gateway):
        mock_gateway.handle_webhook.return_value = WebhookResult(
            success=False, error="Missing PayPal transmission headers"
        )

        response = await client.post("/api/v1/webhooks/paypal", content=b"{}")

        assert response.status_code == 400
        assert response.json() == {
            "error": "Missing PayPal transmission headers",
            "code": "VERIFICATION_FAILED",
        }

    async def test_provider_outage_asks_for_retry(self, client, mock_gateway):
        mock_gateway.handle_webhook.side_effect = TransientProviderError()

        response = await client.post("/api/v1/webhooks/paypal", content=b"{}")

        assert response.status_code == 503

    async def test_disabled_gateway(self, client, seeded_plans):
        await CredentialService().seed_defaults()
        app.dependency_overrides[get_gateway_registry] = lambda: GatewayRegistry()

        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "GATEWAY_DISABLED"
