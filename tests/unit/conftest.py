import hashlib
import hmac
import json
import time

import pytest

from packages.billing.models.domain.credentials import (
    GatewayConfig,
    PayPalCredentials,
    StripeCredentials,
)
from packages.billing.models.domain.enums import PaymentGateway

STRIPE_WEBHOOK_SECRET = "whsec_test_secret_value"


@pytest.fixture
def stripe_config():
    """Enabled Stripe configuration with test credentials."""
    return GatewayConfig(
        gateway=PaymentGateway.STRIPE,
        enabled=True,
        test_mode=True,
        credentials=StripeCredentials(
            publishable_key="pk_test_abcdef123456",
            secret_key="sk_test_abcdef123456",
            webhook_secret=STRIPE_WEBHOOK_SECRET,
        ),
    )


@pytest.fixture
def paypal_config():
    """Enabled PayPal sandbox configuration with test credentials."""
    return GatewayConfig(
        gateway=PaymentGateway.PAYPAL,
        enabled=True,
        test_mode=True,
        credentials=PayPalCredentials(
            client_id="paypal-client-id",
            client_secret="paypal-client-secret",
            webhook_id="WH-TEST-123",
        ),
    )


@pytest.fixture
def sign_stripe_payload():
    """Build a valid Stripe-Signature header for a payload."""

    def _sign(payload: dict, secret: str = STRIPE_WEBHOOK_SECRET) -> tuple[bytes, str]:
        body = json.dumps(payload)
        timestamp = int(time.time())
        signature = hmac.new(
            secret.encode("utf-8"),
            f"{timestamp}.{body}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return body.encode("utf-8"), f"t={timestamp},v1={signature}"

    return _sign
