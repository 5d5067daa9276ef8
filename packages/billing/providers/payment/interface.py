"""
Interface for payment gateways.

Abstracts checkout, cancellation, billing portal, webhook verification and
status mapping away from specific platforms (Stripe, PayPal).
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Mapping, Optional, Tuple

from packages.billing.exceptions import ConfigurationError
from packages.billing.models.domain.credentials import GatewayConfig
from packages.billing.models.domain.enums import (
    BillingCycle,
    PaymentGateway,
    SubscriptionStatus,
)
from packages.billing.models.domain.events import (
    CheckoutMetadata,
    CheckoutResult,
    ConnectionResult,
    Event,
    WebhookResult,
)
from packages.billing.models.domain.plans import Plan


class GatewayPort(ABC):
    """
    Capability interface every payment gateway adapter implements.

    Adapters receive their configuration at construction and never read
    credentials from anywhere else. Operations other than map_status and
    test_connection raise ConfigurationError before any network call when the
    gateway is disabled or missing required credentials.
    """

    gateway: ClassVar[PaymentGateway]
    # Lower-cased request headers that carry the webhook signature material
    signature_headers: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, config: GatewayConfig):
        self.config = config

    def ensure_configured(self) -> None:
        if not self.config.enabled:
            raise ConfigurationError(
                f"{self.gateway.value} gateway is not enabled", code="GATEWAY_DISABLED"
            )
        missing = self.config.credentials.missing_fields()
        if missing:
            raise ConfigurationError(
                f"{self.gateway.value} credentials are not configured: {', '.join(missing)}"
            )

    @abstractmethod
    async def create_checkout(
        self,
        plan: Plan,
        user_id: str,
        user_email: Optional[str],
        billing_cycle: BillingCycle,
        success_url: str,
        cancel_url: str,
        trial_days: int = 0,
        customer_id: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Start a hosted checkout for a subscription.

        Args:
            plan: Plan being purchased (must carry a price reference for the cycle)
            user_id: Owner of the subscription, echoed back on activation
            user_email: Prefilled payer email
            billing_cycle: Monthly or yearly price
            success_url: Redirect after approval
            cancel_url: Redirect when the payer backs out
            trial_days: Trial length; 0 for none
            customer_id: Existing provider customer to reuse

        Returns:
            CheckoutResult with redirect url and provider session id
        """
        pass

    @abstractmethod
    async def cancel_subscription(self, external_id: str) -> None:
        """Cancel a provider subscription. Already-canceled is not an error."""
        pass

    @abstractmethod
    async def create_portal(self, customer_id: str, return_url: str) -> str:
        """Return a URL where the customer manages billing."""
        pass

    @abstractmethod
    async def handle_webhook(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> WebhookResult:
        """
        Verify and normalize an inbound webhook.

        Authenticity is checked before the body is parsed. Verification
        failures return success=False without an event; recognized events
        that need no action return success=True without an event.
        """
        pass

    @abstractmethod
    async def test_connection(self) -> ConnectionResult:
        """Check credentials against the provider. Never raises."""
        pass

    @abstractmethod
    def map_status(self, provider_status: Optional[str]) -> SubscriptionStatus:
        """Translate provider status vocabulary to the canonical status."""
        pass

    @abstractmethod
    def checkout_metadata(self, event: Event) -> Optional[CheckoutMetadata]:
        """Recover checkout metadata carried in a created event's raw payload."""
        pass

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None
