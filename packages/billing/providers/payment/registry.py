"""
Gateway registry.

Closed mapping from PaymentGateway to its adapter. Every supported gateway is
listed here; resolving a gateway loads its stored configuration and builds
a configured adapter for the current request.
"""

from typing import Callable, Mapping, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.billing.exceptions import NotFoundError
from packages.billing.models.domain.credentials import GatewayConfig
from packages.billing.models.domain.enums import PaymentGateway
from packages.billing.providers.payment.interface import GatewayPort
from packages.billing.providers.payment.paypal_payment import PayPalPaymentProvider
from packages.billing.providers.payment.stripe_payment import StripePaymentProvider
from packages.billing.services.credential_service import CredentialService

logger = get_logger(__name__)

AdapterFactory = Callable[[GatewayConfig], GatewayPort]

GATEWAY_ADAPTERS: Mapping[PaymentGateway, AdapterFactory] = {
    PaymentGateway.STRIPE: lambda config: StripePaymentProvider(
        config, timeout=settings.gateway_timeout_seconds
    ),
    PaymentGateway.PAYPAL: lambda config: PayPalPaymentProvider(
        config, timeout=settings.gateway_timeout_seconds
    ),
}


def parse_gateway(name: str) -> PaymentGateway:
    """Resolve a path/body gateway name, raising NotFoundError for unknown ones."""
    try:
        return PaymentGateway(name.lower())
    except ValueError:
        raise NotFoundError(f"Unknown payment gateway: {name}")


class GatewayRegistry:
    """Builds configured GatewayPort adapters from stored credentials."""

    def __init__(
        self,
        credential_service: Optional[CredentialService] = None,
        adapters: Mapping[PaymentGateway, AdapterFactory] = GATEWAY_ADAPTERS,
    ):
        missing = set(PaymentGateway) - set(adapters)
        if missing:
            raise ValueError(
                f"No adapter registered for: {', '.join(sorted(g.value for g in missing))}"
            )
        self.credential_service = credential_service or CredentialService()
        self.adapters = adapters

    async def resolve(self, gateway: PaymentGateway) -> GatewayPort:
        config = await self.credential_service.get_config(gateway)
        return self.adapters[gateway](config)


def get_gateway_registry() -> GatewayRegistry:
    """FastAPI dependency returning the gateway registry."""
    return GatewayRegistry()
