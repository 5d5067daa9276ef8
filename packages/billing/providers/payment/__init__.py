"""Payment gateways - checkout, cancellation, portal and webhooks."""

from packages.billing.providers.payment.interface import GatewayPort

__all__ = [
    "GatewayPort",
]
