"""Billing repositories."""

from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.repositories.gateway_credential_repository import (
    GatewayCredentialRepository,
)

__all__ = [
    "PlanRepository",
    "SubscriptionRepository",
    "GatewayCredentialRepository",
]
