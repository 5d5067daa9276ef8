"""Billing database entities."""

from packages.billing.models.database.plan import PlanEntity
from packages.billing.models.database.subscription import (
    EndedSubscriptionEntity,
    SubscriptionEntity,
)
from packages.billing.models.database.gateway_credential import (
    GatewayCredentialEntity,
)

__all__ = [
    "PlanEntity",
    "SubscriptionEntity",
    "EndedSubscriptionEntity",
    "GatewayCredentialEntity",
]
