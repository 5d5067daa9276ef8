"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    BillingCycle,
    EventType,
    PaymentGateway,
    PlanFeature,
    QuotaKind,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.usage import (
    QuotaCheck,
    UsageSnapshot,
)

__all__ = [
    # Enums
    "BillingCycle",
    "EventType",
    "PaymentGateway",
    "PlanFeature",
    "QuotaKind",
    "SubscriptionStatus",
    # Subscription
    "Subscription",
    "SubscriptionCreateModel",
    "SubscriptionUpdateModel",
    # Usage
    "QuotaCheck",
    "UsageSnapshot",
]
