"""
Domain models for subscriptions.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

from packages.billing.models.domain.enums import (
    SubscriptionStatus,
    BillingCycle,
    PaymentGateway,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Subscription(BaseModel):
    """
    User subscription domain model.

    A user without a row is on the implicit free tier; see
    QuotaGuard.get_or_create_subscription.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    plan_id: int

    status: SubscriptionStatus
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    gateway: Optional[PaymentGateway] = None
    external_id: Optional[str] = None
    customer_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    trial_ends_at: Optional[datetime] = None
    trial_consumed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    api_calls_used: int = 0
    episodes_created: int = 0
    usage_reset_at: datetime

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "current_period_start",
        "current_period_end",
        "trial_ends_at",
        "trial_consumed_at",
        "canceled_at",
        "usage_reset_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def normalize_utc(cls, v):
        return _as_utc(v)

    def has_access(self) -> bool:
        return self.status.has_access()


class SubscriptionCreateModel(BaseModel):
    """Model for creating a subscription row."""

    user_id: str
    plan_id: int
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    usage_reset_at: datetime


class SubscriptionUpdateModel(BaseModel):
    """Model for updating a subscription. Only explicitly set fields are written."""

    plan_id: Optional[int] = None
    status: Optional[SubscriptionStatus] = None
    billing_cycle: Optional[BillingCycle] = None

    gateway: Optional[PaymentGateway] = None
    external_id: Optional[str] = None
    customer_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    trial_ends_at: Optional[datetime] = None
    trial_consumed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
