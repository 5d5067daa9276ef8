"""
Domain models for Stripe webhook payloads.

Strongly-typed Pydantic models for the Stripe events the billing core
consumes. Only fields that are read are declared; everything else is ignored.
"""

from typing import Any, List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StripeWebhookType(str, Enum):
    """Stripe webhook event types we act on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class StripeSubscriptionStatus(str, Enum):
    """Stripe subscription status values."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class StripeCheckoutMetadata(BaseModel):
    """Metadata we attach to checkout sessions (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: Optional[str] = None
    plan_id: Optional[str] = None
    billing_cycle: Optional[str] = None
    trial_days: Optional[str] = None


class StripeCheckoutSessionData(BaseModel):
    """Stripe checkout session object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    client_reference_id: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: StripeCheckoutMetadata = Field(default_factory=StripeCheckoutMetadata)


class StripeSubscriptionItem(BaseModel):
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionData(BaseModel):
    """
    Stripe subscription object.

    Newer API versions report the billing period on the subscription items
    instead of the subscription itself.
    """

    id: str
    customer: Optional[str] = None
    status: str
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    canceled_at: Optional[int] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)

    def period(self) -> tuple[Optional[int], Optional[int]]:
        start, end = self.current_period_start, self.current_period_end
        if (start is None or end is None) and self.items.data:
            item = self.items.data[0]
            start = start if start is not None else item.current_period_start
            end = end if end is not None else item.current_period_end
        return start, end


class StripeEventData(BaseModel):
    object: dict[str, Any]


class StripeWebhookPayload(BaseModel):
    """Top-level Stripe event envelope."""

    id: str
    type: str
    livemode: bool = False
    data: StripeEventData
