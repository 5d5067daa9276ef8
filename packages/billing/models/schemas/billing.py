"""
API schemas for billing operations.

Request and response models for subscription, plan and webhook endpoints.
Field names are camelCase on the wire.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.enums import (
    BillingCycle,
    PaymentGateway,
    QuotaKind,
    SubscriptionStatus,
)
from packages.billing.models.domain.plans import Plan, PlanFeatures
from packages.billing.models.domain.usage import QuotaCheck


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutRequest(CamelModel):
    """Request to start a hosted checkout."""

    plan_id: int
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    gateway: PaymentGateway = PaymentGateway.STRIPE


class CheckoutResponse(CamelModel):
    checkout_url: str = Field(..., description="Provider-hosted checkout URL")
    session_id: str


# ============================================================================
# Portal & Cancellation Schemas
# ============================================================================


class PortalResponse(CamelModel):
    url: str = Field(..., description="Provider billing portal URL")


class CancelSubscriptionResponse(CamelModel):
    status: SubscriptionStatus
    canceled_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = Field(
        None, description="End of the billed period; quota checks fail once canceled"
    )


# ============================================================================
# Plan Schemas
# ============================================================================


class PlanResponse(CamelModel):
    """Public plan information."""

    id: int
    slug: str
    name: str
    description: Optional[str] = None
    price_monthly_cents: int
    price_yearly_cents: int
    yearly_savings_cents: int
    max_channels: int = Field(..., description="-1 = unlimited")
    max_episodes_per_month: int = Field(..., description="-1 = unlimited")
    max_api_calls: int = Field(..., description="-1 = unlimited, 0 = not included")
    features: PlanFeatures
    is_popular: bool = False
    sort_order: int = 0

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        return cls(
            **plan.model_dump(
                include=set(cls.model_fields) - {"yearly_savings_cents", "features"}
            ),
            yearly_savings_cents=plan.yearly_savings_cents,
            features=plan.features,
        )


class PlansResponse(CamelModel):
    plans: List[PlanResponse]


# ============================================================================
# Subscription Schemas
# ============================================================================


class UsageResponse(CamelModel):
    api_calls_used: int
    episodes_created: int
    usage_reset_at: Optional[datetime] = None


class SubscriptionResponse(CamelModel):
    """Current subscription with plan limits and cycle usage."""

    status: SubscriptionStatus
    has_access: bool = Field(..., description="Whether quota checks can pass")
    billing_cycle: BillingCycle
    gateway: Optional[PaymentGateway] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    plan: PlanResponse
    usage: UsageResponse


# ============================================================================
# Quota Schemas
# ============================================================================


class QuotaCheckResponse(CamelModel):
    kind: QuotaKind
    allowed: bool
    error: Optional[str] = None
    code: Optional[str] = None
    limit: Optional[int] = None
    usage: Optional[int] = None

    @classmethod
    def from_check(cls, check: QuotaCheck) -> "QuotaCheckResponse":
        return cls(**check.model_dump())


class QuotaStatusResponse(CamelModel):
    channel: QuotaCheckResponse
    episode: QuotaCheckResponse
    api: QuotaCheckResponse


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookResponse(BaseModel):
    received: bool = True
