"""
Domain models for subscription plans.
"""

import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.enums import (
    BillingCycle,
    PaymentGateway,
    PlanFeature,
    UNLIMITED,
)


class PlanFeatures(BaseModel):
    """
    Feature flags granted by a plan.

    Stored as camelCase JSON text; unknown keys are rejected so a typo in an
    admin edit cannot silently grant nothing.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    api_access: bool = False
    advanced_cinematic_styles: bool = False
    all_narrative_templates: bool = False
    character_customization: bool = False
    youtube_strategies: bool = False
    priority_support: bool = False
    custom_integrations: bool = False

    @classmethod
    def from_storage(cls, raw: Optional[str]) -> "PlanFeatures":
        if not raw:
            return cls()
        return cls.model_validate(json.loads(raw))

    def to_storage(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), sort_keys=True)

    def has(self, feature: PlanFeature) -> bool:
        return bool(self.model_dump(by_alias=True).get(feature.value, False))


def _parse_features(value):
    if isinstance(value, str):
        return PlanFeatures.from_storage(value)
    return value


class Plan(BaseModel):
    """Subscription plan domain model."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str
    description: Optional[str] = None

    price_monthly_cents: int = 0
    price_yearly_cents: int = 0

    # -1 = unlimited, 0 = disabled
    max_channels: int = Field(ge=UNLIMITED)
    max_episodes_per_month: int = Field(ge=UNLIMITED)
    max_api_calls: int = Field(ge=UNLIMITED)

    features: PlanFeatures = Field(default_factory=PlanFeatures)

    stripe_price_monthly: Optional[str] = None
    stripe_price_yearly: Optional[str] = None
    paypal_plan_monthly: Optional[str] = None
    paypal_plan_yearly: Optional[str] = None

    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("features", mode="before")
    @classmethod
    def parse_features(cls, v):
        return _parse_features(v)

    @property
    def is_paid(self) -> bool:
        return self.price_monthly_cents > 0

    @property
    def yearly_savings_cents(self) -> int:
        return self.price_monthly_cents * 12 - self.price_yearly_cents

    def price_reference(
        self, gateway: PaymentGateway, billing_cycle: BillingCycle
    ) -> Optional[str]:
        """Provider-side price/plan id for the given gateway and cycle."""
        yearly = billing_cycle == BillingCycle.YEARLY
        if gateway == PaymentGateway.STRIPE:
            return self.stripe_price_yearly if yearly else self.stripe_price_monthly
        return self.paypal_plan_yearly if yearly else self.paypal_plan_monthly

    def price_cents(self, billing_cycle: BillingCycle) -> int:
        if billing_cycle == BillingCycle.YEARLY:
            return self.price_yearly_cents
        return self.price_monthly_cents


class PlanCreateModel(BaseModel):
    """Model for creating a new plan."""

    slug: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    price_monthly_cents: int = Field(default=0, ge=0)
    price_yearly_cents: int = Field(default=0, ge=0)
    max_channels: int = Field(default=1, ge=UNLIMITED)
    max_episodes_per_month: int = Field(default=5, ge=UNLIMITED)
    max_api_calls: int = Field(default=0, ge=UNLIMITED)
    features: PlanFeatures = Field(default_factory=PlanFeatures)
    stripe_price_monthly: Optional[str] = None
    stripe_price_yearly: Optional[str] = None
    paypal_plan_monthly: Optional[str] = None
    paypal_plan_yearly: Optional[str] = None
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0


class PlanUpdateModel(BaseModel):
    """Model for partially updating a plan."""

    slug: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    price_monthly_cents: Optional[int] = Field(default=None, ge=0)
    price_yearly_cents: Optional[int] = Field(default=None, ge=0)
    max_channels: Optional[int] = Field(default=None, ge=UNLIMITED)
    max_episodes_per_month: Optional[int] = Field(default=None, ge=UNLIMITED)
    max_api_calls: Optional[int] = Field(default=None, ge=UNLIMITED)
    features: Optional[PlanFeatures] = None
    stripe_price_monthly: Optional[str] = None
    stripe_price_yearly: Optional[str] = None
    paypal_plan_monthly: Optional[str] = None
    paypal_plan_yearly: Optional[str] = None
    is_active: Optional[bool] = None
    is_popular: Optional[bool] = None
    sort_order: Optional[int] = None
