"""
API schemas for billing administration: gateways and plans.
"""

from typing import Dict, List, Literal, Optional
from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.credentials import MaskedGatewayCredential
from packages.billing.models.domain.plans import Plan, PlanCreateModel, PlanUpdateModel
from packages.billing.models.schemas.billing import CamelModel, PlanResponse


# ============================================================================
# Gateway Schemas
# ============================================================================


class GatewayResponse(CamelModel):
    """Gateway settings with masked credentials."""

    gateway: str
    display_name: str
    is_enabled: bool
    test_mode: bool
    credentials: Dict[str, str]
    sort_order: int = 0

    @classmethod
    def from_masked(cls, masked: MaskedGatewayCredential) -> "GatewayResponse":
        return cls(
            gateway=masked.gateway.value,
            display_name=masked.display_name,
            is_enabled=masked.is_enabled,
            test_mode=masked.test_mode,
            credentials=masked.credentials,
            sort_order=masked.sort_order,
        )


class GatewayListResponse(CamelModel):
    gateways: List[GatewayResponse]


class GatewayUpdateRequest(CamelModel):
    """
    Partial gateway update. Credential values that are empty or still
    masked are ignored, so the masked form can be resubmitted as-is.
    """

    gateway: str
    is_enabled: Optional[bool] = None
    test_mode: Optional[bool] = None
    display_name: Optional[str] = None
    credentials: Optional[Dict[str, Optional[str]]] = None


class GatewayActionRequest(CamelModel):
    gateway: str
    action: Literal["test"]


class GatewayTestResponse(CamelModel):
    success: bool
    error: Optional[str] = None


# ============================================================================
# Plan Schemas
# ============================================================================


class AdminPlanResponse(PlanResponse):
    stripe_price_monthly: Optional[str] = None
    stripe_price_yearly: Optional[str] = None
    paypal_plan_monthly: Optional[str] = None
    paypal_plan_yearly: Optional[str] = None
    is_active: bool = True
    subscriber_count: int = 0

    @classmethod
    def from_plan_with_count(cls, plan: Plan, subscriber_count: int) -> "AdminPlanResponse":
        public = PlanResponse.from_plan(plan)
        return cls(
            **public.model_dump(exclude={"features"}),
            features=plan.features,
            stripe_price_monthly=plan.stripe_price_monthly,
            stripe_price_yearly=plan.stripe_price_yearly,
            paypal_plan_monthly=plan.paypal_plan_monthly,
            paypal_plan_yearly=plan.paypal_plan_yearly,
            is_active=plan.is_active,
            subscriber_count=subscriber_count,
        )


class AdminPlanListResponse(CamelModel):
    plans: List[AdminPlanResponse]


class AdminPlanCreateRequest(PlanCreateModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdminPlanUpdateRequest(PlanUpdateModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int = Field(..., description="Plan to update")

    def to_update_model(self) -> PlanUpdateModel:
        return PlanUpdateModel(**self.model_dump(exclude_unset=True, exclude={"id"}))
