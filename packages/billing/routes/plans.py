"""
Plans API routes.

Public endpoint for retrieving available subscription plans.
"""

from fastapi import APIRouter

from packages.billing.models.schemas.billing import PlanResponse, PlansResponse
from packages.billing.services.plans_service import PlansService

router = APIRouter()


@router.get("", response_model=PlansResponse)
async def get_plans():
    """
    Get all active subscription plans.

    Returns pricing, yearly savings, limits and features for each plan.
    This endpoint is public (no auth required) for pricing pages.
    """
    plans = await PlansService().get_public_plans()
    return PlansResponse(plans=[PlanResponse.from_plan(plan) for plan in plans])
