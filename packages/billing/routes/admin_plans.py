"""
Admin routes for the plan catalogue.
"""

from fastapi import APIRouter, status

from packages.billing.models.schemas.admin import (
    AdminPlanCreateRequest,
    AdminPlanListResponse,
    AdminPlanResponse,
    AdminPlanUpdateRequest,
)
from packages.billing.services.plans_service import PlansService

router = APIRouter()


@router.get("", response_model=AdminPlanListResponse)
async def list_plans():
    """List all plans, including inactive ones, with subscriber counts."""
    plans = await PlansService().list_with_subscriber_counts()
    return AdminPlanListResponse(
        plans=[AdminPlanResponse.from_plan_with_count(plan, count) for plan, count in plans]
    )


@router.post("", response_model=AdminPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(request: AdminPlanCreateRequest):
    plan = await PlansService().create_plan(request)
    return AdminPlanResponse.from_plan_with_count(plan, 0)


@router.put("", response_model=AdminPlanResponse)
async def update_plan(request: AdminPlanUpdateRequest):
    """Partially update a plan. Only fields present in the body change."""
    plans_service = PlansService()
    plan = await plans_service.update_plan(request.id, request.to_update_model())
    count = await plans_service.plan_repo.count_subscriptions(plan.id)
    return AdminPlanResponse.from_plan_with_count(plan, count)


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(plan_id: int):
    """Delete a plan. Refused while subscriptions reference it."""
    await PlansService().delete_plan(plan_id)
