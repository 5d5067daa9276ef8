from fastapi import APIRouter, Depends

from api.v1.routes import (
    health,
)
from packages.auth.dependencies import get_current_active_user, get_current_admin_user
from packages.billing.routes import admin_gateways, admin_plans, billing, plans, webhooks

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no auth - signature verified by the provider adapter)
api_router.include_router(webhooks.router, tags=["webhooks"])

# Plans (no auth - public pricing info)
api_router.include_router(plans.router, prefix="/plans", tags=["billing"])

# Subscription routes (require auth)
api_router.include_router(
    billing.router,
    prefix="/subscription",
    tags=["billing"],
    dependencies=[Depends(get_current_active_user)],
)

# Admin routes
api_router.include_router(
    admin_gateways.router,
    prefix="/admin/gateways",
    tags=["billing-admin"],
    dependencies=[Depends(get_current_admin_user)],
)
api_router.include_router(
    admin_plans.router,
    prefix="/admin/plans",
    tags=["billing-admin"],
    dependencies=[Depends(get_current_admin_user)],
)
