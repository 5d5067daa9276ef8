"""Billing API routes."""

from packages.billing.routes import (
    admin_gateways,
    admin_plans,
    billing,
    plans,
    webhooks,
)

__all__ = ["admin_gateways", "admin_plans", "billing", "plans", "webhooks"]
