"""
Domain models for PayPal subscription webhook payloads.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class PayPalWebhookType(str, Enum):
    """PayPal webhook event types we act on."""

    SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
    SUBSCRIPTION_UPDATED = "BILLING.SUBSCRIPTION.UPDATED"
    SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
    SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
    SUBSCRIPTION_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"


class PayPalSubscriber(BaseModel):
    payer_id: Optional[str] = None
    email_address: Optional[str] = None


class PayPalLastPayment(BaseModel):
    time: Optional[str] = None


class PayPalBillingInfo(BaseModel):
    next_billing_time: Optional[str] = None
    last_payment: Optional[PayPalLastPayment] = None


class PayPalSubscriptionResource(BaseModel):
    """PayPal subscription resource embedded in BILLING.SUBSCRIPTION.* events."""

    id: str
    status: Optional[str] = None
    plan_id: Optional[str] = None
    custom_id: Optional[str] = None
    start_time: Optional[str] = None
    status_update_time: Optional[str] = None
    subscriber: PayPalSubscriber = Field(default_factory=PayPalSubscriber)
    billing_info: Optional[PayPalBillingInfo] = None


class PayPalWebhookPayload(BaseModel):
    """Top-level PayPal webhook envelope."""

    id: str
    event_type: str
    resource: dict[str, Any] = Field(default_factory=dict)


class PayPalSignatureHeaders(BaseModel):
    """Transmission bundle PayPal sends with every webhook."""

    auth_algo: str
    cert_url: str
    transmission_id: str
    transmission_sig: str
    transmission_time: str
