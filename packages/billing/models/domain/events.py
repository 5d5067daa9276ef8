"""
Canonical billing events and gateway call results.

Every provider webhook is reduced to an Event before it reaches the
subscription state machine. Provider-specific data (checkout metadata,
payer ids) stays in ``raw``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from packages.billing.models.domain.enums import (
    BillingCycle,
    EventType,
    PaymentGateway,
    SubscriptionStatus,
)


class Event(BaseModel):
    """Provider-agnostic billing state change."""

    type: EventType
    gateway: PaymentGateway
    subscription_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class CheckoutMetadata(BaseModel):
    """Data carried through a provider checkout and returned on activation."""

    user_id: str
    plan_id: int
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    trial_days: int = 0


class WebhookResult(BaseModel):
    """
    Outcome of GatewayPort.handle_webhook.

    success=True with event=None means the provider event was recognized and
    deliberately ignored.
    """

    success: bool
    error: Optional[str] = None
    event: Optional[Event] = None


class CheckoutResult(BaseModel):
    url: str
    session_id: str


class ConnectionResult(BaseModel):
    success: bool
    error: Optional[str] = None


class TransitionOutcome(str, Enum):
    """Result of applying an event to the subscription state machine."""

    APPLIED = "applied"
    IGNORED_DUPLICATE = "ignored_duplicate"
    IGNORED_STALE = "ignored_stale"
    IGNORED_UNKNOWN = "ignored_unknown"
    IGNORED_STATE = "ignored_state"
