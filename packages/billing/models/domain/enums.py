"""
Billing enums - strongly typed enumerations for subscription and billing states.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    Canonical subscription status.

    Flow: trialing -> active -> past_due -> canceled | expired
    """

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"  # Payment failed, provider is retrying
    CANCELED = "canceled"  # Soft cancel, access until period end
    EXPIRED = "expired"

    def has_access(self) -> bool:
        """Check if this status passes quota checks."""
        return self in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

    def accepts_updates(self) -> bool:
        """Check if provider update events may change this status."""
        return self in (
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.PAST_DUE,
        )


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentGateway(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    PAYPAL = "paypal"


class EventType(str, Enum):
    """Canonical webhook event types."""

    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_DELETED = "subscription.deleted"


class QuotaKind(str, Enum):
    CHANNEL = "channel"
    EPISODE = "episode"
    API = "api"


class PlanFeature(str, Enum):
    """Feature flags a plan can grant. Values are the stored keys."""

    API_ACCESS = "apiAccess"
    ADVANCED_CINEMATIC_STYLES = "advancedCinematicStyles"
    ALL_NARRATIVE_TEMPLATES = "allNarrativeTemplates"
    CHARACTER_CUSTOMIZATION = "characterCustomization"
    YOUTUBE_STRATEGIES = "youtubeStrategies"
    PRIORITY_SUPPORT = "prioritySupport"
    CUSTOM_INTEGRATIONS = "customIntegrations"


FREE_PLAN_SLUG = "free"
UNLIMITED = -1
