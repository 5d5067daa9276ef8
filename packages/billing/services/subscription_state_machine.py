"""
Subscription lifecycle state machine.

Applies canonical webhook events and the user's cancel action to the
subscription row. Benign no-ops (replays, stale or unknown events) are
returned as a TransitionOutcome so webhook handlers can acknowledge them;
only genuine failures raise.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utcnow
from common.db.scoped import transaction
from packages.billing.exceptions import NotFoundError, StateConflictError
from packages.billing.models.domain.enums import EventType, SubscriptionStatus
from packages.billing.models.domain.events import Event, TransitionOutcome
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
)
from packages.billing.providers.payment.interface import GatewayPort
from packages.billing.providers.payment.registry import GatewayRegistry
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.usage_service import UsageMeter

logger = get_logger(__name__)


class SubscriptionStateMachine:
    """Transitions a user's subscription in response to events and actions."""

    def __init__(
        self,
        subscription_repo: Optional[SubscriptionRepository] = None,
        plan_repo: Optional[PlanRepository] = None,
        usage_meter: Optional[UsageMeter] = None,
    ):
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.plan_repo = plan_repo or PlanRepository()
        self.usage_meter = usage_meter or UsageMeter(self.subscription_repo)

    @trace_span
    async def apply(self, event: Event, adapter: GatewayPort) -> TransitionOutcome:
        if not event.subscription_id:
            logger.warning(
                f"Ignoring {event.type.value} without subscription id",
                extra={"provider": event.gateway.value},
            )
            return TransitionOutcome.IGNORED_UNKNOWN

        if event.type == EventType.SUBSCRIPTION_CREATED:
            outcome = await self._on_created(event, adapter)
        elif event.type == EventType.SUBSCRIPTION_UPDATED:
            outcome = await self._on_updated(event)
        else:
            outcome = await self._on_deleted(event)

        log = logger.info if outcome == TransitionOutcome.APPLIED else logger.debug
        log(
            f"{event.type.value} -> {outcome.value}",
            extra={
                "provider": event.gateway.value,
                "event_type": event.type.value,
                "subscription_id": event.subscription_id,
                "status": event.status.value if event.status else None,
            },
        )
        return outcome

    async def _on_created(self, event: Event, adapter: GatewayPort) -> TransitionOutcome:
        metadata = adapter.checkout_metadata(event)
        if metadata is None:
            logger.warning(
                "Checkout completed without user/plan metadata",
                extra={
                    "provider": event.gateway.value,
                    "subscription_id": event.subscription_id,
                },
            )
            return TransitionOutcome.IGNORED_UNKNOWN

        plan = await self.plan_repo.get(metadata.plan_id)
        if plan is None:
            logger.error(
                f"Checkout completed for unknown plan {metadata.plan_id}",
                extra={
                    "provider": event.gateway.value,
                    "subscription_id": event.subscription_id,
                    "user_id": metadata.user_id,
                },
            )
            return TransitionOutcome.IGNORED_UNKNOWN

        now = utcnow()
        status = event.status or SubscriptionStatus.ACTIVE

        async with transaction():
            if await self.subscription_repo.is_ended(
                event.gateway, event.subscription_id
            ):
                logger.warning(
                    "Checkout completed for a subscription that has already ended",
                    extra={
                        "provider": event.gateway.value,
                        "subscription_id": event.subscription_id,
                        "user_id": metadata.user_id,
                    },
                )
                return TransitionOutcome.IGNORED_STATE

            existing = await self.subscription_repo.get_by_external_id(
                event.gateway, event.subscription_id
            )
            if existing is not None:
                return TransitionOutcome.IGNORED_DUPLICATE

            subscription = await self.subscription_repo.get_or_create(
                SubscriptionCreateModel(
                    user_id=metadata.user_id,
                    plan_id=plan.id,
                    status=status,
                    billing_cycle=metadata.billing_cycle,
                    usage_reset_at=self.usage_meter.first_reset_at(now),
                )
            )

            values: Dict[str, Any] = {
                "plan_id": plan.id,
                "status": status.value,
                "billing_cycle": metadata.billing_cycle.value,
                "gateway": event.gateway.value,
                "external_id": event.subscription_id,
                "customer_id": event.customer_id,
                "current_period_start": event.current_period_start,
                "current_period_end": event.current_period_end,
                "trial_ends_at": None,
                "canceled_at": None,
            }
            if status == SubscriptionStatus.TRIALING:
                trial_days = metadata.trial_days or settings.trial_days
                values["trial_ends_at"] = now + timedelta(days=trial_days)
                values["trial_consumed_at"] = now

            await self.subscription_repo.update_fields(subscription.id, values)

        return TransitionOutcome.APPLIED

    async def _on_updated(self, event: Event) -> TransitionOutcome:
        values: Dict[str, Any] = {"canceled_at": event.canceled_at}
        if event.status is not None:
            values["status"] = event.status.value
        if event.current_period_start is not None:
            values["current_period_start"] = event.current_period_start
        if event.current_period_end is not None:
            values["current_period_end"] = event.current_period_end

        changed = await self.subscription_repo.update_if_current(
            event.gateway,
            event.subscription_id,
            values,
            incoming_period_end=event.current_period_end,
        )
        if changed:
            return TransitionOutcome.APPLIED

        subscription = await self.subscription_repo.get_by_external_id(
            event.gateway, event.subscription_id
        )
        if subscription is None:
            return TransitionOutcome.IGNORED_UNKNOWN
        if not subscription.status.accepts_updates():
            return TransitionOutcome.IGNORED_STATE
        return TransitionOutcome.IGNORED_STALE

    async def _on_deleted(self, event: Event) -> TransitionOutcome:
        free_plan = await self.plan_repo.get_free_plan()
        if free_plan is None:
            raise NotFoundError("Free plan is not configured")

        async with transaction():
            existing = await self.subscription_repo.get_by_external_id(
                event.gateway, event.subscription_id
            )
            await self.subscription_repo.record_ended(
                event.gateway,
                event.subscription_id,
                existing.user_id if existing else None,
                utcnow(),
            )
            reset = await self.subscription_repo.reset_to_plan(
                event.gateway, event.subscription_id, free_plan.id
            )
        return TransitionOutcome.APPLIED if reset else TransitionOutcome.IGNORED_UNKNOWN

    @trace_span
    async def cancel(self, user_id: str, registry: GatewayRegistry) -> Subscription:
        """
        Soft-cancel the user's subscription.

        The provider subscription is canceled first. The local row keeps its
        plan and period for reporting but loses quota access immediately; the
        provider's deleted event later resets it to the free plan.

        Raises:
            NotFoundError: The user has no subscription
            StateConflictError: The subscription is already canceled
        """
        subscription = await self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            raise NotFoundError("No subscription found")
        if subscription.status == SubscriptionStatus.CANCELED:
            raise StateConflictError("Subscription is already canceled")

        if subscription.gateway and subscription.external_id:
            adapter = await registry.resolve(subscription.gateway)
            try:
                await adapter.cancel_subscription(subscription.external_id)
            finally:
                await adapter.aclose()

        if not await self.subscription_repo.mark_canceled(user_id, utcnow()):
            raise StateConflictError("Subscription is already canceled")

        logger.info(
            "Subscription canceled",
            extra={
                "user_id": user_id,
                "provider": subscription.gateway.value if subscription.gateway else None,
                "subscription_id": subscription.external_id,
            },
        )
        return await self.subscription_repo.get_by_user_id(user_id)
