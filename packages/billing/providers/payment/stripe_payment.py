"""
Stripe implementation of the payment gateway port.
"""

import json
from datetime import datetime, timezone
from typing import Mapping, Optional

import stripe
from pydantic import ValidationError

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import (
    BillingError,
    ConfigurationError,
    TransientProviderError,
)
from packages.billing.models.domain.credentials import GatewayConfig, StripeCredentials
from packages.billing.models.domain.enums import (
    BillingCycle,
    EventType,
    PaymentGateway,
    SubscriptionStatus,
)
from packages.billing.models.domain.events import (
    CheckoutMetadata,
    CheckoutResult,
    ConnectionResult,
    Event,
    WebhookResult,
)
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.stripe_webhooks import (
    StripeCheckoutSessionData,
    StripeSubscriptionData,
    StripeSubscriptionStatus,
    StripeWebhookPayload,
    StripeWebhookType,
)
from packages.billing.providers.payment.interface import GatewayPort

logger = get_logger(__name__)

SIGNATURE_HEADER = "stripe-signature"

STATUS_MAP = {
    StripeSubscriptionStatus.ACTIVE.value: SubscriptionStatus.ACTIVE,
    StripeSubscriptionStatus.TRIALING.value: SubscriptionStatus.TRIALING,
    StripeSubscriptionStatus.PAST_DUE.value: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.UNPAID.value: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.INCOMPLETE.value: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.PAUSED.value: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.CANCELED.value: SubscriptionStatus.CANCELED,
    StripeSubscriptionStatus.INCOMPLETE_EXPIRED.value: SubscriptionStatus.EXPIRED,
}


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class StripePaymentProvider(GatewayPort):
    """Stripe-based gateway: hosted Checkout, Billing Portal, signed webhooks."""

    gateway = PaymentGateway.STRIPE
    signature_headers = (SIGNATURE_HEADER,)

    def __init__(
        self,
        config: GatewayConfig,
        timeout: float = settings.gateway_timeout_seconds,
        client: Optional[stripe.StripeClient] = None,
    ):
        super().__init__(config)
        self.timeout = timeout
        self._client = client

    @property
    def credentials(self) -> StripeCredentials:
        return self.config.credentials

    def _get_client(self) -> stripe.StripeClient:
        """Build the API client on first use, after configuration is checked."""
        self.ensure_configured()
        if self._client is None:
            self._client = stripe.StripeClient(
                self.credentials.secret_key,
                http_client=stripe.HTTPXClient(timeout=self.timeout),
                max_network_retries=0,
            )
        return self._client

    def _translate_error(self, error: stripe.StripeError, operation: str) -> BillingError:
        """Map a Stripe SDK error to a billing error kind without leaking its body."""
        logger.error(
            f"Stripe {operation} failed: {error.user_message or type(error).__name__}",
            extra={
                "provider": self.gateway.value,
                "operation": operation,
                "http_status": error.http_status,
                "stripe_code": error.code,
                "request_id": error.request_id,
            },
        )
        if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError)):
            return TransientProviderError()
        if isinstance(error, stripe.AuthenticationError):
            return ConfigurationError("Stripe rejected the configured API key")
        if isinstance(error, stripe.APIError) or (error.http_status or 0) >= 500:
            return TransientProviderError()
        return ConfigurationError(
            f"Stripe rejected the {operation} request. Please contact support.",
            code="PROVIDER_REJECTED",
        )

    @trace_span
    async def create_checkout(
        self,
        plan: Plan,
        user_id: str,
        user_email: Optional[str],
        billing_cycle: BillingCycle,
        success_url: str,
        cancel_url: str,
        trial_days: int = 0,
        customer_id: Optional[str] = None,
    ) -> CheckoutResult:
        client = self._get_client()

        price_id = plan.price_reference(self.gateway, billing_cycle)
        if not price_id:
            raise ConfigurationError(
                f"Stripe price not configured for {plan.name} ({billing_cycle.value})"
            )

        metadata = {
            "userId": user_id,
            "planId": str(plan.id),
            "billingCycle": billing_cycle.value,
            "trialDays": str(trial_days),
        }
        subscription_data = {"metadata": metadata}
        if trial_days > 0:
            subscription_data["trial_period_days"] = trial_days

        params = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": metadata,
            "subscription_data": subscription_data,
        }
        # Reuse existing customer, otherwise let Checkout create one
        if customer_id:
            params["customer"] = customer_id
        elif user_email:
            params["customer_email"] = user_email

        try:
            session = await client.v1.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            raise self._translate_error(e, "checkout") from e

        logger.info(
            "Created Stripe checkout session",
            extra={
                "user_id": user_id,
                "plan_id": plan.id,
                "session_id": session.id,
                "trial_days": trial_days,
            },
        )
        return CheckoutResult(url=session.url, session_id=session.id)

    @trace_span
    async def cancel_subscription(self, external_id: str) -> None:
        client = self._get_client()
        try:
            subscription = await client.v1.subscriptions.retrieve_async(external_id)
            if (
                subscription.status == StripeSubscriptionStatus.CANCELED.value
                or subscription.cancel_at_period_end
            ):
                logger.info(
                    "Stripe subscription already canceled",
                    extra={"subscription_id": external_id},
                )
                return
            # Ends at period end; Stripe then sends customer.subscription.deleted
            await client.v1.subscriptions.update_async(
                external_id, params={"cancel_at_period_end": True}
            )
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                logger.info(
                    "Stripe subscription no longer exists, treating as canceled",
                    extra={"subscription_id": external_id},
                )
                return
            raise self._translate_error(e, "cancel") from e
        except stripe.StripeError as e:
            raise self._translate_error(e, "cancel") from e

        logger.info(
            "Cancelled Stripe subscription", extra={"subscription_id": external_id}
        )

    @trace_span
    async def create_portal(self, customer_id: str, return_url: str) -> str:
        client = self._get_client()
        try:
            session = await client.v1.billing_portal.sessions.create_async(
                params={"customer": customer_id, "return_url": return_url}
            )
        except stripe.StripeError as e:
            raise self._translate_error(e, "portal") from e

        logger.info("Created Stripe portal session", extra={"customer_id": customer_id})
        return session.url

    @trace_span
    async def handle_webhook(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> WebhookResult:
        self.ensure_configured()

        sig_header = headers.get(SIGNATURE_HEADER)
        if not sig_header:
            return WebhookResult(success=False, error="Missing stripe-signature header")

        try:
            payload_text = raw_body.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload_text,
                sig_header,
                self.credentials.webhook_secret,
                settings.stripe_webhook_tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            return WebhookResult(success=False, error="Invalid signature")

        # Only parse after the signature is verified
        try:
            payload = StripeWebhookPayload.model_validate(json.loads(payload_text))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Malformed Stripe webhook payload: {e}")
            return WebhookResult(success=False, error="Malformed payload")

        logger.info(
            f"Received Stripe webhook: {payload.type}",
            extra={
                "event_id": payload.id,
                "event_type": payload.type,
                "livemode": payload.livemode,
            },
        )

        raw = json.loads(payload_text)
        try:
            event = self._normalize(payload, raw)
        except ValidationError as e:
            logger.warning(
                f"Stripe {payload.type} object did not match expected shape: {e}",
                extra={"event_id": payload.id},
            )
            return WebhookResult(success=False, error="Malformed payload")

        return WebhookResult(success=True, event=event)

    def _normalize(self, payload: StripeWebhookPayload, raw: dict) -> Optional[Event]:
        obj = payload.data.object

        if payload.type == StripeWebhookType.CHECKOUT_SESSION_COMPLETED.value:
            session = StripeCheckoutSessionData.model_validate(obj)
            if not session.subscription:
                # One-off payment, nothing to reconcile
                return None
            trial_days = _parse_int(session.metadata.trial_days)
            return Event(
                type=EventType.SUBSCRIPTION_CREATED,
                gateway=self.gateway,
                subscription_id=session.subscription,
                customer_id=session.customer,
                status=(
                    SubscriptionStatus.TRIALING
                    if trial_days and trial_days > 0
                    else SubscriptionStatus.ACTIVE
                ),
                raw=raw,
            )

        if payload.type == StripeWebhookType.SUBSCRIPTION_UPDATED.value:
            subscription = StripeSubscriptionData.model_validate(obj)
            period_start, period_end = subscription.period()
            return Event(
                type=EventType.SUBSCRIPTION_UPDATED,
                gateway=self.gateway,
                subscription_id=subscription.id,
                customer_id=subscription.customer,
                status=self.map_status(subscription.status),
                current_period_start=_from_timestamp(period_start),
                current_period_end=_from_timestamp(period_end),
                canceled_at=_from_timestamp(subscription.canceled_at),
                raw=raw,
            )

        if payload.type == StripeWebhookType.SUBSCRIPTION_DELETED.value:
            subscription = StripeSubscriptionData.model_validate(obj)
            return Event(
                type=EventType.SUBSCRIPTION_DELETED,
                gateway=self.gateway,
                subscription_id=subscription.id,
                customer_id=subscription.customer,
                raw=raw,
            )

        logger.debug(f"Ignoring Stripe event type: {payload.type}")
        return None

    @trace_span
    async def test_connection(self) -> ConnectionResult:
        try:
            client = self._get_client()
            await client.v1.customers.list_async(params={"limit": 1})
        except ConfigurationError as e:
            return ConnectionResult(success=False, error=e.message)
        except stripe.StripeError as e:
            return ConnectionResult(
                success=False, error=self._translate_error(e, "test_connection").message
            )
        return ConnectionResult(success=True)

    def map_status(self, provider_status: Optional[str]) -> SubscriptionStatus:
        status = STATUS_MAP.get((provider_status or "").lower())
        if status is None:
            # Fail open: unknown statuses keep access
            logger.warning(
                f"Unrecognized Stripe subscription status: {provider_status}",
                extra={"provider": self.gateway.value},
            )
            return SubscriptionStatus.ACTIVE
        return status

    def checkout_metadata(self, event: Event) -> Optional[CheckoutMetadata]:
        obj = event.raw.get("data", {}).get("object", {})
        try:
            session = StripeCheckoutSessionData.model_validate(obj)
        except ValidationError:
            return None

        user_id = session.metadata.user_id or session.client_reference_id
        plan_id = _parse_int(session.metadata.plan_id)
        if not user_id or plan_id is None:
            return None

        try:
            billing_cycle = BillingCycle(session.metadata.billing_cycle or "monthly")
        except ValueError:
            billing_cycle = BillingCycle.MONTHLY

        return CheckoutMetadata(
            user_id=user_id,
            plan_id=plan_id,
            billing_cycle=billing_cycle,
            trial_days=_parse_int(session.metadata.trial_days) or 0,
        )


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
