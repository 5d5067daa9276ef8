"""
PayPal implementation of the payment gateway port.

Uses the PayPal REST API (Subscriptions v1) through httpx. Webhook
authenticity is established by PayPal's verify-webhook-signature endpoint
using the transmission headers PayPal sends with every delivery.
"""

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import ConfigurationError, TransientProviderError
from packages.billing.models.domain.credentials import GatewayConfig, PayPalCredentials
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
from packages.billing.models.domain.paypal_webhooks import (
    PayPalSignatureHeaders,
    PayPalSubscriptionResource,
    PayPalWebhookPayload,
    PayPalWebhookType,
)
from packages.billing.models.domain.plans import Plan
from packages.billing.providers.payment.interface import GatewayPort

logger = get_logger(__name__)

SANDBOX_API_URL = "https://api-m.sandbox.paypal.com"
LIVE_API_URL = "https://api-m.paypal.com"
SANDBOX_PORTAL_URL = "https://www.sandbox.paypal.com/myaccount/autopay"
LIVE_PORTAL_URL = "https://www.paypal.com/myaccount/autopay"

BRAND_NAME = "Billing"
# Refresh the OAuth token this many seconds before PayPal expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60
CUSTOM_ID_SEPARATOR = "|"

STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "approval_pending": SubscriptionStatus.PAST_DUE,
    "approved": SubscriptionStatus.PAST_DUE,
    "suspended": SubscriptionStatus.PAST_DUE,
    "cancelled": SubscriptionStatus.CANCELED,
    "expired": SubscriptionStatus.EXPIRED,
}

HEADER_FIELDS = {
    "paypal-auth-algo": "auth_algo",
    "paypal-cert-url": "cert_url",
    "paypal-transmission-id": "transmission_id",
    "paypal-transmission-sig": "transmission_sig",
    "paypal-transmission-time": "transmission_time",
}


def encode_custom_id(metadata: CheckoutMetadata) -> str:
    """Pack checkout metadata into the subscription custom_id (max 127 chars)."""
    return CUSTOM_ID_SEPARATOR.join(
        [
            metadata.user_id,
            str(metadata.plan_id),
            metadata.billing_cycle.value,
            str(metadata.trial_days),
        ]
    )


def decode_custom_id(custom_id: Optional[str]) -> Optional[CheckoutMetadata]:
    if not custom_id:
        return None
    # user ids may contain the separator; the trailing fields never do
    parts = custom_id.rsplit(CUSTOM_ID_SEPARATOR, 3)
    if len(parts) != 4:
        return None
    user_id, plan_id, billing_cycle, trial_days = parts
    try:
        return CheckoutMetadata(
            user_id=user_id,
            plan_id=int(plan_id),
            billing_cycle=BillingCycle(billing_cycle),
            trial_days=int(trial_days),
        )
    except (ValueError, ValidationError):
        return None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class PayPalPaymentProvider(GatewayPort):
    """PayPal-based gateway: subscription approval flow and verified webhooks."""

    gateway = PaymentGateway.PAYPAL
    signature_headers = tuple(HEADER_FIELDS)

    def __init__(
        self,
        config: GatewayConfig,
        timeout: float = settings.gateway_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self.timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def credentials(self) -> PayPalCredentials:
        return self.config.credentials

    @property
    def base_url(self) -> str:
        return SANDBOX_API_URL if self.config.test_mode else LIVE_API_URL

    def _get_client(self) -> httpx.AsyncClient:
        self.ensure_configured()
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request, mapping network failures and 5xx to TransientProviderError."""
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(
                f"PayPal {operation} timed out after {self.timeout}s",
                extra={"provider": self.gateway.value, "operation": operation},
            )
            raise TransientProviderError() from e
        except httpx.TransportError as e:
            logger.error(
                f"PayPal {operation} connection failed: {type(e).__name__}",
                extra={"provider": self.gateway.value, "operation": operation},
            )
            raise TransientProviderError() from e

        if response.status_code >= 500:
            logger.error(
                f"PayPal {operation} failed with status {response.status_code}",
                extra={
                    "provider": self.gateway.value,
                    "operation": operation,
                    "debug_id": response.headers.get("paypal-debug-id"),
                },
            )
            raise TransientProviderError()
        return response

    def _rejected(self, response: httpx.Response, operation: str) -> ConfigurationError:
        logger.error(
            f"PayPal rejected {operation} with status {response.status_code}",
            extra={
                "provider": self.gateway.value,
                "operation": operation,
                "debug_id": response.headers.get("paypal-debug-id"),
                "body": response.text[:500],
            },
        )
        if response.status_code == 401:
            return ConfigurationError("PayPal rejected the configured client credentials")
        return ConfigurationError(
            f"PayPal rejected the {operation} request. Please contact support.",
            code="PROVIDER_REJECTED",
        )

    async def _get_access_token(self, force_refresh: bool = False) -> str:
        if (
            not force_refresh
            and self._access_token
            and time.monotonic() < self._token_expires_at
        ):
            return self._access_token

        response = await self._request(
            "POST",
            "/v1/oauth2/token",
            "token",
            data={"grant_type": "client_credentials"},
            auth=(self.credentials.client_id, self.credentials.client_secret),
        )
        if response.status_code != 200:
            raise self._rejected(response, "token")

        body = response.json()
        self._access_token = body["access_token"]
        self._token_expires_at = (
            time.monotonic()
            + int(body.get("expires_in", 0))
            - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        return self._access_token

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._get_access_token()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

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
        self.ensure_configured()

        paypal_plan_id = plan.price_reference(self.gateway, billing_cycle)
        if not paypal_plan_id:
            raise ConfigurationError(
                f"PayPal plan not configured for {plan.name} ({billing_cycle.value})"
            )

        metadata = CheckoutMetadata(
            user_id=user_id,
            plan_id=plan.id,
            billing_cycle=billing_cycle,
            trial_days=trial_days,
        )
        body: dict[str, Any] = {
            "plan_id": paypal_plan_id,
            "custom_id": encode_custom_id(metadata),
            "application_context": {
                "brand_name": BRAND_NAME,
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "return_url": success_url,
                "cancel_url": cancel_url,
            },
        }
        if user_email:
            body["subscriber"] = {"email_address": user_email}
        # PayPal has no trial flag on the subscription; billing starts later instead
        if trial_days > 0:
            start = datetime.now(timezone.utc) + timedelta(days=trial_days)
            body["start_time"] = start.strftime("%Y-%m-%dT%H:%M:%SZ")

        headers = await self._auth_headers()
        headers["Prefer"] = "return=representation"
        response = await self._request(
            "POST", "/v1/billing/subscriptions", "checkout", json=body, headers=headers
        )
        if response.status_code not in (200, 201):
            raise self._rejected(response, "checkout")

        subscription = response.json()
        approve_link = next(
            (
                link.get("href")
                for link in subscription.get("links", [])
                if link.get("rel") == "approve"
            ),
            None,
        )
        if not approve_link:
            logger.error(
                "PayPal subscription created without approval link",
                extra={"subscription_id": subscription.get("id")},
            )
            raise ConfigurationError(
                "PayPal did not return an approval link. Please contact support.",
                code="PROVIDER_REJECTED",
            )

        logger.info(
            "Created PayPal subscription",
            extra={
                "user_id": user_id,
                "plan_id": plan.id,
                "subscription_id": subscription["id"],
                "trial_days": trial_days,
            },
        )
        return CheckoutResult(url=approve_link, session_id=subscription["id"])

    @trace_span
    async def cancel_subscription(self, external_id: str) -> None:
        self.ensure_configured()
        headers = await self._auth_headers()
        response = await self._request(
            "POST",
            f"/v1/billing/subscriptions/{quote(external_id, safe='')}/cancel",
            "cancel",
            json={"reason": "User requested cancellation"},
            headers=headers,
        )

        if response.status_code in (200, 204):
            logger.info(
                "Cancelled PayPal subscription", extra={"subscription_id": external_id}
            )
            return

        # Already cancelled/expired subscriptions answer 422 SUBSCRIPTION_STATUS_INVALID
        if response.status_code in (404, 422):
            issues = {
                detail.get("issue")
                for detail in _safe_json(response).get("details", [])
                if isinstance(detail, dict)
            }
            if response.status_code == 404 or "SUBSCRIPTION_STATUS_INVALID" in issues:
                logger.info(
                    "PayPal subscription already inactive, treating as canceled",
                    extra={"subscription_id": external_id},
                )
                return

        raise self._rejected(response, "cancel")

    @trace_span
    async def create_portal(self, customer_id: str, return_url: str) -> str:
        # PayPal has no hosted billing portal; send payers to their autopay page
        self.ensure_configured()
        portal_url = SANDBOX_PORTAL_URL if self.config.test_mode else LIVE_PORTAL_URL
        return f"{portal_url}?return_url={quote(return_url, safe='')}"

    @trace_span
    async def handle_webhook(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> WebhookResult:
        self.ensure_configured()

        transmission = {
            field: headers.get(header) for header, field in HEADER_FIELDS.items()
        }
        if not all(transmission.values()):
            return WebhookResult(
                success=False, error="Missing PayPal transmission headers"
            )
        signature = PayPalSignatureHeaders(**transmission)

        try:
            raw_text = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            return WebhookResult(success=False, error="Malformed payload")

        # The event is spliced in verbatim so PayPal verifies the exact bytes received
        envelope = json.dumps(
            {**signature.model_dump(), "webhook_id": self.credentials.webhook_id}
        )
        verify_body = envelope[:-1] + ', "webhook_event": ' + raw_text + "}"

        request_headers = await self._auth_headers()
        response = await self._request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            "verify_webhook",
            content=verify_body.encode("utf-8"),
            headers=request_headers,
        )
        if response.status_code != 200:
            logger.warning(
                f"PayPal webhook verification request failed: {response.status_code}",
                extra={"transmission_id": signature.transmission_id},
            )
            return WebhookResult(success=False, error="Webhook verification failed")

        if _safe_json(response).get("verification_status") != "SUCCESS":
            logger.warning(
                "PayPal webhook signature invalid",
                extra={"transmission_id": signature.transmission_id},
            )
            return WebhookResult(success=False, error="Invalid webhook signature")

        try:
            raw = json.loads(raw_text)
            payload = PayPalWebhookPayload.model_validate(raw)
            event = self._normalize(payload, raw)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Malformed PayPal webhook payload: {e}")
            return WebhookResult(success=False, error="Malformed payload")

        logger.info(
            f"Received PayPal webhook: {payload.event_type}",
            extra={"event_id": payload.id, "event_type": payload.event_type},
        )
        return WebhookResult(success=True, event=event)

    def _normalize(self, payload: PayPalWebhookPayload, raw: dict) -> Optional[Event]:
        event_type = payload.event_type

        if event_type == PayPalWebhookType.SUBSCRIPTION_ACTIVATED.value:
            resource = PayPalSubscriptionResource.model_validate(payload.resource)
            metadata = decode_custom_id(resource.custom_id)
            status = (
                SubscriptionStatus.TRIALING
                if metadata and metadata.trial_days > 0
                else self.map_status(resource.status)
            )
            return self._subscription_event(
                EventType.SUBSCRIPTION_CREATED, resource, raw, status
            )

        if event_type in (
            PayPalWebhookType.SUBSCRIPTION_UPDATED.value,
            PayPalWebhookType.SUBSCRIPTION_SUSPENDED.value,
        ):
            resource = PayPalSubscriptionResource.model_validate(payload.resource)
            return self._subscription_event(
                EventType.SUBSCRIPTION_UPDATED,
                resource,
                raw,
                self.map_status(resource.status),
            )

        if event_type in (
            PayPalWebhookType.SUBSCRIPTION_CANCELLED.value,
            PayPalWebhookType.SUBSCRIPTION_EXPIRED.value,
        ):
            resource = PayPalSubscriptionResource.model_validate(payload.resource)
            return Event(
                type=EventType.SUBSCRIPTION_DELETED,
                gateway=self.gateway,
                subscription_id=resource.id,
                customer_id=resource.subscriber.payer_id,
                raw=raw,
            )

        # BILLING.SUBSCRIPTION.CREATED is still pending approval; ACTIVATED follows
        logger.debug(f"Ignoring PayPal event type: {event_type}")
        return None

    def _subscription_event(
        self,
        event_type: EventType,
        resource: PayPalSubscriptionResource,
        raw: dict,
        status: SubscriptionStatus,
    ) -> Event:
        billing_info = resource.billing_info
        last_payment = billing_info.last_payment if billing_info else None
        period_start = _parse_time(last_payment.time if last_payment else None)
        if period_start is None:
            period_start = _parse_time(resource.start_time)
        period_end = _parse_time(billing_info.next_billing_time if billing_info else None)

        canceled_at = None
        if status == SubscriptionStatus.CANCELED:
            canceled_at = _parse_time(resource.status_update_time)

        return Event(
            type=event_type,
            gateway=self.gateway,
            subscription_id=resource.id,
            status=status,
            customer_id=resource.subscriber.payer_id,
            current_period_start=period_start,
            current_period_end=period_end,
            canceled_at=canceled_at,
            raw=raw,
        )

    @trace_span
    async def test_connection(self) -> ConnectionResult:
        try:
            self.ensure_configured()
            await self._get_access_token(force_refresh=True)
        except (ConfigurationError, TransientProviderError) as e:
            return ConnectionResult(success=False, error=e.message)
        return ConnectionResult(success=True)

    def map_status(self, provider_status: Optional[str]) -> SubscriptionStatus:
        status = STATUS_MAP.get((provider_status or "").lower())
        if status is None:
            # Fail open: unknown statuses keep access
            logger.warning(
                f"Unrecognized PayPal subscription status: {provider_status}",
                extra={"provider": self.gateway.value},
            )
            return SubscriptionStatus.ACTIVE
        return status

    def checkout_metadata(self, event: Event) -> Optional[CheckoutMetadata]:
        resource = event.raw.get("resource", {})
        return decode_custom_id(resource.get("custom_id"))


def _safe_json(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
