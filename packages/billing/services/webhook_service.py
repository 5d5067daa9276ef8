"""
Inbound webhook processing: provider -> adapter -> state machine.
"""

from typing import Mapping, Optional

from common.core.otel_axiom_exporter import trace_span, get_logger, log_span_event
from packages.billing.exceptions import VerificationError
from packages.billing.models.domain.events import TransitionOutcome
from packages.billing.providers.payment.registry import GatewayRegistry, parse_gateway
from packages.billing.services.subscription_state_machine import (
    SubscriptionStateMachine,
)

logger = get_logger(__name__)


class WebhookService:
    def __init__(
        self,
        registry: GatewayRegistry,
        state_machine: Optional[SubscriptionStateMachine] = None,
    ):
        self.registry = registry
        self.state_machine = state_machine or SubscriptionStateMachine()

    @trace_span
    async def process(
        self, provider: str, raw_body: bytes, headers: Mapping[str, str]
    ) -> Optional[TransitionOutcome]:
        """
        Verify and apply one webhook delivery.

        Returns None when the provider event needs no action.

        Raises:
            NotFoundError: Unknown provider name
            ConfigurationError: Gateway disabled or not configured
            VerificationError: Signature missing, invalid or payload malformed
            TransientProviderError: Provider verification API unreachable
        """
        gateway = parse_gateway(provider)
        adapter = await self.registry.resolve(gateway)
        try:
            result = await adapter.handle_webhook(raw_body, headers)
            if not result.success:
                log_span_event(
                    "webhook.rejected",
                    {"provider": gateway.value, "error": result.error or ""},
                )
                logger.warning(
                    f"Rejected {gateway.value} webhook: {result.error}",
                    extra={"provider": gateway.value},
                )
                raise VerificationError(result.error or "Webhook verification failed")

            if result.event is None:
                return None

            outcome = await self.state_machine.apply(result.event, adapter)
        finally:
            await adapter.aclose()

        log_span_event(
            "webhook.processed",
            {
                "provider": gateway.value,
                "event_type": result.event.type.value,
                "outcome": outcome.value,
            },
        )
        return outcome
