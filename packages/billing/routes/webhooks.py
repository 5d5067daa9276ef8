"""
Webhook endpoints for billing events.

Public endpoints (no auth required); each provider's signature is verified
by its adapter before the payload is read.
"""

from fastapi import APIRouter, Depends, Request

from packages.billing.models.schemas.billing import WebhookResponse
from packages.billing.providers.payment.registry import (
    GatewayRegistry,
    get_gateway_registry,
)
from packages.billing.services.webhook_service import WebhookService

router = APIRouter()


@router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def receive_webhook(
    provider: str,
    request: Request,
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Receive webhook events from a payment provider.

    Answers 200 for processed and deliberately ignored events, 400 when
    verification fails and 503 when the provider should retry.
    """
    raw_body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}

    await WebhookService(registry).process(provider, raw_body, headers)
    return WebhookResponse()
