"""
Admin routes for payment gateway settings.
"""

from fastapi import APIRouter, Depends

from common.core.otel_axiom_exporter import get_logger
from packages.billing.models.schemas.admin import (
    GatewayActionRequest,
    GatewayListResponse,
    GatewayResponse,
    GatewayTestResponse,
    GatewayUpdateRequest,
)
from packages.billing.providers.payment.registry import (
    GatewayRegistry,
    get_gateway_registry,
    parse_gateway,
)
from packages.billing.services.credential_service import CredentialService

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=GatewayListResponse)
async def list_gateways():
    """List gateway settings. Credentials are always masked."""
    gateways = await CredentialService().list_masked()
    return GatewayListResponse(
        gateways=[GatewayResponse.from_masked(gateway) for gateway in gateways]
    )


@router.put("", response_model=GatewayResponse)
async def update_gateway(request: GatewayUpdateRequest):
    """
    Update a gateway's settings.

    Empty and masked credential values leave the stored secret unchanged.
    """
    gateway = parse_gateway(request.gateway)
    updated = await CredentialService().update(
        gateway,
        is_enabled=request.is_enabled,
        test_mode=request.test_mode,
        credentials=request.credentials,
        display_name=request.display_name,
    )
    return GatewayResponse.from_masked(updated)


@router.post("", response_model=GatewayTestResponse)
async def run_gateway_action(
    request: GatewayActionRequest,
    registry: GatewayRegistry = Depends(get_gateway_registry),
):
    """Run a gateway action. Only "test" (connectivity check) is supported."""
    gateway = parse_gateway(request.gateway)
    adapter = await registry.resolve(gateway)
    try:
        result = await adapter.test_connection()
    finally:
        await adapter.aclose()

    logger.info(
        f"Tested {gateway.value} connection",
        extra={"provider": gateway.value, "success": result.success},
    )
    return GatewayTestResponse(success=result.success, error=result.error)
