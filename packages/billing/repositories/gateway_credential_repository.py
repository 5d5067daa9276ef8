"""
Repository for payment gateway credentials.
"""

from typing import List, Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.database.gateway_credential import GatewayCredentialEntity
from packages.billing.models.domain.credentials import GatewayCredential
from packages.billing.models.domain.enums import PaymentGateway


class GatewayCredentialRepository(
    BaseRepository[GatewayCredentialEntity, GatewayCredential]
):
    def __init__(self):
        super().__init__(GatewayCredentialEntity, GatewayCredential)

    @trace_span
    async def get_by_gateway(self, gateway: PaymentGateway) -> Optional[GatewayCredential]:
        async with self._get_session() as session:
            result = await session.execute(
                select(GatewayCredentialEntity).where(
                    GatewayCredentialEntity.gateway == gateway.value
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def list_all(self) -> List[GatewayCredential]:
        async with self._get_session() as session:
            result = await session.execute(
                select(GatewayCredentialEntity).order_by(
                    GatewayCredentialEntity.sort_order, GatewayCredentialEntity.id
                )
            )
            return self._entities_to_domain(result.scalars().all())
