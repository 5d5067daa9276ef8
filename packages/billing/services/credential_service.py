"""
Credential store for payment gateways.

Credentials are validated against the gateway's typed model on every read
and write, masked whenever they leave the service, and merged on update so
an admin form can resubmit masked values without overwriting secrets.
"""

from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError

from common.core.constants import CREDENTIAL_MASK_MARKER, CREDENTIAL_MASK_MIN_LENGTH
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import ConfigurationError
from packages.billing.models.domain.credentials import (
    CREDENTIAL_MODELS,
    GatewayConfig,
    GatewayCredential,
    GatewayCredentialCreateModel,
    GatewayCredentialUpdateModel,
    GatewayCredentials,
    MaskedGatewayCredential,
)
from packages.billing.models.domain.enums import PaymentGateway
from packages.billing.repositories.gateway_credential_repository import (
    GatewayCredentialRepository,
)

logger = get_logger(__name__)

DEFAULT_GATEWAYS = [
    GatewayCredentialCreateModel(
        gateway=PaymentGateway.STRIPE,
        display_name="Stripe",
        is_enabled=False,
        test_mode=True,
        credentials=CREDENTIAL_MODELS[PaymentGateway.STRIPE]().to_storage(),
        sort_order=1,
    ),
    GatewayCredentialCreateModel(
        gateway=PaymentGateway.PAYPAL,
        display_name="PayPal",
        is_enabled=False,
        test_mode=True,
        credentials=CREDENTIAL_MODELS[PaymentGateway.PAYPAL]().to_storage(),
        sort_order=2,
    ),
]


def mask_value(value: str) -> str:
    """first4****last4 for values longer than 8 characters, unchanged otherwise."""
    if not value or len(value) <= CREDENTIAL_MASK_MIN_LENGTH:
        return value
    return f"{value[:4]}{CREDENTIAL_MASK_MARKER}{value[-4:]}"


def mask_credentials(credentials: GatewayCredentials) -> Dict[str, str]:
    return {key: mask_value(value) for key, value in credentials.as_wire().items()}


def merge_credentials(
    current: GatewayCredentials, incoming: Mapping[str, Optional[str]]
) -> GatewayCredentials:
    """
    Overlay incoming values onto the stored credentials.

    Empty values and values containing the mask marker are skipped.
    Unknown keys are rejected.
    """
    model = type(current)
    try:
        # Validates key names only; values are filtered below
        model.model_validate({key: value or "" for key, value in incoming.items()})
    except ValidationError as e:
        unknown = sorted(
            str(err["loc"][0]) for err in e.errors() if err["type"] == "extra_forbidden"
        )
        raise ConfigurationError(
            f"Unrecognized credential fields: {', '.join(unknown) or 'invalid values'}",
            code="INVALID_CREDENTIALS",
        )

    aliases = {name: field.alias or name for name, field in model.model_fields.items()}
    merged = current.as_wire()
    for key, value in incoming.items():
        if value and CREDENTIAL_MASK_MARKER not in value:
            merged[aliases.get(key, key)] = value
    return model.model_validate(merged)


class CredentialService:
    """Reads, masks and updates stored gateway credentials."""

    def __init__(self, repository: Optional[GatewayCredentialRepository] = None):
        self.repository = repository or GatewayCredentialRepository()

    def _to_masked(self, row: GatewayCredential) -> MaskedGatewayCredential:
        return MaskedGatewayCredential(
            gateway=row.gateway,
            display_name=row.display_name,
            is_enabled=row.is_enabled,
            test_mode=row.test_mode,
            credentials=mask_credentials(self._parse(row)),
            sort_order=row.sort_order,
        )

    def _parse(self, row: GatewayCredential) -> GatewayCredentials:
        try:
            return row.parsed_credentials()
        except (ValueError, ValidationError) as e:
            logger.error(
                f"Stored credentials for {row.gateway.value} are invalid: {type(e).__name__}",
                extra={"provider": row.gateway.value},
            )
            raise ConfigurationError(
                f"Stored {row.gateway.value} credentials are invalid. Re-enter them."
            )

    @trace_span
    async def get_config(self, gateway: PaymentGateway) -> GatewayConfig:
        """Unmasked configuration for building an adapter. Never leaves the server."""
        row = await self.repository.get_by_gateway(gateway)
        if row is None:
            return GatewayConfig(
                gateway=gateway, enabled=False, credentials=CREDENTIAL_MODELS[gateway]()
            )
        return GatewayConfig(
            gateway=gateway,
            enabled=row.is_enabled,
            test_mode=row.test_mode,
            credentials=self._parse(row),
        )

    @trace_span
    async def list_masked(self) -> List[MaskedGatewayCredential]:
        return [self._to_masked(row) for row in await self.repository.list_all()]

    @trace_span
    async def get_masked(self, gateway: PaymentGateway) -> MaskedGatewayCredential:
        row = await self._get_or_create_row(gateway)
        return self._to_masked(row)

    @trace_span
    async def update(
        self,
        gateway: PaymentGateway,
        is_enabled: Optional[bool] = None,
        test_mode: Optional[bool] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
        display_name: Optional[str] = None,
    ) -> MaskedGatewayCredential:
        row = await self._get_or_create_row(gateway)

        changes = {}
        if display_name:
            changes["display_name"] = display_name
        if is_enabled is not None:
            changes["is_enabled"] = is_enabled
        if test_mode is not None:
            changes["test_mode"] = test_mode
        if credentials:
            merged = merge_credentials(self._parse(row), credentials)
            changes["credentials"] = merged.to_storage()

        updated = await self.repository.update(
            row.id, GatewayCredentialUpdateModel(**changes)
        )
        logger.info(
            f"Updated {gateway.value} gateway settings",
            extra={
                "provider": gateway.value,
                "fields": sorted(changes),
                "credential_keys": sorted(credentials or {}),
            },
        )
        return self._to_masked(updated)

    async def _get_or_create_row(self, gateway: PaymentGateway) -> GatewayCredential:
        row = await self.repository.get_by_gateway(gateway)
        if row is not None:
            return row
        default = next(d for d in DEFAULT_GATEWAYS if d.gateway == gateway)
        return await self.repository.create(default)

    @trace_span
    async def seed_defaults(self) -> None:
        """Insert a disabled, test-mode row for every gateway that has none."""
        for default in DEFAULT_GATEWAYS:
            if await self.repository.get_by_gateway(default.gateway) is None:
                await self.repository.create(default)
                logger.info(f"Seeded {default.gateway.value} gateway row")
