"""
Typed payment gateway credentials.

Each gateway has an explicit credential model with its recognized keys;
the stored JSON blob is validated against it on every read and write.
"""

import json
from datetime import datetime
from typing import Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.enums import PaymentGateway


class _CredentialModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    def to_storage(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), sort_keys=True)

    def as_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class StripeCredentials(_CredentialModel):
    publishable_key: str = ""
    secret_key: str = ""
    webhook_secret: str = ""

    def missing_fields(self) -> list[str]:
        required = {"secretKey": self.secret_key, "webhookSecret": self.webhook_secret}
        return [name for name, value in required.items() if not value]


class PayPalCredentials(_CredentialModel):
    client_id: str = ""
    client_secret: str = ""
    webhook_id: str = ""

    def missing_fields(self) -> list[str]:
        required = {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "webhookId": self.webhook_id,
        }
        return [name for name, value in required.items() if not value]


GatewayCredentials = Union[StripeCredentials, PayPalCredentials]

CREDENTIAL_MODELS: Dict[PaymentGateway, Type[_CredentialModel]] = {
    PaymentGateway.STRIPE: StripeCredentials,
    PaymentGateway.PAYPAL: PayPalCredentials,
}


def parse_credentials(gateway: PaymentGateway, raw: Optional[str]) -> GatewayCredentials:
    model = CREDENTIAL_MODELS[gateway]
    if not raw:
        return model()
    return model.model_validate(json.loads(raw))


class GatewayConfig(BaseModel):
    """Everything an adapter needs, injected at construction."""

    gateway: PaymentGateway
    enabled: bool = False
    test_mode: bool = True
    credentials: GatewayCredentials


class GatewayCredential(BaseModel):
    """Stored gateway row with unmasked, parsed credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    gateway: PaymentGateway
    display_name: str
    is_enabled: bool = False
    test_mode: bool = True
    credentials: str = "{}"
    sort_order: int = 0
    updated_at: Optional[datetime] = None

    @field_validator("credentials", mode="before")
    @classmethod
    def default_blob(cls, v):
        return v or "{}"

    def parsed_credentials(self) -> GatewayCredentials:
        return parse_credentials(self.gateway, self.credentials)

    def to_config(self) -> GatewayConfig:
        return GatewayConfig(
            gateway=self.gateway,
            enabled=self.is_enabled,
            test_mode=self.test_mode,
            credentials=self.parsed_credentials(),
        )


class GatewayCredentialCreateModel(BaseModel):
    gateway: PaymentGateway
    display_name: str
    is_enabled: bool = False
    test_mode: bool = True
    credentials: str = "{}"
    sort_order: int = 0


class GatewayCredentialUpdateModel(BaseModel):
    display_name: Optional[str] = None
    is_enabled: Optional[bool] = None
    test_mode: Optional[bool] = None
    credentials: Optional[str] = None


class MaskedGatewayCredential(BaseModel):
    """Gateway row as exposed to administrators: credentials always masked."""

    gateway: PaymentGateway
    display_name: str
    is_enabled: bool
    test_mode: bool
    credentials: Dict[str, str]
    sort_order: int = 0
