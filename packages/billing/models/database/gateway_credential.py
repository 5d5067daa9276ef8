"""
Database entity for payment gateway credentials.
"""

from sqlalchemy import Column, String, Boolean, Integer, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class GatewayCredentialEntity(Base):
    """
    Payment gateway configuration row, one per supported gateway.

    credentials holds the serialized provider credential object; it is only
    parsed through the typed models in packages.billing.models.domain.credentials.
    """

    __tablename__ = "gateway_credentials"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    gateway = Column(String(50), nullable=False, unique=True, index=True)
    display_name = Column(String(100), nullable=False)
    is_enabled = Column(Boolean, nullable=False, server_default="0")
    test_mode = Column(Boolean, nullable=False, server_default="1")
    credentials = Column(Text, nullable=False, server_default="{}")
    sort_order = Column(Integer, nullable=False, server_default="0")

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())
