"""
Database entity for subscription plans.
"""

from sqlalchemy import Column, String, Integer, Boolean, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class PlanEntity(Base):
    """
    Subscription plan database entity.

    Limits use -1 for unlimited and 0 for disabled. Features are stored as
    serialized JSON text and parsed into PlanFeatures at the repository.
    """

    __tablename__ = "plans"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing in cents
    price_monthly_cents = Column(Integer, nullable=False, server_default="0")
    price_yearly_cents = Column(Integer, nullable=False, server_default="0")

    # Limits
    max_channels = Column(Integer, nullable=False, server_default="1")
    max_episodes_per_month = Column(Integer, nullable=False, server_default="5")
    max_api_calls = Column(Integer, nullable=False, server_default="0")

    features = Column(Text, nullable=False, server_default="{}")

    # Provider price references
    stripe_price_monthly = Column(String(255), nullable=True)
    stripe_price_yearly = Column(String(255), nullable=True)
    paypal_plan_monthly = Column(String(255), nullable=True)
    paypal_plan_yearly = Column(String(255), nullable=True)

    is_active = Column(Boolean, nullable=False, server_default="1")
    is_popular = Column(Boolean, nullable=False, server_default="0")
    sort_order = Column(Integer, nullable=False, server_default="0")

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())
