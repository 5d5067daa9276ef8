"""
Database entity for subscriptions.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class SubscriptionEntity(Base):
    """
    User subscription database entity.

    One row per user (unique user_id); a missing row is the implicit free
    tier. gateway, external_id and customer_id are set together by a
    subscription.created event and cleared together by subscription.deleted.
    """

    __tablename__ = "subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    # Users live in the identity service; no foreign key
    user_id = Column(String(255), nullable=False, unique=True, index=True)
    plan_id = Column(
        BigIntegerType,
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status = Column(String(50), nullable=False, index=True)
    billing_cycle = Column(String(20), nullable=False, server_default="monthly")

    # External platform references
    gateway = Column(String(50), nullable=True)
    external_id = Column(String(255), nullable=True)
    customer_id = Column(String(255), nullable=True)

    # Billing period
    current_period_start = Column(UTCDateTime, nullable=True)
    current_period_end = Column(UTCDateTime, nullable=True)

    # Lifecycle timestamps
    trial_ends_at = Column(UTCDateTime, nullable=True)
    trial_consumed_at = Column(UTCDateTime, nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)

    # Usage counters for the current cycle
    api_calls_used = Column(Integer, nullable=False, server_default="0")
    episodes_created = Column(Integer, nullable=False, server_default="0")
    usage_reset_at = Column(UTCDateTime, nullable=False)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("gateway", "external_id", name="uq_subscription_external"),
        Index("idx_subscription_status_plan", "status", "plan_id"),
    )


class EndedSubscriptionEntity(Base):
    """
    Provider subscriptions that have ended.

    Written by subscription.deleted and kept after the subscriptions row is
    reset, so a late or redelivered subscription.created for the same
    provider subscription can be refused.
    """

    __tablename__ = "ended_subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    gateway = Column(String(50), nullable=False)
    external_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=True)
    ended_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("gateway", "external_id", name="uq_ended_subscription_external"),
    )
