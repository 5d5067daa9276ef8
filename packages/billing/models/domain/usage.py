"""
Domain models for usage metering and quota checks.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import QuotaKind


class QuotaCheck(BaseModel):
    """Result of a pre-flight quota check. Denials carry a stable code."""

    kind: QuotaKind
    allowed: bool
    error: Optional[str] = None
    code: Optional[str] = None
    limit: Optional[int] = None
    usage: Optional[int] = None

    @classmethod
    def allow(cls, kind: QuotaKind, limit: int, usage: int) -> "QuotaCheck":
        return cls(kind=kind, allowed=True, limit=limit, usage=usage)


class UsageSnapshot(BaseModel):
    """
    Current-cycle counters after any pending lazy reset.

    usage_reset_at is None until the user has a subscription row.
    """

    api_calls_used: int = 0
    episodes_created: int = 0
    usage_reset_at: Optional[datetime] = None
