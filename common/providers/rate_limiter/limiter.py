"""Global rate limiter instance for SlowAPI."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from common.core.config import settings

# storage_uri may point at redis:// to share limits across API pods
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["20/second", "600/minute"],
    storage_uri=settings.rate_limit_storage_uri,
)
