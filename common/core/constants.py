from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


# Credential values at or below this length are returned unmasked
CREDENTIAL_MASK_MIN_LENGTH = 8
CREDENTIAL_MASK_MARKER = "****"
