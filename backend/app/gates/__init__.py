"""Access gating utilities shared by the storefront services."""
from .enforcement import (
    require_complete_billing_profile,
    require_not_purchased,
    require_playback,
    require_priced,
    require_role,
)
from .exceptions import AccessError, ConflictError

__all__ = [
    "AccessError",
    "ConflictError",
    "require_complete_billing_profile",
    "require_not_purchased",
    "require_playback",
    "require_priced",
    "require_role",
]
