"""
Caller identity for the booking API.

Authentication itself happens upstream; this package only decodes the bearer
token and loads the caller's role and assigned districts.
"""

from .schemas import CallerIdentity, UserRole
from .dependencies import get_current_user, get_optional_user, require_admin, require_operator

__all__ = [
    "CallerIdentity",
    "UserRole",
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "require_operator"
]
