"""Authentication module.

Verifies bearer access tokens and exposes the caller to route handlers.
"""

from .dependencies import AdminUser, OptionalUser
from .permissions import UserRole


__all__ = ["AdminUser", "OptionalUser", "UserRole"]
