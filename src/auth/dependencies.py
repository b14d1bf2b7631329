"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from the bearer token
- Optional user for reads that also serve anonymous callers
- Admin guard for catalogue management
"""

from typing import Annotated

from fastapi import Depends, Request
from jose import JWTError

from src.auth.permissions import UserRole, parse_role
from src.auth.schemas import AuthenticatedUser
from src.auth.security import decode_access_token
from src.core.context import set_user_id
from src.core.errors import (
    PermissionDeniedError,
    UnauthenticatedError,
    handle_portal_error,
)


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def _user_from_token(token: str) -> AuthenticatedUser:
    payload = decode_access_token(token)
    try:
        user = AuthenticatedUser(
            id=payload["sub"], role=parse_role(payload.get("role"))
        )
    except ValueError as e:
        msg = "Token subject is not a user id"
        raise JWTError(msg) from e

    # Set user_id in context for logging
    set_user_id(str(user.id))
    return user


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser:
    """Get current authenticated user from the access token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise handle_portal_error(UnauthenticatedError("Access token not provided"))

    try:
        return _user_from_token(token)
    except JWTError as e:
        error = UnauthenticatedError("Invalid or expired token")
        raise handle_portal_error(error) from e


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser | None:
    """Get current user if authenticated, None otherwise.

    Use this for endpoints that work for both authenticated and anonymous users.
    """
    if not token:
        return None

    try:
        return _user_from_token(token)
    except JWTError:
        return None


def require_role(*allowed_roles: UserRole):
    """Create dependency requiring specific role(s).

    Example:
        @router.delete("/{course_id}")
        async def delete_course(
            user: Annotated[AuthenticatedUser, Depends(require_role(UserRole.ADMIN))]
        ):
            ...
    """

    async def role_checker(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            error = PermissionDeniedError("Insufficient permissions")
            raise handle_portal_error(error)

        return user

    return role_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

# Optional user (for endpoints that work both ways)
OptionalUser = Annotated[
    AuthenticatedUser | None, Depends(get_current_user_optional)
]

# Catalogue management
AdminUser = Annotated[AuthenticatedUser, Depends(require_role(UserRole.ADMIN))]
