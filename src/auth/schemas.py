"""Pydantic schemas for authenticated callers."""

from uuid import UUID

from pydantic import BaseModel

from src.auth.permissions import UserRole


class AuthenticatedUser(BaseModel):
    """Caller resolved from a valid access token."""

    id: UUID
    role: UserRole = UserRole.STUDENT
