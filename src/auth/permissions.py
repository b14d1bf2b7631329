"""Role-based access control for the academy.

- ADMIN: Manages the course catalogue (courses, lessons, ordering)
- STUDENT: Watches lessons and tracks own progress
"""

from enum import Enum


class UserRole(str, Enum):
    """Roles carried in the ``role`` claim of access tokens."""

    STUDENT = "student"
    ADMIN = "admin"


def parse_role(role: UserRole | str | None) -> UserRole:
    """Resolve a role claim, falling back to STUDENT for unknown values."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return UserRole.STUDENT
