"""Error taxonomy shared by the catalogue and progress services.

Every error carries a human readable ``message`` and a stable ``code`` that
routers map to an HTTP status (see ``ERROR_STATUS_CODES``).
"""

from typing import Any
from uuid import UUID

from fastapi import HTTPException, status


class PortalError(Exception):
    """Base portal error."""

    def __init__(self, message: str, code: str = "portal_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(PortalError):
    """Referenced course or lesson no longer exists."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class UnauthenticatedError(PortalError):
    """No resolvable user for a write that requires one."""

    def __init__(self, message: str = "No active session"):
        super().__init__(message, "unauthenticated")


class PermissionDeniedError(PortalError):
    """Caller is authenticated but may not perform the action."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "forbidden")


class InvalidRequestError(PortalError):
    """Request is well formed but cannot be applied."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, "invalid_request")


class TransientIOError(PortalError):
    """Store call failed for infrastructural reasons.

    Safe to retry by re-running the whole operation from its first step.
    """

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message, "transient_io")


class WriteConflictError(PortalError):
    """A lesson reorder failed after at least one of its writes succeeded.

    The stored order of the course is left exactly as the failed step left it
    and must be inspected by hand. Never retried automatically.
    """

    def __init__(
        self,
        course_id: UUID,
        failed_state: str,
        current_lesson_id: UUID,
        current_key: int,
        target_lesson_id: UUID,
        target_key: int,
        cause: str | None = None,
    ):
        self.course_id = course_id
        self.failed_state = failed_state
        self.current_lesson_id = current_lesson_id
        self.current_key = current_key
        self.target_lesson_id = target_lesson_id
        self.target_key = target_key
        self.cause = cause
        super().__init__(
            f"Lesson reorder aborted during {failed_state}; "
            "course lesson order needs manual inspection",
            "write_conflict",
        )

    def to_dict(self) -> dict[str, Any]:
        """Repair details for the administrator."""
        return {
            "course_id": str(self.course_id),
            "failed_state": self.failed_state,
            "current_lesson_id": str(self.current_lesson_id),
            "current_original_key": self.current_key,
            "target_lesson_id": str(self.target_lesson_id),
            "target_original_key": self.target_key,
            "cause": self.cause,
        }


ERROR_STATUS_CODES: dict[str, int] = {
    "not_found": 404,
    "unauthenticated": 401,
    "forbidden": 403,
    "invalid_request": 400,
    "write_conflict": 409,
    "transient_io": 503,
}


def handle_portal_error(error: PortalError) -> HTTPException:
    """Convert portal errors to HTTP exceptions.

    A write conflict carries its repair details in the response detail.
    """
    status_code = ERROR_STATUS_CODES.get(
        error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    detail: str | dict[str, Any] = error.message
    if isinstance(error, WriteConflictError):
        detail = {"message": error.message, "repair": error.to_dict()}

    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
