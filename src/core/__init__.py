# Core infrastructure
from src.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_user_id,
    set_request_id,
    set_user_id,
)
from src.core.errors import (
    NotFoundError,
    PortalError,
    TransientIOError,
    UnauthenticatedError,
    WriteConflictError,
)
from src.core.logging import configure_structlog, get_logger


__all__ = [
    "NotFoundError",
    "PortalError",
    "TransientIOError",
    "UnauthenticatedError",
    "WriteConflictError",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "set_request_id",
    "set_user_id",
]
