"""Investor Academy API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.errors import ERROR_STATUS_CODES, PortalError, WriteConflictError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.store import STORE_ERRORS, CassandraTableStore, TableStore
from src.courses.models import COURSES_TABLE_SPECS
from src.courses.router import router as courses_router
from src.courses.service import CatalogService
from src.health import router as health_router
from src.progress.models import PROGRESS_TABLE_SPECS
from src.progress.router import router as progress_router
from src.progress.service import ProgressService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_services(app: FastAPI, store: TableStore) -> None:
    """Wire the catalogue and progress services onto ``app.state``."""
    settings = get_settings()
    catalog = CatalogService(store, sentinel_key=settings.reorder_sentinel_key)
    app.state.catalog_service = catalog
    app.state.progress_service = ProgressService(
        store,
        catalog,
        toggle_max_attempts=settings.progress_toggle_max_attempts,
        toggle_retry_delay=settings.progress_toggle_retry_delay_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        store = CassandraTableStore(
            session,
            settings.cassandra_keyspace,
            COURSES_TABLE_SPECS + PROGRESS_TABLE_SPECS,
        )
        build_services(app, store)
        logger.info("services_initialized")
    except (ConnectionError, *STORE_ERRORS) as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Stack traces never reach responses; handlers below log them instead
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Investor Academy - courses, lessons and learner progress",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        content = {
            "error": True,
            "message": str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error",
            "status_code": exc.status_code,
            "request_id": request_id,
        }
        # Structured details (write conflict repair info)
        if isinstance(exc.detail, dict):
            content["message"] = exc.detail.get("message", "")
            content.update(
                {k: v for k, v in exc.detail.items() if k != "message"}
            )

        return ORJSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(PortalError)
    async def portal_exception_handler(
        request: Request, exc: PortalError
    ) -> ORJSONResponse:
        """Handle domain errors that escaped a router."""
        request_id = _get_request_id_safe(request)
        status_code = ERROR_STATUS_CODES.get(
            exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR
        )

        logger.warning(
            "portal_error",
            code=exc.code,
            status_code=status_code,
            path=request.url.path,
            method=request.method,
        )

        content = {
            "error": True,
            "message": exc.message,
            "status_code": status_code,
            "request_id": request_id,
        }
        if isinstance(exc, WriteConflictError):
            content["repair"] = exc.to_dict()

        return ORJSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Full details are logged; the response carries a generic message.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(progress_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Investor Academy API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
