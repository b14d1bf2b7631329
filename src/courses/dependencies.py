"""FastAPI dependencies for the course catalogue."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.courses.service import CatalogService


async def get_catalog_service(request: Request) -> CatalogService:
    """Get catalogue service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "catalog_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalogue service not available",
        )
    return app_state.catalog_service


# Type alias for dependency injection
CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]
