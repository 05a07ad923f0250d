"""
FastAPI Dependencies
Shared dependencies for service access.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from grantmatch.services.grant_search import GrantSearchService


def get_search_service(request: Request) -> GrantSearchService:
    """Return the search service built at startup."""
    service = getattr(request.app.state, "search_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Grant search is not available",
        )
    return service


SearchServiceDep = Annotated[GrantSearchService, Depends(get_search_service)]
