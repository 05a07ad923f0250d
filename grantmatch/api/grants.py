"""
Grant API Endpoints
Natural-language search, manual filtering, listing and recommendations.
"""
import structlog
from fastapi import APIRouter, HTTPException, status

from grantmatch.api.deps import SearchServiceDep
from grantmatch.core.exceptions import GrantFetchError
from grantmatch.matching.models import ScoredGrant
from grantmatch.schemas.grants import (
    FilterRequest,
    GrantList,
    ScoredGrantResponse,
    SearchCriteriaResponse,
    SearchRequest,
    SearchResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/grants", tags=["Grants"])


def _fetch_failed(e: GrantFetchError) -> HTTPException:
    logger.error("grant_fetch_failed", error=str(e))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def _to_list(grants: list[ScoredGrant]) -> GrantList:
    items = [ScoredGrantResponse.model_validate(g.model_dump()) for g in grants]
    return GrantList(grants=items, total=len(items))


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Search grants",
    description="Match grants against a free-text description of funding needs.",
)
async def search_grants(payload: SearchRequest, service: SearchServiceDep) -> SearchResponse:
    """
    Run a natural-language search.

    Results are ranked by relevance and never empty when any active grant
    exists; grants that could not be analyzed are flagged as degraded.
    """
    if not payload.query.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Query must not be blank")

    try:
        outcome = await service.search(
            payload.query,
            user_id=payload.user_id,
            hard_filters=payload.hard_filters(),
            use_profile_preferences=payload.use_profile_preferences,
        )
    except GrantFetchError as e:
        raise _fetch_failed(e) from e

    grants = [ScoredGrantResponse.model_validate(g.model_dump()) for g in outcome.results]
    return SearchResponse(
        query=payload.query,
        criteria=SearchCriteriaResponse.model_validate(outcome.criteria.model_dump(mode="json")),
        grants=grants,
        total=len(grants),
        candidate_count=outcome.candidate_count,
        cache_hit=outcome.cache_hit,
        degraded_count=outcome.degraded_count,
    )


@router.post(
    "/filter",
    response_model=GrantList,
    summary="Filter grants",
    description="Deterministic filtering without language-model scoring.",
)
async def filter_grants(payload: FilterRequest, service: SearchServiceDep) -> GrantList:
    try:
        grants = await service.filter_grants_manually(payload.to_manual_filters())
    except GrantFetchError as e:
        raise _fetch_failed(e) from e
    return _to_list(grants)


@router.get(
    "",
    response_model=GrantList,
    summary="List grants",
    description="All active grants at a default score.",
)
async def list_grants(service: SearchServiceDep) -> GrantList:
    try:
        grants = await service.get_all_grants()
    except GrantFetchError as e:
        raise _fetch_failed(e) from e
    return _to_list(grants)


@router.get(
    "/recommended/{user_id}",
    response_model=GrantList,
    summary="Recommended grants",
    description="Grants matched against a user's stored preferences.",
)
async def recommended_grants(user_id: str, service: SearchServiceDep) -> GrantList:
    """Recommendations fall back to recently added grants without stored preferences."""
    try:
        grants = await service.get_recommended_grants(user_id)
    except GrantFetchError as e:
        raise _fetch_failed(e) from e
    return _to_list(grants)
