"""
Grant search service.

Caller-facing operations consumed by the UI: natural-language search,
deterministic manual filtering, listing and profile-based recommendations.
"""
from datetime import date
from typing import Optional

import structlog

from grantmatch.matching.fetcher import CandidateFetcher, GrantStore
from grantmatch.matching.models import (
    GrantData,
    HardFilters,
    ManualFilters,
    MatchOutcome,
    ScoredGrant,
    UserMatchPreferences,
)
from grantmatch.matching.pipeline import MatchingPipeline
from grantmatch.services.preferences import PreferenceStore

logger = structlog.get_logger(__name__)

DEFAULT_SCORE = 50.0
MANUAL_MIN_SCORE = 50.0
MANUAL_NO_FILTER_SCORE = 75.0
RECOMMENDED_FALLBACK_LIMIT = 10
SYNTHETIC_FUNDING_CEILING = 1000000


def synthetic_query(preferences: UserMatchPreferences) -> str:
    """Build a search query from stored preferences."""
    parts: list[str] = []
    if preferences.issue_areas:
        parts.append(" ".join(preferences.issue_areas))
    if preferences.preferred_scope:
        parts.append(preferences.preferred_scope)
    if preferences.funding_min or preferences.funding_max:
        low = preferences.funding_min or 0
        high = preferences.funding_max or SYNTHETIC_FUNDING_CEILING
        parts.append(f"funding between ${low} and ${high}")
    return " ".join(parts) or "general grants"


def score_manual_match(grant: GrantData, filters: ManualFilters) -> ScoredGrant:
    """
    Deterministic score: share of active filters the grant satisfies,
    floored at 50 since every returned grant already passed storage filters.
    """
    reasons: list[str] = []
    matched = 0

    if filters.issue_area and grant.issue_area and filters.issue_area.lower() in grant.issue_area.lower():
        matched += 1
        reasons.append(f"Matches {grant.issue_area} focus")
    if filters.scope and grant.scope and filters.scope.lower() in grant.scope.lower():
        matched += 1
        reasons.append(f"{grant.scope} scope")
    if filters.funding_active:
        matched += 1
        reasons.append("Within funding range")

    total = filters.active_count
    score = round(matched / total * 100) if total else MANUAL_NO_FILTER_SCORE

    return ScoredGrant(
        **grant.model_dump(),
        match_score=max(MANUAL_MIN_SCORE, score),
        why_matches=reasons or ["Matches your filters"],
    )


class GrantSearchService:
    """Facade over the matching pipeline and storage for callers."""

    def __init__(
        self,
        pipeline: MatchingPipeline,
        store: GrantStore,
        preference_store: Optional[PreferenceStore] = None,
    ):
        self.pipeline = pipeline
        self.fetcher = CandidateFetcher(store)
        self.preference_store = preference_store

    async def _load_preferences(self, user_id: Optional[str]) -> Optional[UserMatchPreferences]:
        if not user_id or self.preference_store is None:
            return None
        return await self.preference_store.load_preferences(user_id)

    async def search(
        self,
        query: str,
        user_id: Optional[str] = None,
        hard_filters: Optional[HardFilters] = None,
        use_profile_preferences: bool = True,
        today: Optional[date] = None,
    ) -> MatchOutcome:
        """
        Natural-language search returning the full outcome.

        Raises:
            ValueError: If the query is blank.
            GrantFetchError: If storage is unreachable.
        """
        if not query or not query.strip():
            raise ValueError("Search query must not be empty")

        preferences = await self._load_preferences(user_id) if use_profile_preferences else None
        logger.info(
            "search_requested",
            user_id=user_id,
            use_profile_preferences=use_profile_preferences,
            has_preferences=preferences is not None,
        )
        return await self.pipeline.run(query.strip(), preferences=preferences, hard_filters=hard_filters, today=today)

    async def search_grants(
        self,
        query: str,
        user_id: Optional[str] = None,
        hard_filters: Optional[HardFilters] = None,
        use_profile_preferences: bool = True,
    ) -> list[ScoredGrant]:
        """Natural-language search returning ranked, explained grants."""
        outcome = await self.search(query, user_id, hard_filters, use_profile_preferences)
        return outcome.results

    async def filter_grants_manually(self, filters: ManualFilters, today: Optional[date] = None) -> list[ScoredGrant]:
        """Deterministic, non-LLM filtering for direct control or exhausted quota."""
        grants = await self.fetcher.fetch(filters.to_hard_filters(), today)
        return [score_manual_match(g, filters) for g in grants]

    async def get_all_grants(self, today: Optional[date] = None) -> list[ScoredGrant]:
        """All active grants at the default score, no scoring."""
        grants = await self.fetcher.fetch(HardFilters(), today)
        return [ScoredGrant.with_default_score(g, DEFAULT_SCORE, "Active grant") for g in grants]

    async def get_recommended_grants(self, user_id: str) -> list[ScoredGrant]:
        """
        Recommendations from stored preferences.

        Without stored preferences, the most recently added active grants
        are returned at the default score.
        """
        preferences = await self._load_preferences(user_id)
        if preferences is None:
            grants = await self.fetcher.fetch_recent(RECOMMENDED_FALLBACK_LIMIT)
            return [ScoredGrant.with_default_score(g, DEFAULT_SCORE, "Recently added grant") for g in grants]

        query = synthetic_query(preferences)
        outcome = await self.pipeline.run(query, preferences=preferences)
        return outcome.results
