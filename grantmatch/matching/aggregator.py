"""
Score Aggregator
Merges batch results, applies the preference boost and ranks.
"""
from typing import Iterable, Optional, Sequence

import structlog

from grantmatch.matching.models import GrantData, GrantScore, UserMatchPreferences

logger = structlog.get_logger(__name__)

PREFERENCE_BOOST = 5.0
PREFERENCE_REASON = "Matches your profile preferences"


def merge_batches(batch_results: Iterable[Sequence[GrantScore]]) -> list[GrantScore]:
    """
    Flatten batch outputs keeping one score per grant.

    For duplicates the highest score wins; order of first appearance is kept.
    """
    merged: dict[str, GrantScore] = {}
    for batch in batch_results:
        for score in batch:
            existing = merged.get(score.grant_id)
            if existing is None or score.score > existing.score:
                merged[score.grant_id] = score
    return list(merged.values())


def apply_preference_boost(
    scores: Sequence[GrantScore],
    grants: Sequence[GrantData],
    preferences: Optional[UserMatchPreferences],
    boost: float = PREFERENCE_BOOST,
) -> list[GrantScore]:
    """
    Add a fixed boost to grants whose issue area matches a preferred area.

    The boosted score is clamped to 100 and the grant's positive reasons
    gain an explanatory note. Preferences never remove grants.
    """
    if preferences is None or not preferences.issue_areas:
        return list(scores)

    grants_by_id = {g.id: g for g in grants}
    boosted: list[GrantScore] = []
    for score in scores:
        grant = grants_by_id.get(score.grant_id)
        if grant is not None and preferences.matches_issue_area(grant.issue_area):
            score = score.model_copy(
                update={
                    "score": min(100.0, max(0.0, score.score + boost)),
                    "why_matches": [*score.why_matches, PREFERENCE_REASON],
                }
            )
        boosted.append(score)
    return boosted


def rank(scores: Sequence[GrantScore]) -> list[GrantScore]:
    """Sort by score descending; ties keep input order."""
    return sorted(scores, key=lambda s: -s.score)


class ScoreAggregator:
    """Produces the single deduplicated, boosted, ranked score list."""

    def __init__(self, preference_boost: float = PREFERENCE_BOOST):
        self.preference_boost = preference_boost

    def aggregate(
        self,
        batch_results: Iterable[Sequence[GrantScore]],
        grants: Sequence[GrantData],
        preferences: Optional[UserMatchPreferences] = None,
    ) -> list[GrantScore]:
        """
        Merge, boost and rank.

        Args:
            batch_results: Per-batch score lists.
            grants: The candidate set that was scored.
            preferences: Optional stored preferences.

        Returns:
            Descending list with exactly one entry per scored candidate.
        """
        candidate_ids = {g.id for g in grants}
        merged = merge_batches(batch_results)

        unknown = [s.grant_id for s in merged if s.grant_id not in candidate_ids]
        if unknown:
            logger.warning("scores_for_unknown_grants_dropped", count=len(unknown))
            merged = [s for s in merged if s.grant_id in candidate_ids]

        ranked = rank(apply_preference_boost(merged, grants, preferences, self.preference_boost))

        logger.info(
            "scores_aggregated",
            scored=len(ranked),
            top_score=ranked[0].score if ranked else None,
            degraded=sum(1 for s in ranked if s.degraded),
        )
        return ranked
