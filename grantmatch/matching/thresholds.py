"""
Threshold Filter
Drops low-relevance grants without ever emptying a non-empty result set.
"""
from dataclasses import dataclass
from typing import Sequence

import structlog

from grantmatch.matching.models import GrantScore

logger = structlog.get_logger(__name__)

MIN_SCORE_THRESHOLD = 30.0
GOOD_MATCH_SCORE = 50.0
PRUNE_FLOOR = 20.0


@dataclass(frozen=True)
class ThresholdResult:
    scores: list[GrantScore]
    fell_back: bool


def filter_by_threshold(
    scores: Sequence[GrantScore],
    min_score: float = MIN_SCORE_THRESHOLD,
    good_match_score: float = GOOD_MATCH_SCORE,
    prune_floor: float = PRUNE_FLOOR,
) -> ThresholdResult:
    """
    Apply the relevance cutoff.

    When at least one grant reaches the good-match bar, grants below
    max(min_score, prune_floor) are dropped. When nothing reaches it, the
    full set is returned so the caller can still show the best available
    options.

    Args:
        scores: Ranked scores.
        min_score: Minimum relevance to keep.
        good_match_score: Bar that signals the search found real matches.
        prune_floor: Hard floor applied alongside min_score when good matches exist.

    Returns:
        Kept scores (input order preserved) and whether the fallback applied.
    """
    if not scores:
        return ThresholdResult(scores=[], fell_back=False)

    if not any(s.score >= good_match_score for s in scores):
        logger.info(
            "threshold_fallback_all_results",
            candidates=len(scores),
            best_score=max(s.score for s in scores),
        )
        return ThresholdResult(scores=list(scores), fell_back=True)

    cutoff = max(min_score, prune_floor)
    kept = [s for s in scores if s.score >= cutoff]
    if not kept:
        # Only reachable when the cutoff is configured above the good-match bar
        return ThresholdResult(scores=list(scores), fell_back=True)
    logger.info("threshold_applied", cutoff=cutoff, kept=len(kept), dropped=len(scores) - len(kept))
    return ThresholdResult(scores=kept, fell_back=False)
