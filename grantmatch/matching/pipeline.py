"""
Matching Pipeline
Query interpretation -> candidate fetch -> batched scoring -> aggregation
-> cache -> threshold filter -> ranked, explained grants.
"""
import hashlib
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

import structlog

from grantmatch.core.config import Settings, settings
from grantmatch.core.exceptions import CompletionNotConfiguredError
from grantmatch.matching.aggregator import ScoreAggregator
from grantmatch.matching.cache import ResultCache
from grantmatch.matching.completion import AnthropicCompletionClient, CompletionClient, CompletionPool
from grantmatch.matching.fetcher import CandidateFetcher, GrantStore
from grantmatch.matching.interpreter import QueryInterpreter
from grantmatch.matching.models import (
    GrantData,
    GrantScore,
    HardFilters,
    MatchOutcome,
    ScoredGrant,
    SearchCriteria,
    UserMatchPreferences,
)
from grantmatch.matching.retry import RetryPolicy
from grantmatch.matching.scheduler import BatchScheduler
from grantmatch.matching.scorer import RelevanceScorer
from grantmatch.matching.thresholds import filter_by_threshold

logger = structlog.get_logger(__name__)


def cache_variant(
    candidates: list[GrantData],
    hard_filters: Optional[HardFilters] = None,
    preferences: Optional[UserMatchPreferences] = None,
) -> str:
    """
    Cache key suffix for one scoring run.

    Built only from inputs that are stable across repeat searches: the
    caller's explicit filters, the preference set and the candidate ids.
    Interpreted criteria are left out since they may vary between calls.
    """
    ids = "\n".join(sorted(g.id for g in candidates))
    parts = [hashlib.sha256(ids.encode("utf-8")).hexdigest()[:16]]
    if hard_filters is not None and not hard_filters.is_empty:
        parts.append(hard_filters.model_dump_json(exclude_none=True))
    if preferences is not None:
        parts.append(preferences.cache_fingerprint())
    return "|".join(parts)


@dataclass(frozen=True)
class MatchingConfig:
    """Tunable pipeline values."""

    batch_size: int = 8
    min_score: float = 30
    good_match_score: float = 50
    prune_floor: float = 20
    neutral_score: float = 50
    preference_boost: float = 5
    cache_ttl_seconds: float = 300
    apply_interpreted_filters: bool = True

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "MatchingConfig":
        return cls(
            batch_size=config.match_batch_size,
            min_score=config.match_min_score,
            good_match_score=config.match_good_score,
            prune_floor=config.match_prune_floor,
            neutral_score=config.match_neutral_score,
            preference_boost=config.match_preference_boost,
            cache_ttl_seconds=config.match_cache_ttl_seconds,
            apply_interpreted_filters=config.apply_interpreted_filters,
        )


class MatchingPipeline:
    """
    Grant matching pipeline.

    Owns its cache and credential pool; separate instances share no
    mutable state.
    """

    def __init__(
        self,
        store: GrantStore,
        pool: CompletionPool,
        interpreter_client: Optional[CompletionClient] = None,
        config: Optional[MatchingConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[ResultCache] = None,
    ):
        self.config = config or MatchingConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.pool = pool
        self.fetcher = CandidateFetcher(store)
        self.interpreter = QueryInterpreter(interpreter_client or pool.primary, self.retry_policy)
        self.scorer = RelevanceScorer(self.retry_policy, neutral_score=self.config.neutral_score)
        self.scheduler = BatchScheduler(pool, self.scorer, batch_size=self.config.batch_size)
        self.aggregator = ScoreAggregator(preference_boost=self.config.preference_boost)
        self.cache = cache or ResultCache(ttl_seconds=self.config.cache_ttl_seconds)

    @classmethod
    def from_settings(cls, store: GrantStore, config: Settings = settings) -> "MatchingPipeline":
        """Build a pipeline with Anthropic clients for every configured key."""
        keys = config.scoring_api_keys
        if not keys:
            raise CompletionNotConfiguredError("ANTHROPIC_API_KEY is not set")

        interpreter_client = AnthropicCompletionClient(
            api_key=keys[0],
            model=config.llm_model,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
            label="interpreter",
        )
        return cls(
            store=store,
            pool=CompletionPool.from_settings(config),
            interpreter_client=interpreter_client,
            config=MatchingConfig.from_settings(config),
            retry_policy=RetryPolicy.from_settings(config),
        )

    async def _fetch_candidates(
        self,
        criteria: SearchCriteria,
        hard_filters: Optional[HardFilters],
        today: date,
    ) -> list[GrantData]:
        """
        Fetch candidates, narrowing by interpreted filters when enabled.

        Interpreted filters that leave nothing are relaxed; caller-supplied
        hard filters never are.
        """
        explicit = hard_filters or HardFilters()

        if self.config.apply_interpreted_filters:
            interpreted = HardFilters.from_criteria(criteria)
            if not interpreted.is_empty:
                combined = explicit.merged_over(interpreted)
                candidates = await self.fetcher.fetch(combined, today)
                if candidates:
                    return candidates
                logger.info("interpreted_filters_relaxed", filters=interpreted.model_dump(exclude_none=True, mode="json"))

        return await self.fetcher.fetch(explicit, today)

    async def score_candidates(
        self,
        query: str,
        candidates: list[GrantData],
        criteria: Optional[SearchCriteria] = None,
        preferences: Optional[UserMatchPreferences] = None,
        cache_variant: str = "",
    ) -> tuple[list[GrantScore], bool]:
        """
        Score candidates, reusing cached scores within the TTL.

        Returns:
            (ranked scores, whether they came from the cache)
        """
        cached = self.cache.get(query, len(candidates), cache_variant)
        if cached is not None:
            return cached, True

        batch_results = await self.scheduler.score_all(candidates, query, criteria=criteria, preferences=preferences)
        scores = self.aggregator.aggregate(batch_results, candidates, preferences)
        self.cache.put(query, len(candidates), scores, cache_variant)
        return scores, False

    async def run(
        self,
        query: str,
        preferences: Optional[UserMatchPreferences] = None,
        hard_filters: Optional[HardFilters] = None,
        today: Optional[date] = None,
    ) -> MatchOutcome:
        """
        Run one search.

        Args:
            query: Raw user text.
            preferences: Stored preferences to boost by and add as context.
            hard_filters: Caller-supplied pre-scoring filters.
            today: Reference date for deadline checks.

        Returns:
            MatchOutcome with ranked, explained results.

        Raises:
            GrantFetchError: If candidates cannot be read from storage.
        """
        start_time = time.time()
        today = today or date.today()

        criteria = await self.interpreter.interpret(query, today=today)
        candidates = await self._fetch_candidates(criteria, hard_filters, today)

        if not candidates:
            logger.info("no_candidates", query=query[:200])
            return MatchOutcome(criteria=criteria)

        scores, cache_hit = await self.score_candidates(
            query,
            candidates,
            criteria=criteria,
            preferences=preferences,
            cache_variant=cache_variant(candidates, hard_filters, preferences),
        )

        threshold = filter_by_threshold(
            scores,
            min_score=self.config.min_score,
            good_match_score=self.config.good_match_score,
            prune_floor=self.config.prune_floor,
        )

        grants_by_id = {g.id: g for g in candidates}
        results = [
            ScoredGrant.from_score(grants_by_id[s.grant_id], s)
            for s in threshold.scores
            if s.grant_id in grants_by_id
        ]

        outcome = MatchOutcome(
            criteria=criteria,
            results=results,
            candidate_count=len(candidates),
            cache_hit=cache_hit,
            degraded_count=sum(1 for r in results if r.degraded),
            threshold_fallback=threshold.fell_back,
        )

        logger.info(
            "search_complete",
            candidates=outcome.candidate_count,
            results=len(results),
            cache_hit=cache_hit,
            degraded=outcome.degraded_count,
            threshold_fallback=outcome.threshold_fallback,
            processing_time_seconds=round(time.time() - start_time, 2),
        )
        return outcome
