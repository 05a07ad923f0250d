"""
Matching Module
Grant-to-need matching: interpretation, batched LLM scoring, aggregation.
"""
from .aggregator import ScoreAggregator
from .cache import ResultCache
from .completion import AnthropicCompletionClient, CompletionClient, CompletionPool
from .fetcher import CandidateFetcher, GrantStore
from .interpreter import QueryInterpreter
from .models import (
    GrantData,
    GrantScore,
    HardFilters,
    ManualFilters,
    MatchOutcome,
    ScoredGrant,
    SearchCriteria,
    UserMatchPreferences,
)
from .pipeline import MatchingConfig, MatchingPipeline
from .retry import RetryPolicy
from .scheduler import BatchScheduler
from .scorer import RelevanceScorer
from .thresholds import filter_by_threshold

__all__ = [
    # Pipeline
    "MatchingConfig",
    "MatchingPipeline",
    # Components
    "BatchScheduler",
    "CandidateFetcher",
    "QueryInterpreter",
    "RelevanceScorer",
    "ResultCache",
    "ScoreAggregator",
    "filter_by_threshold",
    # Completion service
    "AnthropicCompletionClient",
    "CompletionClient",
    "CompletionPool",
    "GrantStore",
    "RetryPolicy",
    # Models
    "GrantData",
    "GrantScore",
    "HardFilters",
    "ManualFilters",
    "MatchOutcome",
    "ScoredGrant",
    "SearchCriteria",
    "UserMatchPreferences",
]
