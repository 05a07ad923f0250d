"""
Result Cache
Short-lived, process-local memoization of aggregated scores.

Entries are keyed by normalized query text and candidate count, so a
changed candidate set misses implicitly. Stale entries are only detected
on read; nothing is evicted proactively.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import structlog

from grantmatch.matching.models import GrantScore

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300.0


def cache_key(query: str, candidate_count: int, variant: str = "") -> str:
    """Normalized key: lower-cased, trimmed query plus candidate count."""
    key = f"{query.lower().strip()}_{candidate_count}"
    return f"{key}_{variant}" if variant else key


@dataclass
class CacheEntry:
    key: str
    scores: tuple[GrantScore, ...]
    timestamp: float = field(default_factory=time.monotonic)


class ResultCache:
    """
    In-memory TTL cache owned by one pipeline instance.

    Concurrent searches for the same key may both write; the last write wins.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, query: str, candidate_count: int, variant: str = "") -> Optional[list[GrantScore]]:
        """
        Return cached scores, or None on a miss or a stale entry.

        Returned scores are copies; callers may mutate them freely.
        """
        key = cache_key(query, candidate_count, variant)
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("cache_miss", key=key[:64])
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            logger.debug("cache_stale", key=key[:64])
            return None
        logger.info("cache_hit", key=key[:64], scores=len(entry.scores))
        return [s.model_copy(deep=True) for s in entry.scores]

    def put(self, query: str, candidate_count: int, scores: Sequence[GrantScore], variant: str = "") -> None:
        key = cache_key(query, candidate_count, variant)
        self._entries[key] = CacheEntry(
            key=key,
            scores=tuple(s.model_copy(deep=True) for s in scores),
            timestamp=self._clock(),
        )

    def clear(self) -> int:
        """Drop all entries. Returns the number removed."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)
