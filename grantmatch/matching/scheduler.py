"""
Batch Scheduler
Partitions candidates into batches and fans them out across the
credential pool, awaiting every batch before returning.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

import structlog

from grantmatch.matching.completion import CompletionClient, CompletionPool
from grantmatch.matching.models import GrantData, GrantScore, SearchCriteria, UserMatchPreferences
from grantmatch.matching.scorer import RelevanceScorer

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 8

T = TypeVar("T")


def partition(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split items into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


@dataclass(frozen=True)
class ScoringBatch:
    """One batch of grants bound to the credential that will score it."""

    index: int
    grants: list[GrantData]
    client: CompletionClient


class BatchScheduler:
    """
    Fan-out/fan-in batch scoring.

    Batch i is assigned to credential (i mod pool size). All batches are
    dispatched at once and awaited together; partial results are never
    surfaced.
    """

    def __init__(self, pool: CompletionPool, scorer: RelevanceScorer, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.pool = pool
        self.scorer = scorer
        self.batch_size = batch_size

    def plan(self, grants: Sequence[GrantData]) -> list[ScoringBatch]:
        """Partition grants and assign credentials round robin."""
        return [
            ScoringBatch(index=i, grants=chunk, client=self.pool.client_for(i))
            for i, chunk in enumerate(partition(grants, self.batch_size))
        ]

    async def score_all(
        self,
        grants: Sequence[GrantData],
        query: str,
        criteria: Optional[SearchCriteria] = None,
        preferences: Optional[UserMatchPreferences] = None,
    ) -> list[list[GrantScore]]:
        """
        Score every grant.

        Returns:
            One score list per batch, in batch order.
        """
        batches = self.plan(grants)
        if not batches:
            return []

        logger.info(
            "batches_dispatched",
            grants=len(grants),
            batches=len(batches),
            batch_size=self.batch_size,
            credentials=len(self.pool),
        )

        start_time = time.time()
        results = await asyncio.gather(
            *(
                self.scorer.score_batch(
                    batch.client,
                    query,
                    batch.grants,
                    criteria=criteria,
                    preferences=preferences,
                    batch_index=batch.index,
                )
                for batch in batches
            )
        )

        logger.info(
            "batches_completed",
            batches=len(batches),
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return list(results)
