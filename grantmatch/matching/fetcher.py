"""
Candidate Fetcher
Retrieves the working set of active, non-expired grants before scoring.
"""
from datetime import date
from typing import Optional, Protocol

import structlog

from grantmatch.core.exceptions import GrantFetchError
from grantmatch.matching.models import GrantData, HardFilters

logger = structlog.get_logger(__name__)


class GrantStore(Protocol):
    """Read contract for grant storage."""

    async def fetch_active_grants(self, filters: HardFilters, today: date) -> list[GrantData]:
        ...

    async def fetch_recent_grants(self, limit: int, today: date) -> list[GrantData]:
        ...


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return bool(value) and needle.lower() in value.lower()


def grant_passes(grant: GrantData, filters: HardFilters, today: date) -> bool:
    """
    Check one grant against the eligibility invariant and hard filters.

    Issue area and scope are case-insensitive substring matches; funding
    filters are range-overlap tests where a missing bound is unbounded.
    """
    if not grant.is_eligible(today):
        return False
    if not _contains(grant.issue_area, filters.issue_area):
        return False
    if not _contains(grant.scope, filters.scope):
        return False
    if filters.funding_min is not None and grant.funding_max is not None:
        if grant.funding_max < filters.funding_min:
            return False
    if filters.funding_max is not None and grant.funding_min is not None:
        if grant.funding_min > filters.funding_max:
            return False
    if filters.deadline_before is not None and grant.application_due_date is not None:
        if grant.application_due_date > filters.deadline_before:
            return False
    return True


def deadline_sort_key(grant: GrantData) -> tuple[bool, date]:
    """Ascending deadline, grants without a deadline last."""
    return (grant.application_due_date is None, grant.application_due_date or date.max)


class CandidateFetcher:
    """
    Fetches candidate grants from storage.

    Storage failures are raised as GrantFetchError and abort the search;
    an empty list always means "no matching grants".
    """

    def __init__(self, store: GrantStore):
        self.store = store

    async def fetch(self, filters: Optional[HardFilters] = None, today: Optional[date] = None) -> list[GrantData]:
        """
        Fetch active grants narrowed by hard filters.

        Args:
            filters: Optional hard filters.
            today: Reference date for the deadline check.

        Returns:
            Grants ordered by ascending deadline.

        Raises:
            GrantFetchError: If storage cannot be read.
        """
        filters = filters or HardFilters()
        today = today or date.today()

        try:
            grants = await self.store.fetch_active_grants(filters, today)
        except GrantFetchError:
            raise
        except Exception as e:
            logger.error("candidate_fetch_failed", error=str(e), error_type=type(e).__name__)
            raise GrantFetchError() from e

        candidates = [g for g in grants if grant_passes(g, filters, today)]
        if len(candidates) != len(grants):
            logger.warning("storage_returned_ineligible_grants", dropped=len(grants) - len(candidates))
        candidates.sort(key=deadline_sort_key)

        logger.info(
            "candidates_fetched",
            count=len(candidates),
            filters=filters.model_dump(exclude_none=True, mode="json"),
        )
        return candidates

    async def fetch_recent(self, limit: int = 10, today: Optional[date] = None) -> list[GrantData]:
        """Newest eligible grants, used when there is nothing to search for."""
        today = today or date.today()
        try:
            return await self.store.fetch_recent_grants(limit, today)
        except GrantFetchError:
            raise
        except Exception as e:
            logger.error("recent_grants_fetch_failed", error=str(e))
            raise GrantFetchError() from e
