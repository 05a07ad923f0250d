"""
Tests for the Candidate Fetcher.
"""
from datetime import timedelta

import pytest

from grantmatch.core.exceptions import GrantFetchError
from grantmatch.matching.fetcher import CandidateFetcher, grant_passes
from grantmatch.matching.models import HardFilters
from tests.fixtures.factories import REFERENCE_DATE, GrantFactory
from tests.fixtures.fakes import InMemoryGrantStore


class TestGrantPasses:
    """Tests for eligibility and hard-filter checks."""

    def test_substring_filters_are_case_insensitive(self):
        grant = GrantFactory.create(issue_area="Environment & Climate", scope="Local")

        assert grant_passes(grant, HardFilters(issue_area="climate", scope="local"), REFERENCE_DATE)
        assert not grant_passes(grant, HardFilters(issue_area="health"), REFERENCE_DATE)

    def test_funding_overlap(self):
        grant = GrantFactory.create(funding_min=10000, funding_max=20000)

        assert grant_passes(grant, HardFilters(funding_min=15000), REFERENCE_DATE)
        assert grant_passes(grant, HardFilters(funding_max=10000), REFERENCE_DATE)
        assert not grant_passes(grant, HardFilters(funding_min=20001), REFERENCE_DATE)
        assert not grant_passes(grant, HardFilters(funding_max=9999), REFERENCE_DATE)

    def test_missing_bounds_are_unbounded(self):
        grant = GrantFactory.create(funding_min=None, funding_max=None)

        assert grant_passes(grant, HardFilters(funding_min=1_000_000, funding_max=2_000_000), REFERENCE_DATE)

    def test_deadline_before(self):
        grant = GrantFactory.create(days_until_due=20)
        limit = REFERENCE_DATE + timedelta(days=10)

        assert not grant_passes(grant, HardFilters(deadline_before=limit), REFERENCE_DATE)


class TestCandidateFetcher:
    """Tests for candidate retrieval."""

    @pytest.mark.asyncio
    async def test_excludes_expired_and_inactive_and_sorts_by_deadline(self):
        grants = [
            GrantFactory.create(id="later", days_until_due=60),
            GrantFactory.create(id="expired", days_until_due=-1),
            GrantFactory.create(id="open", days_until_due=None),
            GrantFactory.create(id="inactive", is_active=False),
            GrantFactory.create(id="today", days_until_due=0),
        ]
        fetcher = CandidateFetcher(InMemoryGrantStore(grants))

        candidates = await fetcher.fetch(today=REFERENCE_DATE)

        assert [g.id for g in candidates] == ["today", "later", "open"]

    @pytest.mark.asyncio
    async def test_storage_returning_ineligible_rows_is_refiltered(self):
        class LeakyStore(InMemoryGrantStore):
            async def fetch_active_grants(self, filters, today):
                return self.grants

        grants = [GrantFactory.create(id="ok"), GrantFactory.create(id="old", days_until_due=-5)]

        candidates = await CandidateFetcher(LeakyStore(grants)).fetch(today=REFERENCE_DATE)

        assert [g.id for g in candidates] == ["ok"]

    @pytest.mark.asyncio
    async def test_storage_error_becomes_fetch_error(self):
        fetcher = CandidateFetcher(InMemoryGrantStore(error=ConnectionError("db down")))

        with pytest.raises(GrantFetchError):
            await fetcher.fetch(today=REFERENCE_DATE)

    @pytest.mark.asyncio
    async def test_empty_store_returns_empty_list(self):
        assert await CandidateFetcher(InMemoryGrantStore()).fetch(today=REFERENCE_DATE) == []

    @pytest.mark.asyncio
    async def test_fetch_recent(self):
        grants = GrantFactory.create_batch(3)
        fetcher = CandidateFetcher(InMemoryGrantStore(grants))

        recent = await fetcher.fetch_recent(limit=2, today=REFERENCE_DATE)

        assert [g.id for g in recent] == [grants[2].id, grants[1].id]

    @pytest.mark.asyncio
    async def test_fetch_recent_skips_expired_grants(self):
        current = GrantFactory.create(id="current", days_until_due=3)
        expired = GrantFactory.create(id="expired", days_until_due=-1)
        fetcher = CandidateFetcher(InMemoryGrantStore([current, expired]))

        recent = await fetcher.fetch_recent(limit=10, today=REFERENCE_DATE)

        assert [g.id for g in recent] == ["current"]
