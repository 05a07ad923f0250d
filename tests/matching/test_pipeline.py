"""
End-to-end tests for the Matching Pipeline with fake services.
"""
import json

import pytest

from grantmatch.core.exceptions import CompletionError, GrantFetchError
from grantmatch.matching.completion import CompletionPool
from grantmatch.matching.models import HardFilters
from grantmatch.matching.pipeline import MatchingConfig, MatchingPipeline
from tests.fixtures.factories import REFERENCE_DATE, GrantFactory
from tests.fixtures.fakes import FakeCompletionClient, InMemoryGrantStore, score_responder


def _interpretation(**fields) -> str:
    payload = {"issueAreas": [], "keywords": [], "parseConfidence": 0.8}
    payload.update(fields)
    return json.dumps(payload)


def _pipeline(grants, scoring_clients, interpretation=None, fast_retry=None, **config):
    interpreter = FakeCompletionClient(interpretation or _interpretation(), label="interpreter")
    pipeline = MatchingPipeline(
        store=InMemoryGrantStore(grants),
        pool=CompletionPool(scoring_clients),
        interpreter_client=interpreter,
        config=MatchingConfig(**config),
        retry_policy=fast_retry,
    )
    return pipeline, interpreter


class TestMatchingPipeline:
    """Scenario tests for the full search flow."""

    @pytest.mark.asyncio
    async def test_relevant_grant_ranks_first(self, fast_retry):
        grant_a = GrantFactory.create(
            id="A", title="Local Tree Planting", issue_area="Environment", funding_min=5000, funding_max=50000
        )
        grant_b = GrantFactory.create(
            id="B", title="National Arts Endowment", issue_area="Arts", funding_min=100000, funding_max=500000
        )
        scorer = FakeCompletionClient(score_responder({"A": 90, "B": 15}))
        pipeline, _ = _pipeline(
            [grant_a, grant_b],
            [scorer],
            _interpretation(issueAreas=["Environment"], fundingMax=50000),
            fast_retry,
            apply_interpreted_filters=False,
        )

        outcome = await pipeline.run("climate grants for our nonprofit under $50k", today=REFERENCE_DATE)

        assert outcome.criteria.issue_areas == ["Environment"]
        assert outcome.criteria.funding_max == 50000
        assert [g.id for g in outcome.results] == ["A"]
        assert outcome.results[0].match_score == 90
        assert outcome.results[0].why_matches == ["A fits your needs"]

    @pytest.mark.asyncio
    async def test_failed_batch_is_shown_at_neutral_score(self, fast_retry):
        grants = [GrantFactory.create(id=f"g{i}", days_until_due=i) for i in range(10)]
        healthy = FakeCompletionClient(score_responder({}, default=80), label="key-1")
        broken = FakeCompletionClient(CompletionError("service down"), label="key-2")
        pipeline, _ = _pipeline(grants, [healthy, broken], fast_retry=fast_retry, batch_size=5)

        outcome = await pipeline.run("anything", today=REFERENCE_DATE)

        assert len(outcome.results) == 10
        assert outcome.degraded_count == 5
        real = [g for g in outcome.results if not g.degraded]
        neutral = [g for g in outcome.results if g.degraded]
        assert {g.id for g in real} == {f"g{i}" for i in range(5)}
        assert all(g.match_score == 80 for g in real)
        assert all(g.match_score == 50 for g in neutral)
        assert outcome.results[0].match_score == 80

    @pytest.mark.asyncio
    async def test_repeat_search_uses_cache(self, fast_retry):
        grants = GrantFactory.create_batch(3)
        scorer = FakeCompletionClient(score_responder({grants[1].id: 95}, default=55))
        pipeline, _ = _pipeline(grants, [scorer], fast_retry=fast_retry)

        first = await pipeline.run("Youth Sports", today=REFERENCE_DATE)
        second = await pipeline.run("  youth sports ", today=REFERENCE_DATE)

        assert scorer.call_count == 1
        assert not first.cache_hit
        assert second.cache_hit
        assert [g.id for g in second.results] == [g.id for g in first.results]
        assert [g.match_score for g in second.results] == [g.match_score for g in first.results]

    @pytest.mark.asyncio
    async def test_cache_survives_varying_interpretation(self, fast_retry):
        grants = [
            GrantFactory.create(id=f"f{i}", funding_min=1000, funding_max=20000) for i in range(3)
        ]
        interpreter = FakeCompletionClient(
            _interpretation(fundingMax=50000), _interpretation(fundingMax=60000), label="interpreter"
        )
        scorer = FakeCompletionClient(score_responder({}, default=80), score_responder({}, default=55))
        pipeline = MatchingPipeline(
            store=InMemoryGrantStore(grants),
            pool=CompletionPool([scorer]),
            interpreter_client=interpreter,
            retry_policy=fast_retry,
        )

        first = await pipeline.run("small environment grants", today=REFERENCE_DATE)
        second = await pipeline.run("small environment grants", today=REFERENCE_DATE)

        assert interpreter.call_count == 2
        assert first.criteria.funding_max != second.criteria.funding_max
        assert second.cache_hit
        assert scorer.call_count == 1
        assert [g.match_score for g in second.results] == [g.match_score for g in first.results] == [80, 80, 80]

    @pytest.mark.asyncio
    async def test_same_size_candidate_swap_misses_cache(self, fast_retry):
        store = InMemoryGrantStore([GrantFactory.create(id="old"), GrantFactory.create(id="kept")])
        scorer = FakeCompletionClient(score_responder({}, default=70))
        pipeline = MatchingPipeline(
            store=store,
            pool=CompletionPool([scorer]),
            interpreter_client=FakeCompletionClient(_interpretation(), label="interpreter"),
            retry_policy=fast_retry,
        )

        await pipeline.run("q", today=REFERENCE_DATE)
        store.grants[0] = GrantFactory.create(id="new")
        second = await pipeline.run("q", today=REFERENCE_DATE)

        assert not second.cache_hit
        assert scorer.call_count == 2
        assert {g.id for g in second.results} == {"new", "kept"}

    @pytest.mark.asyncio
    async def test_cache_is_separate_per_preference_set(self, fast_retry, environment_preferences):
        grants = GrantFactory.create_batch(2)
        scorer = FakeCompletionClient(score_responder({}, default=60))
        pipeline, _ = _pipeline(grants, [scorer], fast_retry=fast_retry)

        await pipeline.run("q", today=REFERENCE_DATE)
        boosted = await pipeline.run("q", preferences=environment_preferences, today=REFERENCE_DATE)

        assert scorer.call_count == 2
        assert not boosted.cache_hit
        assert all(g.match_score == 65 for g in boosted.results)

    @pytest.mark.asyncio
    async def test_no_candidates_returns_empty_without_scoring(self, fast_retry):
        scorer = FakeCompletionClient("[]")
        pipeline, _ = _pipeline([], [scorer], fast_retry=fast_retry)

        outcome = await pipeline.run("anything", today=REFERENCE_DATE)

        assert outcome.results == []
        assert outcome.candidate_count == 0
        assert scorer.call_count == 0

    @pytest.mark.asyncio
    async def test_weak_matches_are_still_returned(self, fast_retry):
        grants = GrantFactory.create_batch(3)
        scorer = FakeCompletionClient(score_responder({}, default=12))
        pipeline, _ = _pipeline(grants, [scorer], fast_retry=fast_retry)

        outcome = await pipeline.run("something unusual", today=REFERENCE_DATE)

        assert len(outcome.results) == 3
        assert outcome.threshold_fallback

    @pytest.mark.asyncio
    async def test_interpreted_filters_narrow_candidates(self, fast_retry):
        local = GrantFactory.create(id="local", scope="local")
        national = GrantFactory.create(id="national", scope="national")
        scorer = FakeCompletionClient(score_responder({}, default=70))
        pipeline, _ = _pipeline([local, national], [scorer], _interpretation(scope="local"), fast_retry)

        outcome = await pipeline.run("local community garden", today=REFERENCE_DATE)

        assert [g.id for g in outcome.results] == ["local"]
        assert outcome.candidate_count == 1

    @pytest.mark.asyncio
    async def test_interpreted_filters_relaxed_when_nothing_matches(self, fast_retry):
        grants = [GrantFactory.create(scope="local"), GrantFactory.create(scope="national")]
        scorer = FakeCompletionClient(score_responder({}, default=70))
        pipeline, _ = _pipeline(grants, [scorer], _interpretation(scope="international"), fast_retry)

        outcome = await pipeline.run("overseas relief", today=REFERENCE_DATE)

        assert outcome.candidate_count == 2

    @pytest.mark.asyncio
    async def test_explicit_filters_are_never_relaxed(self, fast_retry):
        grants = [GrantFactory.create(issue_area="Environment")]
        scorer = FakeCompletionClient(score_responder({}, default=70))
        pipeline, _ = _pipeline(grants, [scorer], fast_retry=fast_retry)

        outcome = await pipeline.run("q", hard_filters=HardFilters(issue_area="Healthcare"), today=REFERENCE_DATE)

        assert outcome.results == []

    @pytest.mark.asyncio
    async def test_interpreter_failure_still_searches(self, fast_retry):
        grants = GrantFactory.create_batch(2)
        scorer = FakeCompletionClient(score_responder({}, default=70))
        pipeline, interpreter = _pipeline(grants, [scorer], "not json", fast_retry)

        outcome = await pipeline.run("river restoration", today=REFERENCE_DATE)

        assert outcome.criteria.keywords == ["river", "restoration"]
        assert len(outcome.results) == 2

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, fast_retry):
        pipeline = MatchingPipeline(
            store=InMemoryGrantStore(error=ConnectionError("db down")),
            pool=CompletionPool([FakeCompletionClient("[]")]),
            interpreter_client=FakeCompletionClient(_interpretation()),
            retry_policy=fast_retry,
        )

        with pytest.raises(GrantFetchError):
            await pipeline.run("q", today=REFERENCE_DATE)

    @pytest.mark.asyncio
    async def test_results_sorted_descending_with_unique_ids(self, fast_retry):
        grants = GrantFactory.create_batch(12)
        scores = {g.id: 30 + i * 5 for i, g in enumerate(grants)}
        clients = [FakeCompletionClient(score_responder(scores), label=f"key-{i}") for i in range(3)]
        pipeline, _ = _pipeline(grants, clients, fast_retry=fast_retry, batch_size=4)

        outcome = await pipeline.run("q", today=REFERENCE_DATE)

        values = [g.match_score for g in outcome.results]
        assert values == sorted(values, reverse=True)
        assert len({g.id for g in outcome.results}) == len(outcome.results) == 12
        assert all(0 <= v <= 100 for v in values)


class TestPipelineConstruction:
    def test_from_settings_requires_a_key(self):
        from grantmatch.core.config import Settings
        from grantmatch.core.exceptions import CompletionNotConfiguredError

        with pytest.raises(CompletionNotConfiguredError):
            MatchingPipeline.from_settings(
                InMemoryGrantStore(), Settings(anthropic_api_key=None, anthropic_extra_api_keys="", _env_file=None)
            )

    def test_instances_own_their_cache(self):
        pool = CompletionPool([FakeCompletionClient("[]")])
        a = MatchingPipeline(InMemoryGrantStore(), pool)
        b = MatchingPipeline(InMemoryGrantStore(), pool)

        assert a.cache is not b.cache
