"""
Tests for the Query Interpreter.
"""
import json
from datetime import date

import pytest

from grantmatch.core.exceptions import CompletionError, ResponseShapeError
from grantmatch.matching.interpreter import QueryInterpreter, criteria_from_payload
from grantmatch.matching.models import Scope, Urgency
from tests.fixtures.fakes import FakeCompletionClient, rate_limit_error


def _interpretation(**overrides) -> str:
    payload = {
        "issueAreas": ["Environment"],
        "fundingMin": None,
        "fundingMax": 50000,
        "scope": "local",
        "urgency": "soon",
        "deadlineBefore": None,
        "keywords": ["trees"],
        "organizationType": "nonprofit",
        "kpiPreferences": [],
        "excludeTerms": [],
        "parseConfidence": 0.9,
    }
    payload.update(overrides)
    return json.dumps(payload)


class TestCriteriaFromPayload:
    def test_camel_case_keys(self):
        criteria = criteria_from_payload(json.loads(_interpretation()), "q")

        assert criteria.issue_areas == ["Environment"]
        assert criteria.funding_max == 50000
        assert criteria.scope == Scope.LOCAL
        assert criteria.urgency == Urgency.SOON
        assert criteria.organization_type == "nonprofit"
        assert criteria.original_query == "q"

    def test_snake_case_keys_are_accepted(self):
        criteria = criteria_from_payload({"issue_areas": ["Healthcare"], "confidence": 0.7}, "q")

        assert criteria.issue_areas == ["Healthcare"]
        assert criteria.confidence == pytest.approx(0.7)

    def test_missing_confidence_defaults_to_half(self):
        assert criteria_from_payload({}, "q").confidence == 0.5
        assert criteria_from_payload({"parseConfidence": 0}, "q").confidence == 0.5

    def test_non_object_is_rejected(self):
        with pytest.raises(ResponseShapeError):
            criteria_from_payload(["Environment"], "q")


class TestQueryInterpreter:
    """Tests for interpretation with a fake completion service."""

    @pytest.mark.asyncio
    async def test_interprets_query(self, fast_retry):
        client = FakeCompletionClient(_interpretation())
        interpreter = QueryInterpreter(client, fast_retry)

        criteria = await interpreter.interpret("local tree planting under $50k", today=date(2025, 6, 1))

        assert criteria.issue_areas == ["Environment"]
        assert criteria.funding_max == 50000
        assert criteria.confidence == pytest.approx(0.9)
        assert client.prompts == ['User query: "local tree planting under $50k"']
        assert "Today's date is 2025-06-01" in client.systems[0]

    @pytest.mark.asyncio
    async def test_code_fenced_response(self, fast_retry):
        client = FakeCompletionClient(f"```json\n{_interpretation(scope='international')}\n```")

        criteria = await QueryInterpreter(client, fast_retry).interpret("global health")

        assert criteria.scope == Scope.INTERNATIONAL

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back_to_keywords(self, fast_retry):
        client = FakeCompletionClient("I think you want environment grants")

        criteria = await QueryInterpreter(client, fast_retry).interpret("Climate resilience for farmers")

        assert criteria.keywords == ["climate", "resilience", "farmers"]
        assert criteria.issue_areas == []
        assert criteria.confidence == pytest.approx(0.1)
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self, fast_retry):
        client = FakeCompletionClient(CompletionError("boom"))

        criteria = await QueryInterpreter(client, fast_retry).interpret("youth sports")

        assert criteria.keywords == ["youth", "sports"]
        assert criteria.original_query == "youth sports"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_before_fallback(self, fast_retry):
        client = FakeCompletionClient(rate_limit_error(), _interpretation())

        criteria = await QueryInterpreter(client, fast_retry).interpret("trees")

        assert criteria.issue_areas == ["Environment"]
        assert client.call_count == 2

    @pytest.mark.asyncio
    async def test_wrong_shape_falls_back(self, fast_retry):
        client = FakeCompletionClient('["Environment"]')

        criteria = await QueryInterpreter(client, fast_retry).interpret("green energy")

        assert criteria.confidence == pytest.approx(0.1)
        assert criteria.keywords == ["green", "energy"]
