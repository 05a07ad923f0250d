"""
Query Interpreter
Turns a free-text grant need into structured SearchCriteria.
"""
from datetime import date
from typing import Any, Optional

import structlog

from grantmatch.core.exceptions import ResponseShapeError
from grantmatch.matching.completion import CompletionClient, load_json
from grantmatch.matching.models import SearchCriteria
from grantmatch.matching.retry import RetryPolicy

logger = structlog.get_logger(__name__)

QUERY_SCHEMA_PROMPT = """You are a grant matching assistant. Analyze the user's natural language query and extract structured search criteria.

IMPORTANT: Be generous in interpretation. If the user mentions anything related to a topic, include relevant issue areas.

Issue area mappings (use these exact values when relevant):
- Environment, climate, sustainability, green -> "Environment"
- Education, schools, learning, students -> "Education"
- Health, medical, wellness, mental health -> "Healthcare"
- Arts, culture, theater, music, creative -> "Arts & Culture"
- Community, social services, welfare -> "Community Development"
- Youth, children, young people -> "Youth Development"
- Elderly, seniors, aging -> "Elderly Care"
- Technology, digital, innovation -> "Technology"

Scope mappings:
- local, community, neighborhood -> "local"
- national, country-wide -> "national"
- international, global, overseas -> "international"

Urgency mappings:
- urgent, ASAP, immediately, this month -> "immediate"
- soon, next few months, upcoming -> "soon"
- flexible, no rush, whenever -> "flexible"

Today's date is {today}. Resolve relative deadlines against it.

Return ONLY valid JSON with this exact structure (no markdown, no explanation):
{{
  "issueAreas": ["array of matched issue areas from the list above"],
  "fundingMin": number or null,
  "fundingMax": number or null,
  "scope": "local" | "national" | "international" | null,
  "urgency": "immediate" | "soon" | "flexible" | null,
  "deadlineBefore": "YYYY-MM-DD" or null,
  "keywords": ["additional relevant keywords not covered by issue areas"],
  "organizationType": "nonprofit" | "charity" | "social enterprise" | null,
  "kpiPreferences": ["any mentioned KPIs or outcomes"],
  "excludeTerms": ["any terms user wants to avoid"],
  "parseConfidence": 0.0 to 1.0 based on how clear the query was
}}"""

# Response key -> SearchCriteria field
_FIELD_MAP = {
    "issueAreas": "issue_areas",
    "fundingMin": "funding_min",
    "fundingMax": "funding_max",
    "scope": "scope",
    "urgency": "urgency",
    "deadlineBefore": "deadline_before",
    "keywords": "keywords",
    "organizationType": "organization_type",
    "kpiPreferences": "kpi_preferences",
    "excludeTerms": "exclude_terms",
    "parseConfidence": "confidence",
}


def criteria_from_payload(payload: Any, query: str) -> SearchCriteria:
    """
    Build SearchCriteria from a decoded interpretation response.

    Accepts camelCase keys as requested in the prompt, or snake_case.

    Raises:
        ResponseShapeError: If the payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise ResponseShapeError(f"Expected JSON object, got {type(payload).__name__}")

    data: dict[str, Any] = {}
    for camel, field in _FIELD_MAP.items():
        if camel in payload:
            data[field] = payload[camel]
        elif field in payload:
            data[field] = payload[field]

    if data.get("confidence") in (None, 0, ""):
        data["confidence"] = 0.5
    data["original_query"] = query
    return SearchCriteria(**data)


class QueryInterpreter:
    """
    Interprets free-text queries via the completion service.

    Never raises: service errors, timeouts and malformed output all degrade
    to keyword-only criteria.
    """

    def __init__(self, client: CompletionClient, retry_policy: Optional[RetryPolicy] = None):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()

    async def interpret(self, query: str, today: Optional[date] = None) -> SearchCriteria:
        """
        Interpret a raw query.

        Args:
            query: Raw user text.
            today: Reference date for relative deadlines.

        Returns:
            Fully populated SearchCriteria.
        """
        system = QUERY_SCHEMA_PROMPT.format(today=(today or date.today()).isoformat())
        prompt = f'User query: "{query}"'

        try:
            text = await self.retry_policy.call(lambda: self.client.complete_json(prompt, system=system))
            criteria = criteria_from_payload(load_json(text), query)
        except Exception as e:
            logger.warning(
                "query_interpretation_failed",
                query=query[:200],
                error=str(e),
                error_type=type(e).__name__,
            )
            return SearchCriteria.fallback(query)

        logger.info(
            "query_interpreted",
            issue_areas=criteria.issue_areas,
            scope=criteria.scope.value if criteria.scope else None,
            funding_min=criteria.funding_min,
            funding_max=criteria.funding_max,
            confidence=criteria.confidence,
        )
        return criteria
