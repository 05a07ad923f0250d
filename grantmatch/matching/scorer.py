"""
Relevance Scorer
Scores one batch of grants against a search with the completion service.
"""
import time
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import structlog

from grantmatch.core.exceptions import ResponseShapeError
from grantmatch.matching.completion import CompletionClient, load_json
from grantmatch.matching.models import GrantData, GrantScore, SearchCriteria, UserMatchPreferences
from grantmatch.matching.retry import RetryPolicy

logger = structlog.get_logger(__name__)

NEUTRAL_SCORE = 50.0

POSITIVE_PLACEHOLDER = "Potential match found"
NEGATIVE_PLACEHOLDER = "No specific concerns identified"
DEGRADED_MATCH_REASON = "Could not fully analyze - shown as potential match"
DEGRADED_CONCERN = "Analysis incomplete due to service error"
MISSING_CONCERN = "Analysis incomplete - grant was not returned by the scoring service"

# Legacy single-list reasons containing these cues are treated as concerns
_NEGATIVE_CUES = ("not", "concern", "limit")
_PREFERRED_WRAPPER_KEY = "scores"


@dataclass(frozen=True)
class DecodedScores:
    """
    Scoring response after shape recognition.

    Two shapes are accepted: a bare JSON array of entries, or a JSON
    object wrapping the array under a single list-valued property.
    """

    shape: Literal["array", "wrapped"]
    entries: list[Any]
    wrapper_key: Optional[str] = None


def decode_score_payload(payload: Any) -> DecodedScores:
    """
    Recognize the response shape.

    Raises:
        ResponseShapeError: For any other shape.
    """
    if isinstance(payload, list):
        return DecodedScores(shape="array", entries=payload)

    if isinstance(payload, dict):
        list_keys = [k for k, v in payload.items() if isinstance(v, list)]
        if _PREFERRED_WRAPPER_KEY in list_keys:
            key = _PREFERRED_WRAPPER_KEY
        elif len(list_keys) == 1:
            key = list_keys[0]
        else:
            raise ResponseShapeError(f"Object response has {len(list_keys)} array properties, expected one")
        return DecodedScores(shape="wrapped", entries=payload[key], wrapper_key=key)

    raise ResponseShapeError(f"Expected JSON array or object, got {type(payload).__name__}")


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _resolve_grant_id(item: dict[str, Any], grants: Sequence[GrantData], known_ids: set[str]) -> Optional[str]:
    """Match an entry to a batch grant by explicit id, else by 1-based position."""
    raw_id = item.get("id", item.get("grantId", item.get("grant_id")))
    if raw_id is not None and str(raw_id) in known_ids:
        return str(raw_id)

    position = item.get("index")
    if position is None and raw_id is not None and str(raw_id).strip().isdigit():
        position = raw_id
    if position is None or isinstance(position, bool):
        return None
    try:
        position = int(position)
    except (TypeError, ValueError):
        return None
    if 1 <= position <= len(grants):
        return grants[position - 1].id
    return None


def _entry_to_score(item: dict[str, Any], grant_id: str) -> GrantScore:
    why_matches = _str_list(item.get("whyMatches", item.get("why_matches")))
    why_not = _str_list(item.get("whyDoesNotMatch", item.get("why_does_not_match")))

    legacy = _str_list(item.get("reasons")) or _str_list(item.get("reason"))
    if legacy and not why_matches:
        for reason in legacy:
            if any(cue in reason.lower() for cue in _NEGATIVE_CUES):
                why_not.append(reason)
            else:
                why_matches.append(reason)

    return GrantScore(
        grant_id=grant_id,
        score=item.get("score") or 0,
        why_matches=why_matches or [POSITIVE_PLACEHOLDER],
        why_does_not_match=why_not or [NEGATIVE_PLACEHOLDER],
    )


def neutral_scores(
    grants: Sequence[GrantData],
    concern: str = DEGRADED_CONCERN,
    score: float = NEUTRAL_SCORE,
) -> list[GrantScore]:
    """Neutral, clearly flagged scores for grants the service could not analyze."""
    return [
        GrantScore(
            grant_id=g.id,
            score=score,
            why_matches=[DEGRADED_MATCH_REASON],
            why_does_not_match=[concern],
            degraded=True,
        )
        for g in grants
    ]


def build_scoring_prompt(
    query: str,
    grants: Sequence[GrantData],
    criteria: Optional[SearchCriteria] = None,
    preferences: Optional[UserMatchPreferences] = None,
) -> str:
    """
    Build the scoring prompt for a batch of grants.

    Args:
        query: Raw user query.
        grants: Grants in this batch.
        criteria: Interpreted criteria, summarized when informative.
        preferences: Stored user preferences added as profile context.

    Returns:
        Prompt string requesting JSON only.
    """
    grants_text = "\n\n".join(g.to_matching_text(i) for i, g in enumerate(grants, 1))

    context_lines = []
    if criteria is not None:
        needs = []
        if criteria.issue_areas:
            needs.append(f"issue areas: {', '.join(criteria.issue_areas)}")
        if criteria.scope:
            needs.append(f"scope: {criteria.scope.value}")
        if criteria.funding_min is not None or criteria.funding_max is not None:
            low = f"${criteria.funding_min:,.0f}" if criteria.funding_min is not None else "any"
            high = f"${criteria.funding_max:,.0f}" if criteria.funding_max is not None else "any"
            needs.append(f"funding: {low} to {high}")
        if criteria.urgency:
            needs.append(f"urgency: {criteria.urgency.value}")
        if criteria.organization_type:
            needs.append(f"organization type: {criteria.organization_type}")
        if criteria.keywords:
            needs.append(f"keywords: {', '.join(criteria.keywords)}")
        if criteria.kpi_preferences:
            needs.append(f"outcomes: {', '.join(criteria.kpi_preferences)}")
        if criteria.exclude_terms:
            needs.append(f"avoid: {', '.join(criteria.exclude_terms)}")
        if needs:
            context_lines.append(f"INTERPRETED NEEDS: {'; '.join(needs)}")

    if preferences is not None and preferences.has_prompt_context:
        areas = ", ".join(preferences.issue_areas) or "various areas"
        context_lines.append(
            f"USER PROFILE: Interested in {areas}. Prefers {preferences.preferred_scope or 'any'} scope."
        )

    context = ("\n" + "\n".join(context_lines)) if context_lines else ""

    return f"""You are a helpful grant matching assistant. Score each grant's relevance to what the person is looking for and explain both why it matches AND why it might not be ideal.

What they're looking for: "{query}"{context}

Grants to evaluate:
{grants_text}

Scoring guide:
- 85-100: Excellent fit - directly matches their needs
- 70-84: Good fit - clearly relevant and likely eligible
- 50-69: Partial fit - somewhat related
- 30-49: Weak fit - only loosely connected
- 0-29: Not relevant

For each grant, provide:
1. "whyMatches" - reasons why this grant IS a good fit
2. "whyDoesNotMatch" - reasons why this grant might NOT be ideal (limitations, concerns)

Be specific and address the user directly with "you/your".

Return valid JSON only, one entry per grant using the grant's ID:
{{
  "scores": [
    {{
      "id": "<grant id>",
      "score": <0-100>,
      "whyMatches": ["<reason>", ...],
      "whyDoesNotMatch": ["<concern>", ...]
    }}
  ]
}}"""


def parse_score_response(
    text: str,
    grants: Sequence[GrantData],
    neutral_score: float = NEUTRAL_SCORE,
) -> list[GrantScore]:
    """
    Parse a scoring response into one GrantScore per batch grant.

    Entries for unknown grants are discarded and repeated entries keep the
    highest score. Batch grants the service did not return get a flagged
    neutral score.

    Raises:
        ResponseShapeError: If the response is not JSON of a recognized shape.
    """
    decoded = decode_score_payload(load_json(text))
    known_ids = {g.id for g in grants}

    by_id: dict[str, GrantScore] = {}
    discarded = 0
    duplicates = 0
    for item in decoded.entries:
        if not isinstance(item, dict):
            discarded += 1
            continue
        grant_id = _resolve_grant_id(item, grants, known_ids)
        if grant_id is None:
            discarded += 1
            continue
        score = _entry_to_score(item, grant_id)
        existing = by_id.get(grant_id)
        if existing is not None:
            duplicates += 1
            if existing.score >= score.score:
                continue
        by_id[grant_id] = score

    scores = list(by_id.values())
    missing = [g for g in grants if g.id not in by_id]
    if duplicates:
        logger.warning("score_response_duplicates", shape=decoded.shape, duplicate_entries=duplicates)
    if discarded or missing:
        logger.warning(
            "score_response_incomplete",
            shape=decoded.shape,
            discarded_entries=discarded,
            missing_grants=len(missing),
        )
    scores.extend(neutral_scores(missing, concern=MISSING_CONCERN, score=neutral_score))
    return scores


class RelevanceScorer:
    """
    Scores batches of grants with the completion service.

    Rate-limit failures are retried per the retry policy; any batch that
    still fails gets neutral scores instead of failing the search.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None, neutral_score: float = NEUTRAL_SCORE):
        self.retry_policy = retry_policy or RetryPolicy()
        self.neutral_score = neutral_score

    async def score_batch(
        self,
        client: CompletionClient,
        query: str,
        grants: Sequence[GrantData],
        criteria: Optional[SearchCriteria] = None,
        preferences: Optional[UserMatchPreferences] = None,
        batch_index: int = 0,
    ) -> list[GrantScore]:
        """
        Score one batch.

        Returns:
            Exactly one GrantScore per grant in the batch.
        """
        if not grants:
            return []

        start_time = time.time()
        prompt = build_scoring_prompt(query, grants, criteria, preferences)

        try:
            text = await self.retry_policy.call(lambda: client.complete_json(prompt))
            scores = parse_score_response(text, grants, self.neutral_score)
        except Exception as e:
            logger.error(
                "batch_scoring_degraded",
                batch_index=batch_index,
                credential=client.label,
                grants=len(grants),
                error=str(e),
                error_type=type(e).__name__,
            )
            return neutral_scores(grants, score=self.neutral_score)

        logger.info(
            "batch_scored",
            batch_index=batch_index,
            credential=client.label,
            grants=len(grants),
            processing_time_ms=round((time.time() - start_time) * 1000, 1),
        )
        return scores
