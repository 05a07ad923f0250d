"""
Matching Pydantic Models
Data models for the grant matching pipeline.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Manual funding filter is considered inactive at this ceiling
FUNDING_FILTER_CEILING = 500000

FALLBACK_CONFIDENCE = 0.1
MIN_FALLBACK_KEYWORD_LENGTH = 4


class Scope(str, Enum):
    """Geographic scope of a grant."""

    LOCAL = "local"
    NATIONAL = "national"
    INTERNATIONAL = "international"


class Urgency(str, Enum):
    """How soon the seeker needs funding."""

    IMMEDIATE = "immediate"
    SOON = "soon"
    FLEXIBLE = "flexible"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _known_value(v: Any, enum_cls: type[Enum]) -> Any:
    # Unknown categories from the model are treated as absent
    if isinstance(v, enum_cls):
        return v
    if isinstance(v, str):
        v = v.strip().lower()
        return v if v in {member.value for member in enum_cls} else None
    return None


class GrantData(BaseModel):
    """
    Grant data used for matching.

    Read-only view of a stored grant record.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Grant identifier")
    title: str = Field(..., description="Grant title")
    description: Optional[str] = Field(default=None, description="Free-text description")
    issue_area: Optional[str] = Field(default=None, description="Categorical issue area")
    scope: Optional[str] = Field(default=None, description="local / national / international")
    kpis: list[str] = Field(default_factory=list, description="Tracked outcome indicators")
    funding_min: Optional[int] = Field(default=None, description="Lower funding bound (None = unbounded)")
    funding_max: Optional[int] = Field(default=None, description="Upper funding bound (None = unbounded)")
    application_due_date: Optional[date] = Field(default=None, description="Deadline (None = no deadline)")
    eligibility_criteria: Optional[str] = Field(default=None, description="Eligibility text")
    funder_name: Optional[str] = None
    funder_url: Optional[str] = None
    source_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("kpis", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return v or []

    def is_eligible(self, today: date) -> bool:
        """A grant is matchable only while active and not past its deadline."""
        if not self.is_active:
            return False
        return self.application_due_date is None or self.application_due_date >= today

    def funding_text(self) -> str:
        upper = f"${self.funding_max}" if self.funding_max is not None else "No limit"
        return f"${self.funding_min or 0} - {upper}"

    def to_matching_text(self, position: int) -> str:
        """
        Generate text representation for LLM scoring.

        Args:
            position: 1-based position of the grant within its batch.

        Returns:
            Formatted grant summary.
        """
        return "\n".join(
            [
                f"[Grant {position}] ID: {self.id}",
                f"Title: {self.title}",
                f"Description: {self.description or 'No description'}",
                f"Eligibility: {self.eligibility_criteria or 'Not specified'}",
                f"Issue Area: {self.issue_area or 'General'}",
                f"Funding: {self.funding_text()}",
            ]
        )


class SearchCriteria(BaseModel):
    """
    Structured search criteria interpreted from free text.

    Always fully populated: absent signals are empty lists or None.
    """

    issue_areas: list[str] = Field(default_factory=list)
    funding_min: Optional[float] = None
    funding_max: Optional[float] = None
    scope: Optional[Scope] = None
    urgency: Optional[Urgency] = None
    deadline_before: Optional[date] = None
    keywords: list[str] = Field(default_factory=list)
    organization_type: Optional[str] = None
    kpi_preferences: list[str] = Field(default_factory=list)
    exclude_terms: list[str] = Field(default_factory=list)
    original_query: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("issue_areas", "keywords", "kpi_preferences", "exclude_terms", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v if item]

    @field_validator("scope", mode="before")
    @classmethod
    def _coerce_scope(cls, v: Any) -> Any:
        return _known_value(v, Scope)

    @field_validator("urgency", mode="before")
    @classmethod
    def _coerce_urgency(cls, v: Any) -> Any:
        return _known_value(v, Urgency)

    @field_validator("funding_min", "funding_max", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> Optional[float]:
        if v in (None, "", 0):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("deadline_before", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return date.fromisoformat(v.strip()[:10])
            except ValueError:
                return None
        return v or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        try:
            return _clamp(float(v), 0.0, 1.0)
        except (TypeError, ValueError):
            return 0.5

    @classmethod
    def fallback(cls, query: str) -> "SearchCriteria":
        """Keyword-only criteria used when interpretation fails."""
        keywords = [w for w in query.lower().split() if len(w) >= MIN_FALLBACK_KEYWORD_LENGTH]
        return cls(keywords=keywords, original_query=query, confidence=FALLBACK_CONFIDENCE)


class UserMatchPreferences(BaseModel):
    """
    Stored organization preferences used for boosting.

    Preferences never exclude grants; they only add score.
    """

    issue_areas: list[str] = Field(default_factory=list)
    preferred_scope: Optional[str] = None
    funding_min: Optional[int] = None
    funding_max: Optional[int] = None

    @field_validator("issue_areas", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return v or []

    @property
    def has_prompt_context(self) -> bool:
        return bool(self.issue_areas or self.preferred_scope)

    def matches_issue_area(self, issue_area: Optional[str]) -> bool:
        """Case-insensitive containment of any preferred area in the grant's area."""
        if not issue_area:
            return False
        grant_area = issue_area.lower()
        return any(area and area.lower() in grant_area for area in self.issue_areas)

    def cache_fingerprint(self) -> str:
        """Stable text identifying the preference set for cache keys."""
        areas = ",".join(sorted(a.lower() for a in self.issue_areas))
        return f"{areas}|{(self.preferred_scope or '').lower()}|{self.funding_min}|{self.funding_max}"


class GrantScore(BaseModel):
    """
    Relevance score and explanation for one grant.

    The score is always clamped into [0, 100]; reason lists are never None.
    """

    grant_id: str = Field(..., description="Grant identifier")
    score: float = Field(..., ge=0.0, le=100.0, description="Relevance score 0-100")
    why_matches: list[str] = Field(default_factory=list, description="Positive reasons")
    why_does_not_match: list[str] = Field(default_factory=list, description="Concerns / considerations")
    degraded: bool = Field(default=False, description="True when analysis fell back to a neutral score")

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        if value != value:  # NaN
            return 0.0
        return _clamp(value)

    @field_validator("why_matches", "why_does_not_match", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class HardFilters(BaseModel):
    """Pre-scoring filters applied by the candidate fetcher."""

    issue_area: Optional[str] = None
    scope: Optional[str] = None
    funding_min: Optional[float] = None
    funding_max: Optional[float] = None
    deadline_before: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return not any(
            (
                self.issue_area,
                self.scope,
                self.funding_min is not None,
                self.funding_max is not None,
                self.deadline_before,
            )
        )

    @classmethod
    def from_criteria(cls, criteria: SearchCriteria) -> "HardFilters":
        """Filters implied by interpreted criteria (issue areas stay a scoring signal)."""
        return cls(
            scope=criteria.scope.value if criteria.scope else None,
            funding_min=criteria.funding_min,
            funding_max=criteria.funding_max,
            deadline_before=criteria.deadline_before,
        )

    def merged_over(self, base: "HardFilters") -> "HardFilters":
        """Return base with every field set on self taking precedence."""
        data = base.model_dump()
        data.update({k: v for k, v in self.model_dump().items() if v is not None})
        return HardFilters(**data)


class ManualFilters(BaseModel):
    """Dashboard filters for the deterministic, non-LLM path."""

    issue_area: Optional[str] = None
    scope: Optional[str] = None
    funding_min: float = 0
    funding_max: float = FUNDING_FILTER_CEILING

    @property
    def funding_active(self) -> bool:
        return self.funding_min > 0 or self.funding_max < FUNDING_FILTER_CEILING

    @property
    def active_count(self) -> int:
        return int(bool(self.issue_area)) + int(bool(self.scope)) + int(self.funding_active)

    def to_hard_filters(self) -> HardFilters:
        return HardFilters(
            issue_area=self.issue_area,
            scope=self.scope,
            funding_min=self.funding_min if self.funding_min > 0 else None,
            funding_max=self.funding_max if self.funding_max < FUNDING_FILTER_CEILING else None,
        )


class ScoredGrant(GrantData):
    """
    A grant merged with its score for presentation.

    Built fresh per search and never persisted.
    """

    match_score: float = Field(..., ge=0.0, le=100.0)
    why_matches: list[str] = Field(default_factory=list)
    why_does_not_match: list[str] = Field(default_factory=list)
    degraded: bool = False

    @classmethod
    def from_score(cls, grant: GrantData, score: GrantScore) -> "ScoredGrant":
        return cls(
            **grant.model_dump(),
            match_score=score.score,
            why_matches=list(score.why_matches),
            why_does_not_match=list(score.why_does_not_match),
            degraded=score.degraded,
        )

    @classmethod
    def with_default_score(cls, grant: GrantData, score: float, reason: str) -> "ScoredGrant":
        return cls(**grant.model_dump(), match_score=score, why_matches=[reason])


class MatchOutcome(BaseModel):
    """Result of one pipeline run."""

    criteria: SearchCriteria
    results: list[ScoredGrant] = Field(default_factory=list)
    candidate_count: int = 0
    cache_hit: bool = False
    degraded_count: int = 0
    threshold_fallback: bool = False
