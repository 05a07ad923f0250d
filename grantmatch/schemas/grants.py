"""
Grant schemas for search, manual filtering, and listing responses.
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from grantmatch.matching.models import FUNDING_FILTER_CEILING, HardFilters, ManualFilters


class SearchRequest(BaseModel):
    """Schema for a natural-language grant search."""

    query: str = Field(..., min_length=1, max_length=1000, description="Free-text description of funding needs")
    user_id: Optional[str] = Field(None, description="User whose stored preferences boost results")
    use_profile_preferences: bool = Field(default=True, description="Apply stored preferences when available")
    issue_area: Optional[str] = Field(None, description="Hard filter on issue area")
    scope: Optional[str] = Field(None, description="Hard filter on scope")
    funding_min: Optional[float] = Field(None, ge=0, description="Hard filter: lower funding bound")
    funding_max: Optional[float] = Field(None, ge=0, description="Hard filter: upper funding bound")
    deadline_before: Optional[date] = Field(None, description="Hard filter: deadline on or before")

    def hard_filters(self) -> Optional[HardFilters]:
        filters = HardFilters(
            issue_area=self.issue_area,
            scope=self.scope,
            funding_min=self.funding_min,
            funding_max=self.funding_max,
            deadline_before=self.deadline_before,
        )
        return None if filters.is_empty else filters


class FilterRequest(BaseModel):
    """Schema for deterministic dashboard filtering."""

    issue_area: Optional[str] = Field(None, description="Issue area substring")
    scope: Optional[str] = Field(None, description="Scope substring")
    funding_min: float = Field(default=0, ge=0, description="Minimum funding amount")
    funding_max: float = Field(default=FUNDING_FILTER_CEILING, ge=0, description="Maximum funding amount")

    def to_manual_filters(self) -> ManualFilters:
        return ManualFilters(**self.model_dump())


class ScoredGrantResponse(BaseModel):
    """Schema for a grant with its match score and explanation."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Grant ID")
    title: str = Field(..., description="Grant title")
    description: Optional[str] = Field(None, description="Full description")
    issue_area: Optional[str] = Field(None, description="Issue area")
    scope: Optional[str] = Field(None, description="Geographic scope")
    kpis: list[str] = Field(default_factory=list, description="Tracked outcome indicators")
    funding_min: Optional[int] = Field(None, description="Minimum funding amount")
    funding_max: Optional[int] = Field(None, description="Maximum funding amount")
    application_due_date: Optional[date] = Field(None, description="Application deadline")
    eligibility_criteria: Optional[str] = Field(None, description="Eligibility text")
    funder_name: Optional[str] = Field(None, description="Funder name")
    funder_url: Optional[str] = Field(None, description="Funder website")
    source_url: Optional[str] = Field(None, description="Original listing")
    created_at: Optional[datetime] = Field(None, description="Record creation timestamp")

    # Match info
    match_score: float = Field(..., description="Relevance score 0-100")
    why_matches: list[str] = Field(default_factory=list, description="Reasons the grant fits")
    why_does_not_match: list[str] = Field(default_factory=list, description="Concerns or considerations")
    degraded: bool = Field(default=False, description="Shown at a neutral score because analysis failed")


class SearchCriteriaResponse(BaseModel):
    """Schema for the interpreted search criteria."""

    model_config = ConfigDict(from_attributes=True)

    issue_areas: list[str] = Field(default_factory=list)
    funding_min: Optional[float] = None
    funding_max: Optional[float] = None
    scope: Optional[str] = None
    urgency: Optional[str] = None
    deadline_before: Optional[date] = None
    keywords: list[str] = Field(default_factory=list)
    organization_type: Optional[str] = None
    kpi_preferences: list[str] = Field(default_factory=list)
    exclude_terms: list[str] = Field(default_factory=list)
    confidence: float = 0.5


class SearchResponse(BaseModel):
    """Schema for search results."""

    query: str = Field(..., description="Original query")
    criteria: SearchCriteriaResponse = Field(..., description="Interpreted criteria")
    grants: list[ScoredGrantResponse] = Field(..., description="Ranked grants")
    total: int = Field(..., description="Number of returned grants")
    candidate_count: int = Field(..., description="Grants considered before scoring")
    cache_hit: bool = Field(default=False, description="Scores reused from a recent identical search")
    degraded_count: int = Field(default=0, description="Grants shown at a neutral score")


class GrantList(BaseModel):
    """Schema for unscored or deterministically scored grant lists."""

    grants: list[ScoredGrantResponse] = Field(..., description="List of grants")
    total: int = Field(..., description="Total number of grants")
