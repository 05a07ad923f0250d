"""
Request and response schemas for the HTTP API.
"""
from .grants import (
    FilterRequest,
    GrantList,
    ScoredGrantResponse,
    SearchCriteriaResponse,
    SearchRequest,
    SearchResponse,
)

__all__ = [
    "FilterRequest",
    "GrantList",
    "ScoredGrantResponse",
    "SearchCriteriaResponse",
    "SearchRequest",
    "SearchResponse",
]
