"""
Storage and caller-facing services.
"""
from .grant_search import GrantSearchService
from .grant_store import SqlGrantStore
from .preferences import PreferenceStore, SqlPreferenceStore

__all__ = [
    "GrantSearchService",
    "PreferenceStore",
    "SqlGrantStore",
    "SqlPreferenceStore",
]
