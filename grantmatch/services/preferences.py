"""
User preference storage.

Reads the preference subset of a stored organization profile.
"""
from typing import Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantmatch.matching.models import UserMatchPreferences
from grantmatch.models import UserPreference

logger = structlog.get_logger(__name__)


class PreferenceStore(Protocol):
    """Read contract for stored user preferences."""

    async def load_preferences(self, user_id: str) -> Optional[UserMatchPreferences]:
        ...


class SqlPreferenceStore:
    """Preference storage backed by the user_preferences table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load_preferences(self, user_id: str) -> Optional[UserMatchPreferences]:
        """
        Load a user's match preferences.

        Returns:
            None when the user has no stored row, otherwise preferences
            (fields may be empty). Lookup errors are logged and treated as
            "no preferences" since preferences never gate results.
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserPreference).where(UserPreference.user_id == user_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning("preference_lookup_failed", user_id=user_id, error=str(e))
            return None

        if row is None:
            return None

        return UserMatchPreferences(
            issue_areas=row.issue_areas or [],
            preferred_scope=row.preferred_scope,
            funding_min=row.funding_min,
            funding_max=row.funding_max,
        )
