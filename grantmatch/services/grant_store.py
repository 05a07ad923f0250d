"""
SQL grant storage.

Implements the candidate read contract: active grants, deadline today or
later (or none), optional substring and funding-overlap filters, ordered
by deadline.
"""
from datetime import date

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantmatch.core.exceptions import GrantFetchError
from grantmatch.matching.models import GrantData, HardFilters
from grantmatch.models import Grant

logger = structlog.get_logger(__name__)


def build_active_grants_query(filters: HardFilters, today: date):
    """Build the SELECT for active, non-expired grants matching filters."""
    conditions = [
        Grant.is_active.is_(True),
        or_(
            Grant.application_due_date.is_(None),
            Grant.application_due_date >= today,
        ),
    ]

    if filters.issue_area:
        conditions.append(Grant.issue_area.ilike(f"%{filters.issue_area}%"))

    if filters.scope:
        conditions.append(Grant.scope.ilike(f"%{filters.scope}%"))

    # Range overlap: a missing bound is unbounded
    if filters.funding_min is not None:
        conditions.append(
            or_(
                Grant.funding_max.is_(None),
                Grant.funding_max >= filters.funding_min,
            )
        )

    if filters.funding_max is not None:
        conditions.append(
            or_(
                Grant.funding_min.is_(None),
                Grant.funding_min <= filters.funding_max,
            )
        )

    if filters.deadline_before is not None:
        conditions.append(
            or_(
                Grant.application_due_date.is_(None),
                Grant.application_due_date <= filters.deadline_before,
            )
        )

    return (
        select(Grant)
        .where(and_(*conditions))
        .order_by(Grant.application_due_date.asc().nulls_last(), Grant.created_at.asc())
    )


class SqlGrantStore:
    """Grant storage backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_active_grants(self, filters: HardFilters, today: date) -> list[GrantData]:
        """
        Read active grants matching filters.

        Raises:
            GrantFetchError: If the database cannot be queried.
        """
        query = build_active_grants_query(filters, today)
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("grant_query_failed", error=str(e))
            raise GrantFetchError() from e

        return [GrantData.model_validate(row) for row in rows]

    async def fetch_recent_grants(self, limit: int, today: date) -> list[GrantData]:
        """Newest active, non-expired grants first."""
        query = (
            select(Grant)
            .where(
                Grant.is_active.is_(True),
                or_(
                    Grant.application_due_date.is_(None),
                    Grant.application_due_date >= today,
                ),
            )
            .order_by(Grant.created_at.desc())
            .limit(limit)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("recent_grant_query_failed", error=str(e))
            raise GrantFetchError() from e

        return [GrantData.model_validate(row) for row in rows]
