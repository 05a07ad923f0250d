"""
GrantMatch Database Models
SQLAlchemy ORM models for grants and stored user match preferences.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Grant(Base):
    """
    Grant opportunity record.

    Owned by the storage layer; the matching pipeline only reads it.
    """

    __tablename__ = "grants"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique identifier for the grant",
    )
    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Grant title/name",
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Free-text grant description",
    )
    issue_area: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Categorical issue area (e.g., 'Environment')",
    )
    scope: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Geographic scope: local, national or international",
    )
    kpis: Mapped[Optional[list[str]]] = mapped_column(
        JSON,
        nullable=True,
        doc="Outcome indicators the funder tracks",
    )
    funding_min: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Lower funding bound; NULL means unbounded",
    )
    funding_max: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Upper funding bound; NULL means unbounded",
    )
    application_due_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Application deadline; NULL means no deadline",
    )
    eligibility_criteria: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Eligibility requirements as free text",
    )
    funder_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    funder_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Inactive grants are never matched",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_grants_active_due_date", "is_active", "application_due_date"),
    )

    def __repr__(self) -> str:
        return f"<Grant(id={self.id}, title={self.title[:50]!r})>"


class UserPreference(Base):
    """
    Stored organization profile preferences used to boost matches.

    Preferences never exclude grants; they only add score.
    """

    __tablename__ = "user_preferences"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        doc="Owning user identifier",
    )
    issue_areas: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    preferred_scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    funding_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    funding_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    org_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    org_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mission_statement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<UserPreference(user_id={self.user_id})>"
