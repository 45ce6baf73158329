"""Habit tracking data structures."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from sqlalchemy import JSON, Column, DateTime, Index, text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FrequencyKind(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"


class HabitStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class Habit(SQLModel, table=True):
    """A recurring intention owned by exactly one user."""

    __tablename__: ClassVar[str] = "habit"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(nullable=False, index=True, max_length=64)
    name: str = Field(nullable=False, max_length=100, index=True)
    description: Optional[str] = Field(default=None, max_length=500)
    frequency_kind: FrequencyKind = Field(nullable=False, index=True)
    frequency_params: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    duration_minutes: Optional[int] = Field(default=None)
    status: HabitStatus = Field(default=HabitStatus.ACTIVE, nullable=False, index=True)
    timezone: str = Field(default="UTC", nullable=False, max_length=64)

    # Derived from the rule and status; cleared whenever status != ACTIVE.
    next_due_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True)
    )

    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    deleted_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    version: int = Field(default=1, nullable=False)


class HabitCompletion(SQLModel, table=True):
    """Completion record for a habit on a calendar day.

    Undone rows stay in the table as an audit trail; only rows with
    ``undone_at IS NULL`` count, and at most one of those may exist per
    (habit, day).
    """

    __tablename__: ClassVar[str] = "habit_completion"
    __table_args__ = (
        Index(
            "uq_habit_completion_live_day",
            "habit_id",
            "scheduled_for",
            unique=True,
            sqlite_where=text("undone_at IS NULL"),
            postgresql_where=text("undone_at IS NULL"),
        ),
        Index("ix_habit_completion_user_day", "user_id", "scheduled_for"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    habit_id: int = Field(foreign_key="habit.id", nullable=False, index=True)
    user_id: str = Field(nullable=False, index=True, max_length=64)
    scheduled_for: date = Field(nullable=False)
    completed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    notes: Optional[str] = Field(default=None, max_length=1000)
    undone_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None
