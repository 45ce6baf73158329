"""Habit and completion repository protocols."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Protocol

from ...models.habit import FrequencyKind, Habit, HabitCompletion, HabitStatus


class HabitSort(str, Enum):
    NEXT_DUE = "NEXT_DUE"  # ascending, nulls last
    NAME = "NAME"
    STATUS = "STATUS"


@dataclass
class HabitFilters:
    """Filters applied to habit listings."""

    status: Optional[HabitStatus] = None
    kind: Optional[FrequencyKind] = None
    search: Optional[str] = None
    sort: HabitSort = HabitSort.NEXT_DUE
    page: int = 1
    page_size: int = 20


@dataclass
class HabitPage:
    items: list[Habit] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class HabitRepository(Protocol):
    """Repository for habits; every lookup is scoped to the owner and skips soft-deleted rows."""

    def get_by_id(self, habit_id: int, *, user_id: str) -> Optional[Habit]:
        """Retrieve a live habit owned by ``user_id``."""
        ...

    def list_for_user(self, *, user_id: str, filters: HabitFilters) -> HabitPage:
        """Filtered, sorted, paginated habits of a user."""
        ...

    def count_for_user(self, *, user_id: str, status: Optional[HabitStatus] = None) -> int:
        ...

    def create(self, habit: Habit, *, user_id: str) -> Habit:
        ...

    def update(
        self,
        habit_id: int,
        *,
        user_id: str,
        changes: dict[str, Any],
        expected_version: Optional[int] = None,
        updated_at: Optional[datetime] = None,
    ) -> Habit:
        """Apply a field-level partial update and bump ``version``."""
        ...

    def soft_delete(
        self,
        habit_id: int,
        *,
        user_id: str,
        deleted_at: datetime,
        expected_version: Optional[int] = None,
    ) -> None:
        ...


class CompletionRepository(Protocol):
    """Repository for completion records; undone rows are kept for audit."""

    def get_by_id(self, completion_id: int, *, user_id: str) -> Optional[HabitCompletion]:
        ...

    def find_live(self, habit_id: int, scheduled_for: date, *, user_id: str) -> Optional[HabitCompletion]:
        """Non-undone completion for a habit on a day, if any."""
        ...

    def list_for_habit(
        self, habit_id: int, *, user_id: str, include_undone: bool = False
    ) -> list[HabitCompletion]:
        """Completions of a habit, newest scheduled day first."""
        ...

    def list_for_user_on(self, day: date, *, user_id: str) -> list[HabitCompletion]:
        """Live completions of all the user's habits for one day."""
        ...

    def count_for_habit(self, habit_id: int, *, user_id: str) -> int:
        ...

    def insert_completion(
        self,
        completion: HabitCompletion,
        *,
        user_id: str,
        next_due_at: Optional[datetime],
        expected_version: Optional[int] = None,
    ) -> HabitCompletion:
        """Insert a completion and persist the habit's new due instant atomically.

        Raises ConflictError when a live completion already exists for the day.
        """
        ...

    def mark_undone(self, completion_id: int, *, user_id: str, undone_at: datetime) -> HabitCompletion:
        ...
