"""Completion tracking: mark done, undo, today's schedule and streaks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator, Optional

from ..domain.repositories.habit import CompletionRepository, HabitFilters, HabitRepository, HabitSort
from ..errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from ..logging_config import get_logger
from ..models.habit import Habit, HabitCompletion, HabitStatus
from ..utils.time import local_date
from .clock import Clock
from .events import EventKind, EventNotifier, notify
from .recurrence import HabitSchedule, is_scheduled_on, local_today, next_occurrence_after
from .streaks import StreakSummary, compute_streak_summary
from .validation import validate_notes

logger = get_logger("completions")

DEFAULT_UNDO_WINDOW = timedelta(hours=24)
_SCHEDULE_PAGE_SIZE = 100


class ScheduleState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"


@dataclass
class TodayEntry:
    habit: Habit
    day: date
    state: ScheduleState
    completion_id: Optional[int] = None
    completed_at: Optional[datetime] = None


@dataclass
class TodaySchedule:
    """Habits due today for one user, each evaluated in its own timezone."""

    as_of: datetime
    entries: list[TodayEntry] = field(default_factory=list)

    def _count(self, state: ScheduleState) -> int:
        return sum(1 for entry in self.entries if entry.state is state)

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def completed(self) -> int:
        return self._count(ScheduleState.COMPLETED)

    @property
    def pending(self) -> int:
        return self._count(ScheduleState.PENDING)

    @property
    def overdue(self) -> int:
        return self._count(ScheduleState.OVERDUE)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "pending": self.pending,
            "overdue": self.overdue,
        }


class CompletionService:
    """Records completions against a habit's schedule."""

    def __init__(
        self,
        habits: HabitRepository,
        completions: CompletionRepository,
        clock: Clock,
        notifier: EventNotifier,
        *,
        undo_window: timedelta = DEFAULT_UNDO_WINDOW,
    ):
        self.habits = habits
        self.completions = completions
        self.clock = clock
        self.notifier = notifier
        self.undo_window = undo_window

    def _get_habit(self, habit_id: int, user_id: str) -> Habit:
        habit = self.habits.get_by_id(habit_id, user_id=user_id)
        if habit is None:
            raise NotFoundError("Habit not found")
        return habit

    def mark_complete(
        self,
        habit_id: int,
        user_id: str,
        scheduled_for: date,
        notes: Optional[str] = None,
    ) -> HabitCompletion:
        """Record that the habit was done on ``scheduled_for``.

        Raises:
            NotFoundError: habit missing, deleted or not owned by the user.
            InvalidStateError: habit is paused or archived.
            InvalidInputError: the date is after today (habit-local) or notes are too long.
            ConflictError: a live completion already exists for that date.
        """

        habit = self._get_habit(habit_id, user_id)
        if habit.status != HabitStatus.ACTIVE:
            raise InvalidStateError("Cannot complete a paused or archived habit")

        now = self.clock.now()
        if isinstance(scheduled_for, datetime):
            scheduled_for = local_date(scheduled_for, habit.timezone)
        if scheduled_for > local_today(now, habit.timezone):
            raise InvalidInputError("Cannot complete a habit for a future date")
        cleaned_notes = validate_notes(notes)

        if self.completions.find_live(habit_id, scheduled_for, user_id=user_id) is not None:
            logger.info(
                "Duplicate completion rejected",
                extra={"habit_id": habit_id, "user_id": user_id, "scheduled_for": scheduled_for.isoformat()},
            )
            raise ConflictError("Habit already completed for this date")

        next_due_at = next_occurrence_after(HabitSchedule.from_habit(habit), now)
        completion = self.completions.insert_completion(
            HabitCompletion(
                habit_id=habit_id,
                user_id=user_id,
                scheduled_for=scheduled_for,
                completed_at=now,
                notes=cleaned_notes,
            ),
            user_id=user_id,
            next_due_at=next_due_at,
            expected_version=habit.version,
        )

        logger.info(
            "Habit completed",
            extra={
                "habit_id": habit_id,
                "user_id": user_id,
                "completion_id": completion.id,
                "scheduled_for": scheduled_for.isoformat(),
            },
        )
        notify(
            self.notifier,
            EventKind.HABIT_COMPLETED,
            {
                "habit_id": habit_id,
                "user_id": user_id,
                "completion_id": completion.id,
                "scheduled_for": scheduled_for,
                "completed_at": completion.completed_at,
            },
        )
        return completion

    def undo_completion(self, completion_id: int, user_id: str) -> HabitCompletion:
        """Void a completion recorded within the undo window.

        Streaks need no recalculation: they are always derived from live rows.
        The event tells collaborators that their cached views are stale.
        """

        completion = self.completions.get_by_id(completion_id, user_id=user_id)
        if completion is None:
            raise NotFoundError("Completion not found")
        if completion.undone_at is not None:
            raise InvalidStateError("Completion already undone")

        now = self.clock.now()
        if now - completion.completed_at > self.undo_window:
            hours = int(self.undo_window.total_seconds() // 3600)
            logger.warning(
                "Undo rejected outside window",
                extra={"completion_id": completion_id, "user_id": user_id, "window_hours": hours},
            )
            raise InvalidStateError(f"Cannot undo completion after {hours} hours")

        undone = self.completions.mark_undone(completion_id, user_id=user_id, undone_at=now)
        logger.info(
            "Completion undone",
            extra={"completion_id": completion_id, "habit_id": undone.habit_id, "user_id": user_id},
        )
        notify(
            self.notifier,
            EventKind.COMPLETION_UNDONE,
            {"completion_id": completion_id, "habit_id": undone.habit_id, "user_id": user_id},
        )
        return undone

    def list_completions(self, habit_id: int, user_id: str) -> list[HabitCompletion]:
        """Live completions of a habit, newest first."""

        self._get_habit(habit_id, user_id)
        return self.completions.list_for_habit(habit_id, user_id=user_id)

    def get_streak_summary(self, habit_id: int, user_id: str) -> StreakSummary:
        habit = self._get_habit(habit_id, user_id)
        completions = self.completions.list_for_habit(habit_id, user_id=user_id)
        today = local_today(self.clock.now(), habit.timezone)
        return compute_streak_summary(
            HabitSchedule.from_habit(habit),
            (c.scheduled_for for c in completions),
            today=today,
        )

    def _active_habits(self, user_id: str) -> Iterator[Habit]:
        page = 1
        while True:
            result = self.habits.list_for_user(
                user_id=user_id,
                filters=HabitFilters(
                    status=HabitStatus.ACTIVE,
                    sort=HabitSort.NEXT_DUE,
                    page=page,
                    page_size=_SCHEDULE_PAGE_SIZE,
                ),
            )
            yield from result.items
            if page >= result.total_pages:
                return
            page += 1

    def get_today_schedule(self, user_id: str) -> TodaySchedule:
        """Classify every habit due today as completed, overdue or pending."""

        now = self.clock.now()
        schedule = TodaySchedule(as_of=now)
        by_day: dict[date, dict[int, HabitCompletion]] = {}

        for habit in self._active_habits(user_id):
            today = local_today(now, habit.timezone)
            if not is_scheduled_on(HabitSchedule.from_habit(habit), today):
                continue
            if today not in by_day:
                by_day[today] = {
                    c.habit_id: c for c in self.completions.list_for_user_on(today, user_id=user_id)
                }
            completion = by_day[today].get(habit.id)

            if completion is not None:
                schedule.entries.append(
                    TodayEntry(
                        habit=habit,
                        day=today,
                        state=ScheduleState.COMPLETED,
                        completion_id=completion.id,
                        completed_at=completion.completed_at,
                    )
                )
            elif habit.next_due_at is not None and habit.next_due_at < now:
                schedule.entries.append(TodayEntry(habit=habit, day=today, state=ScheduleState.OVERDUE))
            else:
                schedule.entries.append(TodayEntry(habit=habit, day=today, state=ScheduleState.PENDING))

        return schedule


__all__ = [
    "CompletionService",
    "DEFAULT_UNDO_WINDOW",
    "ScheduleState",
    "TodayEntry",
    "TodaySchedule",
]
