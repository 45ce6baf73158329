"""Streak calculations derived from live completions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from .recurrence import HabitSchedule, is_scheduled_on
from .validation import CustomRule

WEEK_HORIZON_DAYS = 7


@dataclass(frozen=True)
class StreakSummary:
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0


def _scan_horizon(schedule: HabitSchedule) -> int:
    # Wider than a week for CUSTOM intervals longer than seven days, so a
    # fortnightly habit can still build a run.
    if isinstance(schedule.rule, CustomRule):
        return max(WEEK_HORIZON_DAYS, schedule.rule.interval_days)
    return WEEK_HORIZON_DAYS


def _next_scheduled_day(schedule: HabitSchedule, after: date) -> Optional[date]:
    """First in-scope day after ``after`` within the scan horizon."""

    for offset in range(1, _scan_horizon(schedule) + 1):
        candidate = after + timedelta(days=offset)
        if is_scheduled_on(schedule, candidate):
            return candidate
    return None


def current_streak(schedule: HabitSchedule, completed: set[date], *, today: date) -> int:
    """Consecutive in-scope days completed, walking back from today.

    Today only breaks the streak once it is over, so an in-scope but not yet
    completed today starts the walk from yesterday.
    """

    if not completed or not schedule.is_active:
        return 0

    cursor = today
    if is_scheduled_on(schedule, today) and today not in completed:
        cursor -= timedelta(days=1)

    earliest = min(completed)
    streak = 0
    while cursor >= earliest:
        if is_scheduled_on(schedule, cursor):
            if cursor not in completed:
                break
            streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(schedule: HabitSchedule, completed: set[date]) -> int:
    """Longest run of completions on consecutive in-scope days."""

    if not schedule.is_active:
        return 0

    # Completions on out-of-scope days are skipped rather than resetting the
    # run; they still count towards total_completions.
    days = sorted(d for d in completed if is_scheduled_on(schedule, d))
    longest = 0
    run = 0
    last_day: Optional[date] = None
    for day in days:
        if last_day is not None and _next_scheduled_day(schedule, last_day) == day:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        last_day = day
    return longest


def compute_streak_summary(
    schedule: HabitSchedule, scheduled_days: Iterable[date], *, today: date
) -> StreakSummary:
    """Return current/longest streak and total count for live completions."""

    days = list(scheduled_days)
    if not days:
        return StreakSummary()
    completed = set(days)
    return StreakSummary(
        current_streak=current_streak(schedule, completed, today=today),
        longest_streak=longest_streak(schedule, completed),
        total_completions=len(days),
    )


__all__ = ["StreakSummary", "compute_streak_summary", "current_streak", "longest_streak"]
