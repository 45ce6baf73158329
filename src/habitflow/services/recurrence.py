"""Recurrence engine: when is a habit next due, and is a day in scope.

All functions are pure. "Next occurrence" is instant based and resolved in
the habit's timezone; "is scheduled on" works at calendar-date granularity.
For CUSTOM rules the two anchor differently: the next instant steps from the
last persisted due instant (or creation), while the in-scope check counts
days from the creation date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..models.habit import Habit, HabitStatus
from ..utils.time import as_utc, get_zone, local_date, local_instant, sunday_weekday, to_local
from .validation import CustomRule, DailyRule, FrequencyRule, WeeklyRule, rule_from_habit

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class HabitSchedule:
    """Everything the engine needs to know about one habit."""

    rule: FrequencyRule
    status: HabitStatus
    timezone: str
    anchor_at: datetime
    anchor_date: date

    @property
    def is_active(self) -> bool:
        return self.status is HabitStatus.ACTIVE

    @classmethod
    def from_habit(
        cls,
        habit: Habit,
        *,
        rule: Optional[FrequencyRule] = None,
        status: Optional[HabitStatus] = None,
        timezone: Optional[str] = None,
        anchor_at: Optional[datetime] = None,
    ) -> "HabitSchedule":
        """Snapshot a habit row, optionally with pending changes applied.

        ``anchor_at`` defaults to the persisted ``next_due_at`` and falls back
        to ``created_at``. The in-scope anchor is always the creation date.
        """

        created_at = as_utc(habit.created_at)
        timezone = timezone or habit.timezone
        if anchor_at is None:
            anchor_at = habit.next_due_at or created_at
        return cls(
            rule=rule or rule_from_habit(habit),
            status=HabitStatus(status or habit.status),
            timezone=timezone,
            anchor_at=as_utc(anchor_at),
            anchor_date=local_date(created_at, timezone),
        )


def _next_daily(rule: DailyRule, reference: datetime, schedule: HabitSchedule) -> datetime:
    zone = get_zone(schedule.timezone)
    today = to_local(reference, zone).date()
    candidate = local_instant(today, rule.time, zone)
    if candidate > reference:
        return candidate
    return local_instant(today + ONE_DAY, rule.time, zone)


def _next_weekly(rule: WeeklyRule, reference: datetime, schedule: HabitSchedule) -> datetime:
    zone = get_zone(schedule.timezone)
    today = to_local(reference, zone).date()
    # offset 7 is the same weekday next week, for when today's slot has passed
    for offset in range(8):
        day = today + timedelta(days=offset)
        if sunday_weekday(day) not in rule.days_of_week:
            continue
        candidate = local_instant(day, rule.time, zone)
        if candidate > reference:
            return candidate
    raise ValueError("weekly rule without days")


def _next_custom(rule: CustomRule, reference: datetime, schedule: HabitSchedule) -> datetime:
    zone = get_zone(schedule.timezone)
    step = rule.interval_days
    day = to_local(schedule.anchor_at, zone).date()
    candidate = local_instant(day, rule.time, zone)
    if candidate > reference:
        return candidate

    # Jump close to the reference in whole intervals, then step.
    gap = (to_local(reference, zone).date() - day).days
    if gap > step:
        day += timedelta(days=(gap // step - 1) * step)
    candidate = local_instant(day, rule.time, zone)
    while candidate <= reference:
        day += timedelta(days=step)
        candidate = local_instant(day, rule.time, zone)
    return candidate


def next_occurrence_after(schedule: HabitSchedule, reference: datetime) -> Optional[datetime]:
    """Return the first due instant strictly after ``reference`` (UTC).

    Returns ``None`` for schedules that are not ACTIVE.
    """

    if not schedule.is_active:
        return None
    reference = as_utc(reference)
    rule = schedule.rule
    if isinstance(rule, DailyRule):
        return _next_daily(rule, reference, schedule)
    if isinstance(rule, WeeklyRule):
        return _next_weekly(rule, reference, schedule)
    if isinstance(rule, CustomRule):
        return _next_custom(rule, reference, schedule)
    raise TypeError(f"Unsupported frequency rule: {rule!r}")


def is_scheduled_on(schedule: HabitSchedule, day: date) -> bool:
    """True when ``day`` is in scope for the habit's rule."""

    if not schedule.is_active:
        return False
    rule = schedule.rule
    if isinstance(rule, DailyRule):
        return True
    if isinstance(rule, WeeklyRule):
        return sunday_weekday(day) in rule.days_of_week
    if isinstance(rule, CustomRule):
        elapsed = (day - schedule.anchor_date).days
        return elapsed >= 0 and elapsed % rule.interval_days == 0
    raise TypeError(f"Unsupported frequency rule: {rule!r}")


def occurrences_between(schedule: HabitSchedule, start: date, end: date) -> list[datetime]:
    """Due instants for every in-scope day from ``start`` to ``end`` inclusive."""

    zone = get_zone(schedule.timezone)
    occurrences = []
    day = start
    while day <= end:
        if is_scheduled_on(schedule, day):
            occurrences.append(local_instant(day, schedule.rule.time, zone))
        day += ONE_DAY
    return occurrences


def local_today(now: datetime, timezone_name: str) -> date:
    """The calendar date of ``now`` in the given timezone."""

    return local_date(now, timezone_name)


__all__ = [
    "HabitSchedule",
    "is_scheduled_on",
    "local_today",
    "next_occurrence_after",
    "occurrences_between",
]
