"""Frequency rule and habit field validation.

Everything here is pure: no storage, no clock. Validators collect every
violation before raising so callers can report them all at once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Any, Mapping, Optional, Union

import pytz

from ..errors import InvalidInputError
from ..models.habit import FrequencyKind, Habit
from ..utils.time import parse_hhmm

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 1000
DURATION_MIN_MINUTES = 5
DURATION_MAX_MINUTES = 480
INTERVAL_MIN = 1
INTERVAL_MAX = 365

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class IntervalUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"


@dataclass(frozen=True)
class DailyRule:
    time: time

    kind = FrequencyKind.DAILY

    def to_params(self) -> dict[str, Any]:
        return {"time": self.time.strftime("%H:%M")}


@dataclass(frozen=True)
class WeeklyRule:
    days_of_week: tuple[int, ...]  # sorted, unique; 0 = Sunday
    time: time

    kind = FrequencyKind.WEEKLY

    def to_params(self) -> dict[str, Any]:
        return {"days_of_week": list(self.days_of_week), "time": self.time.strftime("%H:%M")}


@dataclass(frozen=True)
class CustomRule:
    interval_count: int
    interval_unit: IntervalUnit
    time: time

    kind = FrequencyKind.CUSTOM

    @property
    def interval_days(self) -> int:
        if self.interval_unit is IntervalUnit.WEEKS:
            return self.interval_count * 7
        return self.interval_count

    def to_params(self) -> dict[str, Any]:
        return {
            "interval_count": self.interval_count,
            "interval_unit": self.interval_unit.value,
            "time": self.time.strftime("%H:%M"),
        }


FrequencyRule = Union[DailyRule, WeeklyRule, CustomRule]

_ALLOWED_KEYS: dict[FrequencyKind, frozenset[str]] = {
    FrequencyKind.DAILY: frozenset({"time"}),
    FrequencyKind.WEEKLY: frozenset({"days_of_week", "time"}),
    FrequencyKind.CUSTOM: frozenset({"interval_count", "interval_unit", "time"}),
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_time(params: Mapping[str, Any], violations: list[str]) -> Optional[time]:
    raw = params.get("time")
    if raw is None or raw == "":
        violations.append("time is required")
        return None
    if not isinstance(raw, str) or not _TIME_RE.match(raw):
        violations.append("time must be in 24-hour HH:MM format")
        return None
    return parse_hhmm(raw)


def _coerce_kind(kind: Any) -> Optional[FrequencyKind]:
    if isinstance(kind, FrequencyKind):
        return kind
    if isinstance(kind, str):
        try:
            return FrequencyKind(kind.strip().upper())
        except ValueError:
            return None
    return None


def validate_frequency(kind: Any, params: Optional[Mapping[str, Any]]) -> FrequencyRule:
    """Validate a frequency kind and its parameters, returning a typed rule.

    Raises:
        InvalidInputError: listing every violated rule.
    """

    frequency_kind = _coerce_kind(kind)
    if frequency_kind is None:
        raise InvalidInputError.from_violations([f"unknown frequency kind: {kind!r}"])
    if params is None or not isinstance(params, Mapping):
        raise InvalidInputError.from_violations(["frequency parameters are required"])

    violations: list[str] = []
    extra = sorted(set(params) - _ALLOWED_KEYS[frequency_kind])
    if extra:
        violations.append(
            f"unexpected parameters for {frequency_kind.value}: {', '.join(map(str, extra))}"
        )

    at = _check_time(params, violations)

    if frequency_kind is FrequencyKind.DAILY:
        if violations:
            raise InvalidInputError.from_violations(violations)
        return DailyRule(time=at)  # type: ignore[arg-type]

    if frequency_kind is FrequencyKind.WEEKLY:
        days = params.get("days_of_week")
        if not isinstance(days, (list, tuple, set, frozenset)) or len(days) == 0:
            violations.append("days_of_week must contain at least one day")
            days = ()
        elif not all(_is_int(d) and 0 <= d <= 6 for d in days):
            violations.append("days_of_week values must be integers from 0 (Sunday) to 6 (Saturday)")
        if violations:
            raise InvalidInputError.from_violations(violations)
        return WeeklyRule(days_of_week=tuple(sorted(set(days))), time=at)  # type: ignore[arg-type]

    count = params.get("interval_count")
    if not _is_int(count):
        violations.append("interval_count is required and must be an integer")
    elif not INTERVAL_MIN <= count <= INTERVAL_MAX:
        violations.append(f"interval_count must be between {INTERVAL_MIN} and {INTERVAL_MAX}")
    unit = params.get("interval_unit")
    if unit not in {u.value for u in IntervalUnit}:
        violations.append('interval_unit must be "days" or "weeks"')
    if violations:
        raise InvalidInputError.from_violations(violations)
    return CustomRule(interval_count=count, interval_unit=IntervalUnit(unit), time=at)  # type: ignore[arg-type]


def rule_from_habit(habit: Habit) -> FrequencyRule:
    """Rebuild the typed rule from a persisted habit row."""

    return validate_frequency(habit.frequency_kind, habit.frequency_params)


def validate_habit_fields(
    *,
    name: Any = None,
    description: Any = None,
    duration_minutes: Any = None,
    timezone: Any = None,
    require_name: bool = False,
) -> None:
    """Check the scalar habit fields; ``None`` means "not supplied"."""

    violations: list[str] = []

    if name is None:
        if require_name:
            violations.append("name is required")
    elif not isinstance(name, str) or not name.strip():
        violations.append("name is required and cannot be whitespace only")
    elif len(name.strip()) > NAME_MAX_LENGTH:
        violations.append(f"name must not exceed {NAME_MAX_LENGTH} characters")

    if description is not None:
        if not isinstance(description, str):
            violations.append("description must be text")
        elif len(description.strip()) > DESCRIPTION_MAX_LENGTH:
            violations.append(f"description must not exceed {DESCRIPTION_MAX_LENGTH} characters")

    if duration_minutes is not None:
        if not _is_int(duration_minutes):
            violations.append("duration_minutes must be an integer")
        elif not DURATION_MIN_MINUTES <= duration_minutes <= DURATION_MAX_MINUTES:
            violations.append(
                f"duration_minutes must be between {DURATION_MIN_MINUTES} and {DURATION_MAX_MINUTES}"
            )

    if timezone is not None and timezone not in pytz.all_timezones_set:
        violations.append(f"unknown timezone: {timezone}")

    if violations:
        raise InvalidInputError.from_violations(violations)


def validate_notes(notes: Optional[str]) -> Optional[str]:
    """Return trimmed notes (``None`` when blank) or raise on overflow."""

    if notes is None:
        return None
    cleaned = notes.strip()
    if len(cleaned) > NOTES_MAX_LENGTH:
        raise InvalidInputError(f"notes must not exceed {NOTES_MAX_LENGTH} characters")
    return cleaned or None


__all__ = [
    "CustomRule",
    "DailyRule",
    "FrequencyRule",
    "IntervalUnit",
    "WeeklyRule",
    "rule_from_habit",
    "validate_frequency",
    "validate_habit_fields",
    "validate_notes",
]
