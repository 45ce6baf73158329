"""Habit lifecycle: create, update, pause, resume, delete and listings.

Every mutation re-reads the habit through the owner-scoped lookup, so a habit
that is missing, soft-deleted or owned by someone else is reported the same
way (NotFoundError). Rule or status changes recompute ``next_due_at`` in the
same write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ..domain.repositories.habit import HabitFilters, HabitPage, HabitRepository, HabitSort
from ..errors import InvalidInputError, InvalidStateError, NotFoundError
from ..logging_config import get_logger
from ..models.habit import FrequencyKind, Habit, HabitStatus
from .clock import Clock
from .events import EventKind, EventNotifier, notify
from .recurrence import HabitSchedule, next_occurrence_after
from .validation import FrequencyRule, validate_frequency, validate_habit_fields

logger = get_logger("habits")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass
class HabitInput:
    """Fields accepted when creating a habit."""

    name: str
    frequency_kind: FrequencyKind | str
    frequency_params: Mapping[str, Any]
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    timezone: Optional[str] = None


@dataclass
class HabitUpdate:
    """Partial update; fields left as UNSET are not touched.

    ``description`` and ``duration_minutes`` may be set to None to clear them.
    """

    name: Any = UNSET
    description: Any = UNSET
    duration_minutes: Any = UNSET
    frequency_kind: Any = UNSET
    frequency_params: Any = UNSET
    status: Any = UNSET
    timezone: Any = UNSET


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _frequency_payload(kind: Any, params: Mapping[str, Any]) -> dict[str, Any]:
    return {"kind": FrequencyKind(kind).value, "params": dict(params)}


def _coerce_status(value: Any) -> HabitStatus:
    try:
        return HabitStatus(value.strip().upper() if isinstance(value, str) else value)
    except ValueError as exc:
        raise InvalidInputError(f"unknown status: {value!r}") from exc


class HabitService:
    """Owns the habit record and keeps ``next_due_at`` consistent with it."""

    def __init__(
        self,
        habits: HabitRepository,
        clock: Clock,
        notifier: EventNotifier,
        *,
        default_timezone: str = "UTC",
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self.habits = habits
        self.clock = clock
        self.notifier = notifier
        self.default_timezone = default_timezone
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ------------------------------------------------------------------ reads

    def get_habit(self, user_id: str, habit_id: int) -> Habit:
        habit = self.habits.get_by_id(habit_id, user_id=user_id)
        if habit is None:
            raise NotFoundError("Habit not found")
        return habit

    def list_habits(self, user_id: str, filters: Optional[HabitFilters] = None) -> HabitPage:
        """Return one page of the user's habits, clamping paging to config limits."""

        filters = filters or HabitFilters(page_size=self.default_page_size)
        filters.page = max(1, filters.page)
        filters.page_size = min(max(1, filters.page_size), self.max_page_size)
        return self.habits.list_for_user(user_id=user_id, filters=filters)

    def search_habits(
        self, user_id: str, query: str, filters: Optional[HabitFilters] = None
    ) -> list[Habit]:
        """Free-text search over name and description."""

        filters = filters or HabitFilters(sort=HabitSort.NAME, page_size=self.max_page_size)
        filters.search = query
        return self.list_habits(user_id, filters).items

    def count_habits(self, user_id: str, status: Optional[HabitStatus] = None) -> int:
        return self.habits.count_for_user(user_id=user_id, status=status)

    # -------------------------------------------------------------- mutations

    def create_habit(self, user_id: str, data: HabitInput) -> Habit:
        timezone = data.timezone or self.default_timezone
        violations: list[str] = []
        rule: Optional[FrequencyRule] = None
        try:
            validate_habit_fields(
                name=data.name,
                description=data.description,
                duration_minutes=data.duration_minutes,
                timezone=timezone,
                require_name=True,
            )
        except InvalidInputError as exc:
            violations.extend(exc.violations)
        try:
            rule = validate_frequency(data.frequency_kind, data.frequency_params)
        except InvalidInputError as exc:
            violations.extend(exc.violations)
        if violations or rule is None:
            raise InvalidInputError.from_violations(violations)

        now = self.clock.now()
        habit = Habit(
            user_id=user_id,
            name=data.name.strip(),
            description=_clean_text(data.description),
            frequency_kind=rule.kind,
            frequency_params=rule.to_params(),
            duration_minutes=data.duration_minutes,
            status=HabitStatus.ACTIVE,
            timezone=timezone,
            created_at=now,
            updated_at=now,
        )
        habit.next_due_at = next_occurrence_after(HabitSchedule.from_habit(habit, rule=rule), now)
        created = self.habits.create(habit, user_id=user_id)

        logger.info(
            "Habit created",
            extra={"habit_id": created.id, "user_id": user_id, "kind": rule.kind.value},
        )
        notify(
            self.notifier,
            EventKind.HABIT_CREATED,
            {
                "habit_id": created.id,
                "user_id": user_id,
                "name": created.name,
                "frequency_kind": rule.kind.value,
                "next_due_at": created.next_due_at,
            },
        )
        return created

    def update_habit(self, user_id: str, habit_id: int, changes: HabitUpdate) -> Habit:
        habit = self.get_habit(user_id, habit_id)
        values: dict[str, Any] = {}
        violations: list[str] = []

        try:
            validate_habit_fields(
                name=None if changes.name is UNSET else changes.name,
                description=None if changes.description is UNSET else changes.description,
                duration_minutes=None
                if changes.duration_minutes is UNSET
                else changes.duration_minutes,
                timezone=None if changes.timezone is UNSET else changes.timezone,
            )
        except InvalidInputError as exc:
            violations.extend(exc.violations)
        if changes.name is None:
            violations.append("name cannot be cleared")
        if changes.timezone is None:
            violations.append("timezone cannot be cleared")

        rule: Optional[FrequencyRule] = None
        frequency_changed = (
            changes.frequency_kind is not UNSET or changes.frequency_params is not UNSET
        )
        if frequency_changed:
            kind = habit.frequency_kind if changes.frequency_kind is UNSET else changes.frequency_kind
            params = (
                habit.frequency_params
                if changes.frequency_params is UNSET
                else changes.frequency_params
            )
            try:
                rule = validate_frequency(kind, params)
            except InvalidInputError as exc:
                violations.extend(exc.violations)

        new_status = HabitStatus(habit.status)
        if changes.status is not UNSET:
            try:
                new_status = _coerce_status(changes.status)
            except InvalidInputError as exc:
                violations.extend(exc.violations)

        if violations:
            raise InvalidInputError.from_violations(violations)

        if habit.status == HabitStatus.ARCHIVED and new_status != HabitStatus.ARCHIVED:
            raise InvalidStateError("Archived habits cannot be reactivated")

        if changes.name is not UNSET:
            values["name"] = changes.name.strip()
        if changes.description is not UNSET:
            values["description"] = _clean_text(changes.description)
        if changes.duration_minutes is not UNSET:
            values["duration_minutes"] = changes.duration_minutes
        if rule is not None:
            values["frequency_kind"] = rule.kind
            values["frequency_params"] = rule.to_params()
        if changes.timezone is not UNSET and changes.timezone != habit.timezone:
            values["timezone"] = changes.timezone
        if new_status != habit.status:
            values["status"] = new_status

        if not values:
            return habit

        now = self.clock.now()
        schedule_changed = rule is not None or "timezone" in values
        if new_status != HabitStatus.ACTIVE:
            values["next_due_at"] = None
        elif schedule_changed or "status" in values:
            # A new rule starts its phase from creation again so that the due
            # instant and the in-scope days stay aligned.
            schedule = HabitSchedule.from_habit(
                habit,
                rule=rule,
                status=new_status,
                timezone=values.get("timezone"),
                anchor_at=habit.created_at if schedule_changed else None,
            )
            values["next_due_at"] = next_occurrence_after(schedule, now)

        updated = self.habits.update(
            habit_id,
            user_id=user_id,
            changes=values,
            expected_version=habit.version,
            updated_at=now,
        )
        logger.info(
            "Habit updated",
            extra={"habit_id": habit_id, "user_id": user_id, "fields": sorted(values)},
        )
        notify(
            self.notifier,
            EventKind.HABIT_UPDATED,
            {
                "habit_id": habit_id,
                "user_id": user_id,
                "old_frequency": _frequency_payload(habit.frequency_kind, habit.frequency_params),
                "new_frequency": _frequency_payload(
                    updated.frequency_kind, updated.frequency_params
                ),
                "old_status": HabitStatus(habit.status).value,
                "new_status": HabitStatus(updated.status).value,
                "next_due_at": updated.next_due_at,
            },
        )
        return updated

    def pause_habit(self, user_id: str, habit_id: int) -> Habit:
        """Stop the schedule. Pausing a paused habit performs no write."""

        habit = self.get_habit(user_id, habit_id)
        if habit.status == HabitStatus.PAUSED:
            return habit
        if habit.status == HabitStatus.ARCHIVED:
            raise InvalidStateError("Cannot pause an archived habit")
        return self._set_status(habit, user_id, HabitStatus.PAUSED, next_due_at=None)

    def resume_habit(self, user_id: str, habit_id: int) -> Habit:
        """Restart the schedule. Resuming an active habit performs no write."""

        habit = self.get_habit(user_id, habit_id)
        if habit.status == HabitStatus.ACTIVE:
            return habit
        if habit.status == HabitStatus.ARCHIVED:
            raise InvalidStateError("Cannot resume an archived habit")
        schedule = HabitSchedule.from_habit(habit, status=HabitStatus.ACTIVE)
        next_due_at = next_occurrence_after(schedule, self.clock.now())
        return self._set_status(habit, user_id, HabitStatus.ACTIVE, next_due_at=next_due_at)

    def delete_habit(self, user_id: str, habit_id: int) -> None:
        habit = self.get_habit(user_id, habit_id)
        self.habits.soft_delete(
            habit_id,
            user_id=user_id,
            deleted_at=self.clock.now(),
            expected_version=habit.version,
        )
        logger.info("Habit deleted", extra={"habit_id": habit_id, "user_id": user_id})
        notify(
            self.notifier,
            EventKind.HABIT_DELETED,
            {"habit_id": habit_id, "user_id": user_id, "name": habit.name},
        )

    def _set_status(
        self,
        habit: Habit,
        user_id: str,
        status: HabitStatus,
        *,
        next_due_at: Optional[datetime],
    ) -> Habit:
        updated = self.habits.update(
            habit.id,
            user_id=user_id,
            changes={"status": status, "next_due_at": next_due_at},
            expected_version=habit.version,
            updated_at=self.clock.now(),
        )
        logger.info(
            "Habit status changed",
            extra={"habit_id": habit.id, "user_id": user_id, "status": status.value},
        )
        notify(
            self.notifier,
            EventKind.HABIT_UPDATED,
            {
                "habit_id": habit.id,
                "user_id": user_id,
                "old_status": HabitStatus(habit.status).value,
                "new_status": status.value,
                "next_due_at": next_due_at,
            },
        )
        return updated


__all__ = ["HabitInput", "HabitService", "HabitUpdate", "UNSET"]
