"""Tests for the per-user "due today" view."""

from __future__ import annotations

from datetime import date, datetime, timezone

from habitflow.services.completions import ScheduleState

USER = "user-1"
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)  # Wednesday


def states(schedule) -> dict[str, ScheduleState]:
    return {entry.habit.name: entry.state for entry in schedule.entries}


class TestTodaySchedule:
    def test_empty_for_user_without_habits(self, completion_service):
        schedule = completion_service.get_today_schedule(USER)
        assert schedule.entries == []
        assert schedule.summary() == {"total": 0, "completed": 0, "pending": 0, "overdue": 0}

    def test_classifies_completed_overdue_and_pending(
        self, habit_factory, completion_service, clock
    ):
        clock.set(datetime(2024, 1, 9, 12, 0, tzinfo=timezone.utc))
        habit_factory(name="Overdue")  # next due 2024-01-10 08:00
        done = habit_factory(name="Done")
        clock.set(NOW)
        habit_factory(name="Pending", params={"time": "18:00"})
        completion = completion_service.mark_complete(done.id, USER, date(2024, 1, 10))

        schedule = completion_service.get_today_schedule(USER)

        assert states(schedule) == {
            "Overdue": ScheduleState.OVERDUE,
            "Done": ScheduleState.COMPLETED,
            "Pending": ScheduleState.PENDING,
        }
        entry = next(e for e in schedule.entries if e.habit.name == "Done")
        assert entry.completion_id == completion.id
        assert entry.completed_at == NOW
        assert schedule.as_of == NOW
        assert schedule.summary() == {"total": 3, "completed": 1, "pending": 1, "overdue": 1}

    def test_skips_habits_not_scheduled_today(self, habit_factory, completion_service):
        habit_factory(name="Mondays", kind="WEEKLY", params={"days_of_week": [1], "time": "09:00"})
        habit_factory(name="Wednesdays", kind="WEEKLY", params={"days_of_week": [3], "time": "20:00"})
        habit_factory(
            name="Every other day",
            kind="CUSTOM",
            params={"interval_count": 2, "interval_unit": "days", "time": "20:00"},
        )

        schedule = completion_service.get_today_schedule(USER)

        assert set(states(schedule)) == {"Wednesdays", "Every other day"}

    def test_skips_paused_and_deleted_habits(self, habit_factory, habit_service, completion_service):
        paused = habit_factory(name="Paused")
        deleted = habit_factory(name="Deleted")
        habit_factory(name="Active")
        habit_service.pause_habit(USER, paused.id)
        habit_service.delete_habit(USER, deleted.id)

        schedule = completion_service.get_today_schedule(USER)

        assert set(states(schedule)) == {"Active"}

    def test_only_includes_the_requesting_user(self, habit_factory, completion_service):
        habit_factory(name="Mine")
        habit_factory(name="Theirs", user_id="user-2")

        assert set(states(completion_service.get_today_schedule(USER))) == {"Mine"}

    def test_each_habit_uses_its_own_local_day(self, habit_factory, completion_service):
        """Noon UTC on Wednesday is already Thursday in Auckland."""
        habit_factory(
            name="NZ Thursdays",
            kind="WEEKLY",
            params={"days_of_week": [4], "time": "19:00"},
            timezone="Pacific/Auckland",
        )
        habit_factory(
            name="NZ Wednesdays",
            kind="WEEKLY",
            params={"days_of_week": [3], "time": "19:00"},
            timezone="Pacific/Auckland",
        )
        habit_factory(name="UTC daily")

        schedule = completion_service.get_today_schedule(USER)

        days = {entry.habit.name: entry.day for entry in schedule.entries}
        assert days == {"NZ Thursdays": date(2024, 1, 11), "UTC daily": date(2024, 1, 10)}

    def test_completion_in_other_timezone_matches_its_local_day(
        self, habit_factory, completion_service
    ):
        habit = habit_factory(name="NZ daily", timezone="Pacific/Auckland")
        completion_service.mark_complete(habit.id, USER, date(2024, 1, 11))

        schedule = completion_service.get_today_schedule(USER)

        assert states(schedule) == {"NZ daily": ScheduleState.COMPLETED}
