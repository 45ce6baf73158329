"""Tests for marking habits complete and undoing completions."""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from habitflow.errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from habitflow.models.habit import HabitCompletion
from habitflow.services.completions import CompletionService
from habitflow.services.events import EventKind
from habitflow.services.habits import HabitUpdate

USER = "user-1"
OTHER_USER = "user-2"
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
TODAY = date(2024, 1, 10)


class ExplodingNotifier:
    def publish(self, kind, payload):
        raise RuntimeError("notification backend down")


class TestMarkComplete:
    def test_records_completion_and_emits_event(self, habit_factory, completion_service, notifier):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY, notes="  easy pace ")

        assert completion.id is not None
        assert completion.habit_id == habit.id
        assert completion.user_id == USER
        assert completion.scheduled_for == TODAY
        assert completion.completed_at == NOW
        assert completion.notes == "easy pace"
        assert completion.undone_at is None

        kind, payload = notifier.events[-1]
        assert kind is EventKind.HABIT_COMPLETED
        assert payload["completion_id"] == completion.id
        assert payload["scheduled_for"] == TODAY

    def test_completion_advances_next_due(
        self, habit_factory, habit_service, completion_service, clock
    ):
        habit = habit_factory()
        clock.set(datetime(2024, 1, 12, 9, 0, tzinfo=timezone.utc))

        completion_service.mark_complete(habit.id, USER, date(2024, 1, 12))

        refreshed = habit_service.get_habit(USER, habit.id)
        assert refreshed.next_due_at == datetime(2024, 1, 13, 8, 0, tzinfo=timezone.utc)

    def test_past_dates_are_allowed(self, habit_factory, completion_service):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, date(2024, 1, 3))
        assert completion.scheduled_for == date(2024, 1, 3)

    def test_duplicate_date_is_a_conflict(self, habit_factory, completion_service):
        habit = habit_factory()
        completion_service.mark_complete(habit.id, USER, TODAY)

        with pytest.raises(ConflictError, match="already completed"):
            completion_service.mark_complete(habit.id, USER, TODAY)

    def test_future_date_rejected(self, habit_factory, completion_service):
        habit = habit_factory()
        with pytest.raises(InvalidInputError, match="future"):
            completion_service.mark_complete(habit.id, USER, date(2024, 1, 11))

    def test_today_is_evaluated_in_the_habit_timezone(self, habit_factory, completion_service):
        """At 12:00 UTC it is already the next morning in Auckland."""
        utc_habit = habit_factory(name="UTC habit")
        nz_habit = habit_factory(name="NZ habit", timezone="Pacific/Auckland")

        completion = completion_service.mark_complete(nz_habit.id, USER, date(2024, 1, 11))

        assert completion.scheduled_for == date(2024, 1, 11)
        with pytest.raises(InvalidInputError):
            completion_service.mark_complete(utc_habit.id, USER, date(2024, 1, 11))

    def test_instant_is_converted_to_habit_local_date(self, habit_factory, completion_service):
        habit = habit_factory(timezone="Pacific/Auckland")
        completion = completion_service.mark_complete(habit.id, USER, NOW)
        assert completion.scheduled_for == date(2024, 1, 11)

    def test_paused_habit_cannot_be_completed(
        self, habit_factory, habit_service, completion_service
    ):
        habit = habit_factory()
        habit_service.pause_habit(USER, habit.id)

        with pytest.raises(InvalidStateError):
            completion_service.mark_complete(habit.id, USER, TODAY)

    def test_archived_habit_cannot_be_completed(
        self, habit_factory, habit_service, completion_service
    ):
        habit = habit_factory()
        habit_service.update_habit(USER, habit.id, HabitUpdate(status="ARCHIVED"))

        with pytest.raises(InvalidStateError):
            completion_service.mark_complete(habit.id, USER, TODAY)

    def test_notes_length_limit(self, habit_factory, completion_service, completion_repo):
        habit = habit_factory()
        with pytest.raises(InvalidInputError):
            completion_service.mark_complete(habit.id, USER, TODAY, notes="x" * 1001)
        assert completion_repo.count_for_habit(habit.id, user_id=USER) == 0

    def test_other_users_habit_is_not_found(self, habit_factory, completion_service):
        habit = habit_factory()
        with pytest.raises(NotFoundError):
            completion_service.mark_complete(habit.id, OTHER_USER, TODAY)

    def test_notifier_failure_does_not_roll_back(
        self, habit_factory, habit_repo, completion_repo, clock
    ):
        habit = habit_factory()
        service = CompletionService(habit_repo, completion_repo, clock, ExplodingNotifier())

        service.mark_complete(habit.id, USER, TODAY)

        assert completion_repo.count_for_habit(habit.id, user_id=USER) == 1


class TestConcurrentCompletion:
    """Two requests that both pass the duplicate pre-check race on insert."""

    def test_unique_index_lets_exactly_one_insert_win(
        self, habit_factory, completion_service, completion_repo, monkeypatch
    ):
        habit = habit_factory()
        monkeypatch.setattr(completion_repo, "find_live", lambda *args, **kwargs: None)

        outcomes = []
        for _ in range(2):
            try:
                completion_service.mark_complete(habit.id, USER, TODAY)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        assert outcomes == ["ok", "conflict"]
        assert completion_repo.count_for_habit(habit.id, user_id=USER) == 1

    def test_insert_for_paused_habit_writes_nothing(
        self, habit_factory, habit_service, completion_repo
    ):
        """A pause that lands between the status check and the insert wins."""
        habit = habit_factory()
        habit_service.pause_habit(USER, habit.id)

        with pytest.raises(InvalidStateError):
            completion_repo.insert_completion(
                HabitCompletion(habit_id=habit.id, user_id=USER, scheduled_for=TODAY, completed_at=NOW),
                user_id=USER,
                next_due_at=None,
            )
        assert completion_repo.list_for_habit(habit.id, user_id=USER, include_undone=True) == []

    def test_two_threads_racing_for_the_same_day(
        self, habit_factory, completion_service, completion_repo
    ):
        habit = habit_factory()
        barrier = threading.Barrier(2)
        outcomes = []
        outcomes_lock = threading.Lock()

        def complete():
            barrier.wait()
            try:
                completion_service.mark_complete(habit.id, USER, TODAY)
                result = "ok"
            except ConflictError:
                result = "conflict"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=complete) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["conflict", "ok"]
        assert completion_repo.count_for_habit(habit.id, user_id=USER) == 1

    def test_rule_change_between_read_and_insert_is_a_conflict(
        self, habit_factory, habit_service, completion_service, completion_repo, monkeypatch
    ):
        """A completion computed from a stale habit must not overwrite the new due instant."""
        habit = habit_factory()
        insert = completion_repo.insert_completion

        def insert_after_rule_change(*args, **kwargs):
            habit_service.update_habit(
                USER,
                habit.id,
                HabitUpdate(
                    frequency_kind="WEEKLY",
                    frequency_params={"days_of_week": [5], "time": "08:00"},
                ),
            )
            return insert(*args, **kwargs)

        monkeypatch.setattr(completion_repo, "insert_completion", insert_after_rule_change)

        with pytest.raises(ConflictError):
            completion_service.mark_complete(habit.id, USER, TODAY)

        refreshed = habit_service.get_habit(USER, habit.id)
        assert refreshed.next_due_at == datetime(2024, 1, 12, 8, 0, tzinfo=timezone.utc)
        assert refreshed.version == 2
        assert completion_repo.count_for_habit(habit.id, user_id=USER) == 0

    def test_completion_bumps_habit_version(self, habit_factory, habit_service, completion_service):
        habit = habit_factory()
        completion_service.mark_complete(habit.id, USER, TODAY)
        assert habit_service.get_habit(USER, habit.id).version == habit.version + 1


class TestUndoCompletion:
    def test_undo_within_window(self, habit_factory, completion_service, notifier, clock):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY)
        clock.advance(hours=23)

        undone = completion_service.undo_completion(completion.id, USER)

        assert undone.undone_at == NOW + timedelta(hours=23)
        assert undone.is_undone
        kind, payload = notifier.events[-1]
        assert kind is EventKind.COMPLETION_UNDONE
        assert payload == {"completion_id": completion.id, "habit_id": habit.id, "user_id": USER}

    def test_undo_at_exactly_the_window_edge(self, habit_factory, completion_service, clock):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY)
        clock.advance(hours=24)

        assert completion_service.undo_completion(completion.id, USER).is_undone

    def test_undo_after_window_rejected(self, habit_factory, completion_service, clock):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY)
        clock.advance(hours=25)

        with pytest.raises(InvalidStateError, match="Cannot undo completion after 24 hours"):
            completion_service.undo_completion(completion.id, USER)

    def test_configurable_window(self, habit_factory, habit_repo, completion_repo, clock, notifier):
        service = CompletionService(
            habit_repo, completion_repo, clock, notifier, undo_window=timedelta(hours=2)
        )
        habit = habit_factory()
        completion = service.mark_complete(habit.id, USER, TODAY)
        clock.advance(hours=3)

        with pytest.raises(InvalidStateError, match="after 2 hours"):
            service.undo_completion(completion.id, USER)

    def test_undo_twice_rejected(self, habit_factory, completion_service):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY)
        completion_service.undo_completion(completion.id, USER)

        with pytest.raises(InvalidStateError, match="already undone"):
            completion_service.undo_completion(completion.id, USER)

    def test_undo_frees_the_date_and_keeps_audit_row(
        self, habit_factory, completion_service, completion_repo
    ):
        habit = habit_factory()
        first = completion_service.mark_complete(habit.id, USER, TODAY)
        completion_service.undo_completion(first.id, USER)

        second = completion_service.mark_complete(habit.id, USER, TODAY)

        assert second.id != first.id
        live = completion_service.list_completions(habit.id, USER)
        assert [c.id for c in live] == [second.id]
        everything = completion_repo.list_for_habit(habit.id, user_id=USER, include_undone=True)
        assert {c.id for c in everything} == {first.id, second.id}

    def test_unknown_or_foreign_completion_is_not_found(self, habit_factory, completion_service):
        habit = habit_factory()
        completion = completion_service.mark_complete(habit.id, USER, TODAY)

        with pytest.raises(NotFoundError):
            completion_service.undo_completion(completion.id, OTHER_USER)
        with pytest.raises(NotFoundError):
            completion_service.undo_completion(completion.id + 100, USER)


class TestListCompletions:
    def test_newest_first(self, habit_factory, completion_service):
        habit = habit_factory()
        for day in (3, 9, 5):
            completion_service.mark_complete(habit.id, USER, date(2024, 1, day))

        days = [c.scheduled_for.day for c in completion_service.list_completions(habit.id, USER)]
        assert days == [9, 5, 3]

    def test_missing_habit_is_not_found(self, completion_service):
        with pytest.raises(NotFoundError):
            completion_service.list_completions(999, USER)
