"""SQLModel implementation of the completion repository."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from ...errors import ConflictError, InvalidStateError, NotFoundError
from ...models.habit import Habit, HabitCompletion, HabitStatus
from .habit import restore_utc

_COMPLETION_INSTANTS = ("completed_at", "undone_at")


class SQLModelCompletionRepository:
    """SQLModel-based completion repository implementation."""

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def _detach_all(self, session: Session, rows: list[HabitCompletion]) -> list[HabitCompletion]:
        session.expunge_all()
        return [restore_utc(row, _COMPLETION_INSTANTS) for row in rows]

    def get_by_id(self, completion_id: int, *, user_id: str) -> Optional[HabitCompletion]:
        """Retrieve a completion owned by ``user_id`` (undone rows included)."""
        with self.session_factory() as session:
            obj = session.exec(
                select(HabitCompletion).where(
                    HabitCompletion.id == completion_id,
                    HabitCompletion.user_id == user_id,
                )
            ).first()
            if obj is None:
                return None
            session.expunge(obj)
            return restore_utc(obj, _COMPLETION_INSTANTS)

    def find_live(
        self, habit_id: int, scheduled_for: date, *, user_id: str
    ) -> Optional[HabitCompletion]:
        """Non-undone completion for a habit on a day, if any."""
        with self.session_factory() as session:
            obj = session.exec(
                select(HabitCompletion)
                .where(HabitCompletion.user_id == user_id)
                .where(HabitCompletion.habit_id == habit_id)
                .where(HabitCompletion.scheduled_for == scheduled_for)
                .where(col(HabitCompletion.undone_at).is_(None))
            ).first()
            if obj is None:
                return None
            session.expunge(obj)
            return restore_utc(obj, _COMPLETION_INSTANTS)

    def list_for_habit(
        self, habit_id: int, *, user_id: str, include_undone: bool = False
    ) -> list[HabitCompletion]:
        """Completions of a habit, newest scheduled day first."""
        with self.session_factory() as session:
            statement = (
                select(HabitCompletion)
                .where(HabitCompletion.user_id == user_id)
                .where(HabitCompletion.habit_id == habit_id)
            )
            if not include_undone:
                statement = statement.where(col(HabitCompletion.undone_at).is_(None))
            statement = statement.order_by(
                col(HabitCompletion.scheduled_for).desc(), col(HabitCompletion.id).desc()
            )
            return self._detach_all(session, list(session.exec(statement).all()))

    def list_for_user_on(self, day: date, *, user_id: str) -> list[HabitCompletion]:
        """Live completions of all the user's habits for one day."""
        with self.session_factory() as session:
            statement = (
                select(HabitCompletion)
                .where(HabitCompletion.user_id == user_id)
                .where(HabitCompletion.scheduled_for == day)
                .where(col(HabitCompletion.undone_at).is_(None))
            )
            return self._detach_all(session, list(session.exec(statement).all()))

    def count_for_habit(self, habit_id: int, *, user_id: str) -> int:
        with self.session_factory() as session:
            return session.exec(
                select(func.count())
                .select_from(HabitCompletion)
                .where(HabitCompletion.user_id == user_id)
                .where(HabitCompletion.habit_id == habit_id)
                .where(col(HabitCompletion.undone_at).is_(None))
            ).one()

    def insert_completion(
        self,
        completion: HabitCompletion,
        *,
        user_id: str,
        next_due_at: Optional[datetime],
        expected_version: Optional[int] = None,
    ) -> HabitCompletion:
        """Insert a completion and persist the habit's new due instant atomically.

        The unique partial index on (habit_id, scheduled_for) decides races:
        the losing insert becomes a ConflictError and nothing is written.
        With ``expected_version`` the due instant only lands if the habit was
        not changed since it was read; otherwise ConflictError.
        """
        with self.session_factory() as session:
            completion.user_id = user_id
            session.add(completion)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError("Habit already completed for this date") from exc

            statement = update(Habit).where(
                col(Habit.id) == completion.habit_id,
                col(Habit.user_id) == user_id,
                col(Habit.deleted_at).is_(None),
                col(Habit.status) == HabitStatus.ACTIVE,
            )
            if expected_version is not None:
                statement = statement.where(col(Habit.version) == expected_version)
            result = session.execute(
                statement.values(next_due_at=next_due_at, version=col(Habit.version) + 1)
            )
            if result.rowcount == 0:
                habit = session.exec(
                    select(Habit).where(
                        Habit.id == completion.habit_id,
                        Habit.user_id == user_id,
                        col(Habit.deleted_at).is_(None),
                    )
                ).first()
                if habit is None:
                    raise NotFoundError("Habit not found")
                if habit.status != HabitStatus.ACTIVE:
                    raise InvalidStateError("Cannot complete a paused or archived habit")
                raise ConflictError("Habit was modified concurrently; reload and retry")

            session.commit()
            session.refresh(completion)
            session.expunge(completion)
            return restore_utc(completion, _COMPLETION_INSTANTS)

    def mark_undone(
        self, completion_id: int, *, user_id: str, undone_at: datetime
    ) -> HabitCompletion:
        """Void a live completion; the row stays for the audit trail."""
        with self.session_factory() as session:
            result = session.execute(
                update(HabitCompletion)
                .where(
                    col(HabitCompletion.id) == completion_id,
                    col(HabitCompletion.user_id) == user_id,
                    col(HabitCompletion.undone_at).is_(None),
                )
                .values(undone_at=undone_at)
            )
            if result.rowcount == 0:
                exists = session.exec(
                    select(HabitCompletion.id).where(
                        HabitCompletion.id == completion_id,
                        HabitCompletion.user_id == user_id,
                    )
                ).first()
                if exists is None:
                    raise NotFoundError("Completion not found")
                raise InvalidStateError("Completion already undone")
            session.commit()
            obj = session.exec(
                select(HabitCompletion).where(HabitCompletion.id == completion_id)
            ).one()
            session.expunge(obj)
            return restore_utc(obj, _COMPLETION_INSTANTS)
