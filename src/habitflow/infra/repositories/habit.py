"""SQLModel implementation of the habit repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import func, or_, update
from sqlmodel import Session, col, select

from ...domain.repositories.habit import HabitFilters, HabitPage, HabitSort
from ...errors import ConflictError, NotFoundError
from ...models.habit import Habit, HabitStatus
from ...utils.time import as_utc

_HABIT_INSTANTS = ("next_due_at", "created_at", "updated_at", "deleted_at")


def restore_utc(obj, fields: tuple[str, ...]):
    """Re-attach UTC to datetimes read back from drivers that drop tzinfo."""

    for name in fields:
        value = getattr(obj, name)
        if value is not None:
            setattr(obj, name, as_utc(value))
    return obj


def _live_habit(habit_id: int, user_id: str):
    return select(Habit).where(
        Habit.id == habit_id,
        Habit.user_id == user_id,
        col(Habit.deleted_at).is_(None),
    )


class SQLModelHabitRepository:
    """SQLModel-based habit repository implementation."""

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def _detach(self, session: Session, habit: Optional[Habit]) -> Optional[Habit]:
        if habit is None:
            return None
        session.expunge(habit)
        return restore_utc(habit, _HABIT_INSTANTS)

    def get_by_id(self, habit_id: int, *, user_id: str) -> Optional[Habit]:
        """Retrieve a live habit owned by ``user_id``."""
        with self.session_factory() as session:
            return self._detach(session, session.exec(_live_habit(habit_id, user_id)).first())

    def list_for_user(self, *, user_id: str, filters: HabitFilters) -> HabitPage:
        """Filtered, sorted, paginated habits of a user."""
        with self.session_factory() as session:
            statement = select(Habit).where(
                Habit.user_id == user_id, col(Habit.deleted_at).is_(None)
            )
            if filters.status is not None:
                statement = statement.where(Habit.status == filters.status)
            if filters.kind is not None:
                statement = statement.where(Habit.frequency_kind == filters.kind)
            if filters.search and filters.search.strip():
                term = filters.search.strip()
                statement = statement.where(
                    or_(
                        col(Habit.name).icontains(term, autoescape=True),
                        col(Habit.description).icontains(term, autoescape=True),
                    )
                )

            total = session.exec(
                select(func.count()).select_from(statement.subquery())
            ).one()

            if filters.sort is HabitSort.NAME:
                statement = statement.order_by(col(Habit.name), col(Habit.id))
            elif filters.sort is HabitSort.STATUS:
                statement = statement.order_by(col(Habit.status), col(Habit.name), col(Habit.id))
            else:
                statement = statement.order_by(
                    col(Habit.next_due_at).is_(None),
                    col(Habit.next_due_at),
                    col(Habit.name),
                    col(Habit.id),
                )

            offset = (filters.page - 1) * filters.page_size
            rows = list(session.exec(statement.offset(offset).limit(filters.page_size)).all())
            session.expunge_all()
            return HabitPage(
                items=[restore_utc(row, _HABIT_INSTANTS) for row in rows],
                total=total,
                page=filters.page,
                page_size=filters.page_size,
            )

    def count_for_user(self, *, user_id: str, status: Optional[HabitStatus] = None) -> int:
        with self.session_factory() as session:
            statement = select(func.count()).select_from(Habit).where(
                Habit.user_id == user_id, col(Habit.deleted_at).is_(None)
            )
            if status is not None:
                statement = statement.where(Habit.status == status)
            return session.exec(statement).one()

    def create(self, habit: Habit, *, user_id: str) -> Habit:
        """Create a new habit."""
        with self.session_factory() as session:
            habit.user_id = user_id
            session.add(habit)
            session.commit()
            session.refresh(habit)
            return self._detach(session, habit)

    def update(
        self,
        habit_id: int,
        *,
        user_id: str,
        changes: dict[str, Any],
        expected_version: Optional[int] = None,
        updated_at: Optional[datetime] = None,
    ) -> Habit:
        """Apply a field-level partial update and bump ``version``.

        With ``expected_version`` the write only lands if nobody else updated
        the row since it was read; otherwise ConflictError.
        """
        with self.session_factory() as session:
            statement = update(Habit).where(
                col(Habit.id) == habit_id,
                col(Habit.user_id) == user_id,
                col(Habit.deleted_at).is_(None),
            )
            if expected_version is not None:
                statement = statement.where(col(Habit.version) == expected_version)
            values = dict(changes)
            values["version"] = col(Habit.version) + 1
            if updated_at is not None:
                values["updated_at"] = updated_at
            result = session.execute(statement.values(**values))
            if result.rowcount == 0:
                self._raise_missing_or_stale(session, habit_id, user_id)
            session.commit()
            row = session.exec(
                select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
            ).one()
            return self._detach(session, row)

    def soft_delete(
        self,
        habit_id: int,
        *,
        user_id: str,
        deleted_at: datetime,
        expected_version: Optional[int] = None,
    ) -> None:
        """Mark a habit deleted; it disappears from every owner-scoped lookup."""
        self.update(
            habit_id,
            user_id=user_id,
            changes={"deleted_at": deleted_at, "next_due_at": None},
            expected_version=expected_version,
            updated_at=deleted_at,
        )

    @staticmethod
    def _raise_missing_or_stale(session: Session, habit_id: int, user_id: str) -> None:
        if session.exec(_live_habit(habit_id, user_id)).first() is None:
            raise NotFoundError("Habit not found")
        raise ConflictError("Habit was modified concurrently; reload and retry")
