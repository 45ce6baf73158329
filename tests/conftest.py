"""Pytest configuration and shared fixtures for habitflow tests.

Provides an isolated SQLite database per test, a frozen clock, a recording
notifier, and factories for habits and completions.
"""

from __future__ import annotations

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
from sqlmodel import SQLModel, create_engine

from habitflow import models  # noqa: F401  (registers tables)
from habitflow.infra.database import create_session_factory
from habitflow.infra.repositories import SQLModelCompletionRepository, SQLModelHabitRepository
from habitflow.services.clock import FixedClock
from habitflow.services.completions import CompletionService
from habitflow.services.events import EventKind
from habitflow.services.habits import HabitInput, HabitService

# Wednesday
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
USER_ID = "user-1"


class RecordingNotifier:
    """Notifier that keeps every published event in memory."""

    def __init__(self):
        self.events: list[tuple[EventKind, dict[str, Any]]] = []

    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        self.events.append((kind, payload))

    def kinds(self) -> list[EventKind]:
        return [kind for kind, _ in self.events]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated SQLite database file for each test.

    Yields:
        Engine: SQLModel engine connected to test database
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory matching the one repositories receive in production."""
    return create_session_factory(db_engine)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def habit_repo(session_factory) -> SQLModelHabitRepository:
    return SQLModelHabitRepository(session_factory)


@pytest.fixture
def completion_repo(session_factory) -> SQLModelCompletionRepository:
    return SQLModelCompletionRepository(session_factory)


@pytest.fixture
def habit_service(habit_repo, clock, notifier) -> HabitService:
    return HabitService(habit_repo, clock, notifier)


@pytest.fixture
def completion_service(habit_repo, completion_repo, clock, notifier) -> CompletionService:
    return CompletionService(habit_repo, completion_repo, clock, notifier)


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def habit_factory(habit_service):
    """Factory for creating habits through the lifecycle service.

    Returns:
        Callable: Function that creates and persists Habit instances
    """

    def _create_habit(
        name: str = "Morning run",
        kind: str = "DAILY",
        params: dict[str, Any] | None = None,
        user_id: str = USER_ID,
        **fields: Any,
    ):
        """Create a habit with sensible defaults (DAILY at 08:00 UTC)."""
        return habit_service.create_habit(
            user_id,
            HabitInput(
                name=name,
                frequency_kind=kind,
                frequency_params=params if params is not None else {"time": "08:00"},
                **fields,
            ),
        )

    return _create_habit
