"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sqlmodel import Session

from .config import BaseConfig
from .infra.database import create_db_engine, create_session_factory, init_database
from .infra.repositories import SQLModelCompletionRepository, SQLModelHabitRepository
from .logging_config import setup_logging
from .services.clock import Clock, SystemClock
from .services.completions import CompletionService
from .services.events import EventNotifier, LoggingEventNotifier
from .services.habits import HabitService


@dataclass
class AppContext:
    """Centralized application context with repositories and services."""

    # Configuration
    config: BaseConfig

    # Session factory
    session_factory: Callable[[], Session]

    # Repositories
    habit_repo: SQLModelHabitRepository
    completion_repo: SQLModelCompletionRepository

    # Collaborators
    clock: Clock
    notifier: EventNotifier

    # Services
    habit_service: HabitService
    completion_service: CompletionService


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    clock: Optional[Clock] = None,
    notifier: Optional[EventNotifier] = None,
) -> AppContext:
    """Create and initialize the application context."""

    if config is None:
        config = BaseConfig()

    setup_logging(config)

    engine = create_db_engine(config)
    init_database(engine)
    session_factory = create_session_factory(engine)

    habit_repo = SQLModelHabitRepository(session_factory)
    completion_repo = SQLModelCompletionRepository(session_factory)

    clock = clock or SystemClock()
    notifier = notifier or LoggingEventNotifier()

    habit_service = HabitService(
        habit_repo,
        clock,
        notifier,
        default_timezone=config.DEFAULT_TIMEZONE,
        default_page_size=config.DEFAULT_PAGE_SIZE,
        max_page_size=config.MAX_PAGE_SIZE,
    )
    completion_service = CompletionService(
        habit_repo,
        completion_repo,
        clock,
        notifier,
        undo_window=timedelta(hours=config.UNDO_WINDOW_HOURS),
    )

    return AppContext(
        config=config,
        session_factory=session_factory,
        habit_repo=habit_repo,
        completion_repo=completion_repo,
        clock=clock,
        notifier=notifier,
        habit_service=habit_service,
        completion_service=completion_service,
    )
