"""Outbound notification port for habit state transitions.

Publishing is fire-and-forget: it happens after the mutation has committed,
its outcome is never awaited, and a failing notifier cannot undo or delay the
write that triggered it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from ..logging_config import get_logger

logger = get_logger("events")


class EventKind(str, Enum):
    HABIT_CREATED = "habit.created"
    HABIT_UPDATED = "habit.updated"
    HABIT_DELETED = "habit.deleted"
    HABIT_COMPLETED = "habit.completed"
    COMPLETION_UNDONE = "habit.completion_undone"


class EventNotifier(Protocol):
    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        ...


class LoggingEventNotifier:
    """Default notifier: records each event in the application log."""

    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        logger.info("Publishing %s event", kind.value, extra={"event": kind.value, "payload": payload})


def notify(notifier: EventNotifier, kind: EventKind, payload: dict[str, Any]) -> None:
    """Publish without letting notifier failures reach the caller."""

    try:
        notifier.publish(kind, payload)
    except Exception:
        logger.exception("Event notifier failed", extra={"event": kind.value})


__all__ = ["EventKind", "EventNotifier", "LoggingEventNotifier", "notify"]
