"""Service module exports."""

from . import (
    clock,
    completions,
    events,
    habits,
    recurrence,
    streaks,
    validation,
)

__all__ = [
    "clock",
    "completions",
    "events",
    "habits",
    "recurrence",
    "streaks",
    "validation",
]
