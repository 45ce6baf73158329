"""SQLModel table exports."""

from .habit import FrequencyKind, Habit, HabitCompletion, HabitStatus

__all__ = [
    "FrequencyKind",
    "Habit",
    "HabitCompletion",
    "HabitStatus",
]
