"""Repository protocol definitions for domain layer."""

from .habit import CompletionRepository, HabitFilters, HabitPage, HabitRepository, HabitSort

__all__ = [
    "CompletionRepository",
    "HabitFilters",
    "HabitPage",
    "HabitRepository",
    "HabitSort",
]
