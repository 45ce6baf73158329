"""Error taxonomy surfaced by the habit services.

Callers branch on :attr:`HabitError.kind`, so the four kinds are stable and
never collapsed into a generic failure. Storage errors that are not one of
these propagate unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Iterable


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATE = "INVALID_STATE"
    CONFLICT = "CONFLICT"


class HabitError(Exception):
    """Base class for all domain errors raised by habitflow."""

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class NotFoundError(HabitError, LookupError):
    """Habit or completion is absent, soft-deleted, or owned by someone else."""

    kind = ErrorKind.NOT_FOUND


class InvalidInputError(HabitError, ValueError):
    """Input failed validation; ``violations`` lists every broken rule."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, violations: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.violations = list(violations) or [message]

    @classmethod
    def from_violations(cls, violations: list[str]) -> "InvalidInputError":
        return cls("; ".join(violations), violations)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["violations"] = list(self.violations)
        return data


class InvalidStateError(HabitError):
    """Operation is not allowed in the record's current state."""

    kind = ErrorKind.INVALID_STATE


class ConflictError(HabitError):
    """Duplicate completion or a concurrent write won the race."""

    kind = ErrorKind.CONFLICT


__all__ = [
    "ConflictError",
    "ErrorKind",
    "HabitError",
    "InvalidInputError",
    "InvalidStateError",
    "NotFoundError",
]
