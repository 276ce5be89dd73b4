"""Result type returned by ScriptManager operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TaskResult(Generic[T]):
    """Outcome of a manager operation.

    Attributes:
        success: Whether the operation succeeded.
        message: Human-readable summary, printed as-is by the controller.
        payload: Optional data produced by the operation.
    """

    success: bool
    message: str
    payload: T | None = None

    def __str__(self) -> str:
        return self.message

    @classmethod
    def ok(cls, message: str, payload: T | None = None) -> TaskResult[T]:
        return cls(success=True, message=message, payload=payload)

    @classmethod
    def fail(cls, message: str) -> TaskResult[T]:
        return cls(success=False, message=message)
