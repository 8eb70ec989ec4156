"""
Task ordering error taxonomy and operation results.

Engine and store code raise these; the task service catches them at its
boundary and hands them back inside an OperationResult.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class TaskError(Exception):
    """Base exception for task ordering errors."""
    code = "task_error"
    http_status = 500
    recoverable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'recoverable': self.recoverable,
            'context': self.context,
        }


class NotFoundError(TaskError):
    """Task is missing or belongs to another owner. The two are never distinguished."""
    code = "not_found"
    http_status = 404

    def __init__(self, task_id=None):
        super().__init__("Task not found", {'task_id': task_id} if task_id is not None else None)


class RangeError(TaskError):
    """Target position outside the destination bucket."""
    code = "position_out_of_range"
    http_status = 422

    def __init__(self, position: int, lower: int, upper: int):
        super().__init__(
            f"Position {position} is out of range [{lower}, {upper}]",
            {'position': position, 'min': lower, 'max': upper},
        )
        self.position = position
        self.lower = lower
        self.upper = upper


class TransientStoreError(TaskError):
    """Commit failed on conflict, timeout or unavailability. Nothing was applied."""
    code = "transient_store_error"
    http_status = 503
    recoverable = True


class InvariantViolation(TaskError):
    """A bucket's positions are not exactly 0..n-1. Programming error."""
    code = "invariant_violation"
    http_status = 500


@dataclass
class OperationResult(Generic[T]):
    """Outcome of one task service call: either a value or an error, never both."""
    value: Optional[T] = None
    error: Optional[TaskError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: TaskError) -> "OperationResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
