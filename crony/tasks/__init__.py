"""Task definitions and validated invocation."""

from .dispatch import (
    ArgumentCountError,
    ArgumentTypeError,
    Invocation,
    InvocationError,
    NotCallableError,
)
from .task import Task, TaskRunningError

__all__ = [
    "ArgumentCountError",
    "ArgumentTypeError",
    "Invocation",
    "InvocationError",
    "NotCallableError",
    "Task",
    "TaskRunningError",
]
