"""crony: an embeddable, in-process task scheduler."""

from .cli import main as cli_main
from .config import CronyConfig, SchedulerConfig, TaskDefinition
from .config_loader import load_config
from .services import (
    Priority,
    Scheduler,
    SchedulerHalted,
    SchedulerState,
    SchedulerStateError,
    build_scheduler,
)
from .tasks import (
    ArgumentCountError,
    ArgumentTypeError,
    InvocationError,
    NotCallableError,
    Task,
    TaskRunningError,
)

__all__ = [
    "ArgumentCountError",
    "ArgumentTypeError",
    "CronyConfig",
    "InvocationError",
    "NotCallableError",
    "Priority",
    "Scheduler",
    "SchedulerConfig",
    "SchedulerHalted",
    "SchedulerState",
    "SchedulerStateError",
    "Task",
    "TaskDefinition",
    "TaskRunningError",
    "build_scheduler",
    "cli_main",
    "load_config",
]
