"""Scheduling services."""

from .bootstrap import build_scheduler, build_task, build_tasks, resolve_target
from .priority import Priority, PriorityTiers
from .scheduler import Scheduler, SchedulerHalted, SchedulerState, SchedulerStateError

__all__ = [
    "Priority",
    "PriorityTiers",
    "Scheduler",
    "SchedulerHalted",
    "SchedulerState",
    "SchedulerStateError",
    "build_scheduler",
    "build_task",
    "build_tasks",
    "resolve_target",
]
