"""Build schedulers from declarative configuration."""
from __future__ import annotations

import importlib
import logging
import threading
from typing import Any, List, Optional, Tuple

from crony.config import CronyConfig, TaskDefinition
from crony.services.scheduler import Scheduler
from crony.tasks.task import Task

logger = logging.getLogger(__name__)


def resolve_target(path: str) -> Any:
    """Import the object named by ``path``.

    Both ``"package.module:attr.sub"`` and ``"package.module.attr"`` are
    accepted.  For the dotted form the longest importable module prefix wins.
    """

    if ":" in path:
        module_name, _, attr_path = path.partition(":")
        module = importlib.import_module(module_name)
        return _walk(module, attr_path, path)

    parts = path.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as exc:
            if exc.name is not None and not module_name.startswith(exc.name):
                raise
            continue
        return _walk(module, ".".join(parts[split:]), path)
    raise ImportError(f"cannot import target {path!r}")


def _walk(obj: Any, attr_path: str, path: str) -> Any:
    for attr in filter(None, attr_path.split(".")):
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            raise AttributeError(f"target {path!r} has no attribute {attr!r}") from None
    return obj


def build_task(definition: TaskDefinition) -> Task:
    """Create a :class:`Task` from its declarative definition."""

    task = Task(
        definition.name,
        resolve_target(definition.target),
        args=tuple(definition.args),
        kwargs=dict(definition.kwargs),
        asynchronous=definition.asynchronous,
    )
    if definition.at is not None:
        task.schedule_at(definition.at)
    if definition.every is not None:
        task.every(definition.every)
    return task


def build_tasks(config: CronyConfig) -> List[Tuple[TaskDefinition, Task]]:
    """Build every configured task, paired with its definition, in file order."""

    return [(definition, build_task(definition)) for definition in config.tasks]


def build_scheduler(
    config: CronyConfig,
    *,
    cancel_event: Optional[threading.Event] = None,
    tasks: Optional[List[Tuple[TaskDefinition, Task]]] = None,
) -> Scheduler:
    """Create a scheduler with every configured task registered.

    ``tasks`` lets a caller pass pairs already built by :func:`build_tasks`.
    """

    if tasks is None:
        tasks = build_tasks(config)
    scheduler = Scheduler(config.scheduler, cancel_event=cancel_event)
    for definition, task in tasks:
        scheduler.schedule(task, definition.priority)
    logger.debug("Built scheduler with %d configured task(s)", len(tasks))
    return scheduler


__all__ = ["build_scheduler", "build_task", "build_tasks", "resolve_target"]
