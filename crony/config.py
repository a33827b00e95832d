"""Configuration schema for crony.

The dataclasses here describe a scheduler and the tasks it should run when
they are declared in a file rather than built in code.  Hosts embedding the
scheduler directly only ever need :class:`SchedulerConfig`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Sequence, Union

DEFAULT_POLL_INTERVAL = timedelta(milliseconds=500)


@dataclass(slots=True)
class SchedulerConfig:
    """Timing knobs for the scheduling loop."""

    poll_interval: timedelta = DEFAULT_POLL_INTERVAL


@dataclass(slots=True)
class TaskDefinition:
    """Declarative description of a task.

    ``target`` is an import path such as ``"package.module:function"``.
    """

    name: str
    target: str
    args: Sequence[Any] = field(default_factory=tuple)
    kwargs: Mapping[str, Any] = field(default_factory=dict)
    every: Optional[timedelta] = None
    at: Optional[datetime] = None
    asynchronous: bool = False
    priority: Union[str, int] = "medium"


@dataclass(slots=True)
class CronyConfig:
    """Top-level configuration bundle."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    tasks: Sequence[TaskDefinition] = field(default_factory=tuple)
