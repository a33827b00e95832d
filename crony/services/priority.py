"""Priority tiers for scheduled tasks."""
from __future__ import annotations

import threading
from enum import IntEnum
from typing import Any, Dict, Iterator, List

from crony.tasks.task import Task


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 2
    HIGH = 4

    @classmethod
    def coerce(cls, value: Any) -> "Priority":
        """Map ``value`` to a tier.  Anything unrecognised is ``MEDIUM``."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                value = int(text)
            else:
                return cls.__members__.get(text.upper(), cls.MEDIUM)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return cls.MEDIUM
        return cls.MEDIUM


class PriorityTiers:
    """Tasks partitioned into high, medium and low tiers.

    Iteration order is high, then medium, then low, each tier in insertion
    order.  The ordered view is rebuilt on every call so tasks added later are
    always picked up.
    """

    def __init__(self) -> None:
        self._tiers: Dict[Priority, List[Task]] = {
            Priority.HIGH: [],
            Priority.MEDIUM: [],
            Priority.LOW: [],
        }
        self._lock = threading.Lock()

    def add(self, task: Task, priority: Any = Priority.MEDIUM) -> Priority:
        """Append ``task`` to its tier and return the tier it landed in."""

        tier = Priority.coerce(priority)
        with self._lock:
            self._tiers[tier].append(task)
        return tier

    def ordered(self) -> List[Task]:
        with self._lock:
            return [
                *self._tiers[Priority.HIGH],
                *self._tiers[Priority.MEDIUM],
                *self._tiers[Priority.LOW],
            ]

    def tier_of(self, task: Task) -> Priority:
        with self._lock:
            for tier, tasks in self._tiers.items():
                if any(candidate is task for candidate in tasks):
                    return tier
        raise KeyError(task)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.ordered())

    def __len__(self) -> int:
        with self._lock:
            return sum(len(tasks) for tasks in self._tiers.values())


__all__ = ["Priority", "PriorityTiers"]
