"""Schedulable unit of work."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from crony.tasks.dispatch import Invocation

logger = logging.getLogger(__name__)

Duration = Union[timedelta, int, float]


class TaskRunningError(RuntimeError):
    """Raised when ``run`` is called while a run of the same task is in flight."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_interval(value: Duration) -> timedelta:
    """Normalise ``value`` (a timedelta or a number of seconds) to a positive timedelta."""

    if isinstance(value, timedelta):
        interval = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        interval = timedelta(seconds=float(value))
    else:
        raise TypeError(f"unsupported interval value: {value!r}")
    if interval <= timedelta(0):
        raise ValueError("interval must be positive")
    return interval


def _as_timestamp(value: datetime) -> datetime:
    if not isinstance(value, datetime):
        raise TypeError(f"unsupported timestamp value: {value!r}")
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc)


class Task:
    """A callable, its arguments and the timing state that decides when it runs.

    A task is either one-shot (:meth:`schedule_at`) or recurring
    (:meth:`every`).  Configuration methods return the task so calls can be
    chained::

        Task("cleanup").with_callable(cleanup).with_arguments(path).every(60)

    Synchronous tasks run in the caller's thread.  Asynchronous tasks are
    started on a daemon thread and :meth:`run` returns as soon as the thread
    is launched.  Only one run of a task is ever in flight.
    """

    def __init__(
        self,
        name: str = "",
        func: Optional[Callable[..., Any]] = None,
        *,
        args: tuple = (),
        kwargs: Optional[dict] = None,
        run_at: Optional[datetime] = None,
        interval: Optional[Duration] = None,
        asynchronous: bool = False,
    ) -> None:
        self.name = name
        self._invocation = Invocation(func, tuple(args), dict(kwargs or {}))
        self._lock = threading.RLock()
        self._next_run: Optional[datetime] = None
        self._last_run: Optional[datetime] = None
        self._interval: Optional[timedelta] = None
        self._asynchronous = bool(asynchronous)
        self._running = False
        if run_at is not None:
            self.schedule_at(run_at)
        if interval is not None:
            self.every(interval)

    # ------------------------------------------------------------------
    def with_callable(self, func: Callable[..., Any]) -> "Task":
        """Set the callable executed by the task."""

        self._invocation.target = func
        return self

    def with_arguments(self, *args: Any, **kwargs: Any) -> "Task":
        """Set the arguments passed to the callable."""

        self._invocation.args = args
        self._invocation.kwargs = kwargs
        return self

    def schedule_at(self, when: datetime) -> "Task":
        """Run the task once at ``when``.  Naive datetimes are local time."""

        self._next_run = _as_timestamp(when)
        return self

    def every(self, interval: Duration) -> "Task":
        """Make the task recurring.

        The first run happens ``interval`` from now unless a run time was
        already set with :meth:`schedule_at`.
        """

        self._interval = as_interval(interval)
        if self._next_run is None:
            self._next_run = utcnow() + self._interval
        return self

    def set_async(self, enabled: bool = True) -> "Task":
        """Run the callable on its own thread instead of the caller's."""

        self._asynchronous = bool(enabled)
        return self

    # ------------------------------------------------------------------
    @property
    def func(self) -> Any:
        return self._invocation.target

    @property
    def next_run(self) -> Optional[datetime]:
        return self._next_run

    @property
    def last_run(self) -> Optional[datetime]:
        return self._last_run

    @property
    def interval(self) -> Optional[timedelta]:
        return self._interval

    @property
    def is_recurring(self) -> bool:
        return self._interval is not None

    @property
    def asynchronous(self) -> bool:
        return self._asynchronous

    def is_running(self) -> bool:
        return self._running

    def should_run(self) -> bool:
        """Return ``True`` if the task is due."""

        with self._lock:
            return self._next_run is not None and self._next_run <= utcnow()

    def validate(self) -> None:
        """Raise an :class:`~crony.tasks.dispatch.InvocationError` if the task cannot run."""

        self._invocation.validate()

    def run(self) -> None:
        """Run the task now.

        Raises the matching :class:`~crony.tasks.dispatch.InvocationError`
        without touching the schedule when the callable and its arguments do
        not fit.  Exceptions raised by a synchronous callable propagate to the
        caller.
        """

        self._invocation.validate()
        with self._lock:
            if self._running:
                raise TaskRunningError(f"task {self.name!r} is already running")
            self._running = True
            self._update_schedule()
            if self._asynchronous:
                self._launch()
                return
            logger.debug("Task %s running", self.name or "<unnamed>")
            try:
                self._invocation.invoke()
            finally:
                self._running = False

    # ------------------------------------------------------------------
    def _update_schedule(self) -> None:
        self._last_run = utcnow()
        self._next_run = None
        if self._interval is not None:
            self._next_run = self._last_run + self._interval

    def _launch(self) -> None:
        thread = threading.Thread(
            target=self._run_detached,
            name=f"task-{self.name}" if self.name else None,
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            self._running = False
            raise
        logger.debug("Task %s launched on %s", self.name or "<unnamed>", thread.name)

    def _run_detached(self) -> None:
        try:
            self._invocation.invoke()
        finally:
            self._running = False

    def __repr__(self) -> str:
        mode = "async" if self._asynchronous else "sync"
        return (
            f"Task(name={self.name!r}, mode={mode}, next_run={self._next_run!r}, "
            f"interval={self._interval!r})"
        )


__all__ = ["Duration", "Task", "TaskRunningError", "as_interval", "utcnow"]
