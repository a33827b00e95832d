"""Polling scheduler that runs tasks in priority order."""
from __future__ import annotations

import enum
import logging
import threading
from datetime import timedelta
from types import TracebackType
from typing import Any, List, Optional, Type

from crony.config import SchedulerConfig
from crony.services.priority import Priority, PriorityTiers
from crony.tasks.dispatch import InvocationError
from crony.tasks.task import Duration, Task, TaskRunningError, as_interval

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class SchedulerStateError(RuntimeError):
    """Raised when a lifecycle method is called in the wrong state."""


class SchedulerHalted(RuntimeError):
    """The scheduling loop stopped because of an unrecoverable error."""

    def __init__(self, message: str, task: Optional[Task] = None) -> None:
        super().__init__(message)
        self.task = task


class Scheduler:
    """Run registered tasks from a background thread.

    Every ``poll_interval`` the loop walks the tasks (high, medium, then low
    priority) and runs each one that is due and not already running.
    Synchronous tasks run on the loop thread and hold up the rest of the pass.
    Asynchronous tasks get a thread of their own that :meth:`stop` does not
    wait for.

    A task whose callable does not fit its arguments is a programming error:
    the loop halts for good, the error is logged and :meth:`wait` re-raises
    it as :class:`SchedulerHalted`.  The same happens when a synchronous
    callable raises.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._poll_interval = as_interval(self._config.poll_interval)
        self._tasks = PriorityTiers()
        self._owns_cancel = cancel_event is None
        self._cancel = cancel_event if cancel_event is not None else threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        self._error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def poll_interval(self) -> timedelta:
        return self._poll_interval

    @property
    def error(self) -> Optional[BaseException]:
        """The error that halted the loop, if any."""

        return self._error

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def set_poll_interval(self, interval: Duration) -> "Scheduler":
        """Configure the sleep between two passes over the tasks."""

        self._poll_interval = as_interval(interval)
        return self

    def schedule(self, task: Task, priority: Any = Priority.MEDIUM) -> Task:
        """Register ``task`` at ``priority``; unknown priorities mean medium."""

        tier = self._tasks.add(task, priority)
        logger.debug("Scheduled task %s at %s priority", task.name or "<unnamed>", tier.name.lower())
        return task

    def tasks(self) -> List[Task]:
        """Return the registered tasks in scan order."""

        return self._tasks.ordered()

    def priority_of(self, task: Task) -> Priority:
        return self._tasks.tier_of(task)

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the scheduling loop on a background thread and return."""

        with self._state_lock:
            if self._state is not SchedulerState.IDLE:
                raise SchedulerStateError(f"cannot start a scheduler that is {self._state.value}")
            self._thread = threading.Thread(target=self._loop, name="crony-scheduler", daemon=True)
            self._state = SchedulerState.RUNNING
            self._thread.start()
        logger.info(
            "Scheduler started with %d task(s), polling every %.3fs",
            len(self._tasks),
            self._poll_interval.total_seconds(),
        )

    def stop(self) -> None:
        """Signal cancellation and block until the loop thread has exited.

        When the scheduler was built around an external ``cancel_event`` the
        event is left alone and this only waits for the loop to notice it.
        Calling ``stop`` more than once is harmless.
        """

        with self._state_lock:
            if self._state is SchedulerState.IDLE:
                self._state = SchedulerState.STOPPED
                return
            already_stopped = self._state is SchedulerState.STOPPED
            if self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.STOPPING
            thread = self._thread
        if self._owns_cancel:
            self._cancel.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        with self._state_lock:
            self._state = SchedulerState.STOPPED
        if not already_stopped:
            logger.info("Scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the loop exits; re-raise the error that halted it.

        Returns ``False`` if ``timeout`` elapsed first.
        """

        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                return False
        if self._error is not None:
            if isinstance(self._error, SchedulerHalted):
                raise self._error
            raise SchedulerHalted(f"scheduler halted: {self._error}") from self._error
        return True

    def __enter__(self) -> "Scheduler":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    def run_once(self) -> None:
        """Make a single pass over the tasks, running those that are due.

        Returns early as soon as cancellation is observed between tasks.
        Raises :class:`SchedulerHalted` when a task is misconfigured.
        """

        for task in self._tasks.ordered():
            if self._cancel.is_set():
                return
            if not task.should_run():
                continue
            if task.is_running():
                logger.debug("Task %s still running, skipping this pass", task.name or "<unnamed>")
                continue
            try:
                task.run()
            except TaskRunningError:
                logger.debug("Task %s started elsewhere, skipping this pass", task.name or "<unnamed>")
            except InvocationError as exc:
                raise SchedulerHalted(f"task {task.name!r} cannot run: {exc}", task=task) from exc

    def _loop(self) -> None:
        try:
            while not self._cancel.is_set():
                self.run_once()
                self._cancel.wait(self._poll_interval.total_seconds())
        except Exception as exc:
            self._error = exc
            logger.exception("Scheduler halted")
        finally:
            with self._state_lock:
                self._state = SchedulerState.STOPPED


__all__ = ["Scheduler", "SchedulerHalted", "SchedulerState", "SchedulerStateError"]
