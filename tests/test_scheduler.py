import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from crony.config import SchedulerConfig
from crony.services import (
    Priority,
    Scheduler,
    SchedulerHalted,
    SchedulerState,
    SchedulerStateError,
)
from crony.tasks import NotCallableError, Task


def _past() -> datetime:
    return datetime.now(timezone.utc) - timedelta(seconds=1)


class SchedulerScanTests(unittest.TestCase):
    def test_tasks_run_in_priority_order(self):
        order = []
        scheduler = Scheduler()
        scheduler.schedule(Task("low", order.append, args=("low",), run_at=_past()), Priority.LOW)
        scheduler.schedule(Task("high", order.append, args=("high",), run_at=_past()), Priority.HIGH)
        scheduler.schedule(Task("medium", order.append, args=("medium",), run_at=_past()), "medium")
        scheduler.run_once()
        self.assertEqual(order, ["high", "medium", "low"])
        self.assertEqual([t.name for t in scheduler.tasks()], ["high", "medium", "low"])

    def test_only_due_tasks_run(self):
        calls = []
        scheduler = Scheduler()
        scheduler.schedule(Task("due", calls.append, args=("due",), run_at=_past()))
        scheduler.schedule(Task("later", calls.append, args=("later",)).every(60))
        scheduler.schedule(Task("never", calls.append, args=("never",)))
        scheduler.run_once()
        scheduler.run_once()
        self.assertEqual(calls, ["due"])

    def test_running_task_is_skipped(self):
        release = threading.Event()
        started = threading.Event()
        calls = []

        def work():
            calls.append(1)
            started.set()
            release.wait(5)

        task = Task("slow", work, run_at=_past(), asynchronous=True)
        scheduler = Scheduler()
        scheduler.schedule(task)
        try:
            scheduler.run_once()
            self.assertTrue(started.wait(5))
            task.schedule_at(_past())
            scheduler.run_once()
        finally:
            release.set()
        self.assertEqual(calls, [1])

    def test_cancellation_is_checked_between_tasks(self):
        cancel = threading.Event()
        calls = []
        scheduler = Scheduler(cancel_event=cancel)
        scheduler.schedule(Task("first", cancel.set, run_at=_past()), Priority.HIGH)
        scheduler.schedule(Task("second", calls.append, args=(1,), run_at=_past()), Priority.LOW)
        scheduler.run_once()
        self.assertTrue(scheduler.cancelled)
        self.assertEqual(calls, [])

    def test_misconfigured_task_halts_the_scan(self):
        calls = []
        broken = Task("broken", run_at=_past())
        scheduler = Scheduler()
        scheduler.schedule(broken, Priority.HIGH)
        scheduler.schedule(Task("after", calls.append, args=(1,), run_at=_past()), Priority.LOW)
        with self.assertRaises(SchedulerHalted) as ctx:
            scheduler.run_once()
        self.assertIs(ctx.exception.task, broken)
        self.assertIsInstance(ctx.exception.__cause__, NotCallableError)
        self.assertEqual(calls, [])


class SchedulerLifecycleTests(unittest.TestCase):
    def test_default_poll_interval(self):
        self.assertEqual(Scheduler().poll_interval, timedelta(milliseconds=500))
        config = SchedulerConfig(poll_interval=timedelta(seconds=2))
        self.assertEqual(Scheduler(config).poll_interval, timedelta(seconds=2))
        scheduler = Scheduler().set_poll_interval(0.1)
        self.assertEqual(scheduler.poll_interval, timedelta(milliseconds=100))
        with self.assertRaises(ValueError):
            scheduler.set_poll_interval(0)

    def test_recurring_task_invocation_count(self):
        calls = []
        active = []
        overlaps = []

        def tick():
            if active:
                overlaps.append(1)
            active.append(1)
            calls.append(time.monotonic())
            active.pop()

        scheduler = Scheduler().set_poll_interval(timedelta(milliseconds=100))
        scheduler.schedule(Task("tick", tick).every(timedelta(milliseconds=200)), Priority.MEDIUM)
        scheduler.start()
        time.sleep(2.2)
        scheduler.stop()
        self.assertGreaterEqual(len(calls), 10)
        self.assertLessEqual(len(calls), 12)
        self.assertEqual(overlaps, [])

    def test_async_task_never_overlaps_itself(self):
        lock = threading.Lock()
        counter = [0]
        observed = []
        calls = []

        def slow():
            with lock:
                observed.append(counter[0])
                counter[0] += 1
                observed.append(counter[0])
            calls.append(1)
            time.sleep(0.2)
            with lock:
                counter[0] -= 1
                observed.append(counter[0])

        scheduler = Scheduler().set_poll_interval(0.1)
        scheduler.schedule(Task("slow", slow).every(0.1).set_async())
        scheduler.start()
        time.sleep(2)
        scheduler.stop()
        self.assertGreaterEqual(len(calls), 3)
        self.assertTrue(set(observed) <= {0, 1}, observed)
        self.assertEqual(observed[0], 0)

    def test_priorities_with_different_intervals(self):
        seen = []
        scheduler = Scheduler().set_poll_interval(0.05)
        scheduler.schedule(Task("high", seen.append, args=("high",)).every(0.1), Priority.HIGH)
        scheduler.schedule(Task("medium", seen.append, args=("medium",)).every(0.2), Priority.MEDIUM)
        scheduler.schedule(Task("low", seen.append, args=("low",)).every(0.3), Priority.LOW)
        with scheduler:
            time.sleep(1)
        self.assertGreater(seen.count("high"), seen.count("medium"))
        self.assertGreaterEqual(seen.count("medium"), seen.count("low"))
        self.assertGreaterEqual(seen.count("low"), 1)

    def test_stop_waits_for_in_flight_sync_task(self):
        started = threading.Event()
        finished = threading.Event()

        def work():
            started.set()
            time.sleep(0.3)
            finished.set()

        scheduler = Scheduler().set_poll_interval(0.05)
        scheduler.schedule(Task("sync", work, run_at=_past()))
        scheduler.start()
        self.assertTrue(started.wait(5))
        scheduler.stop()
        self.assertTrue(finished.is_set())
        self.assertIs(scheduler.state, SchedulerState.STOPPED)
        self.assertTrue(scheduler.wait(0))

    def test_stop_is_idempotent(self):
        scheduler = Scheduler()
        self.assertIs(scheduler.state, SchedulerState.IDLE)
        scheduler.start()
        self.assertIs(scheduler.state, SchedulerState.RUNNING)
        scheduler.stop()
        scheduler.stop()
        self.assertIs(scheduler.state, SchedulerState.STOPPED)

    def test_stop_wakes_idle_sleep(self):
        scheduler = Scheduler().set_poll_interval(30)
        scheduler.start()
        time.sleep(0.05)
        started = time.monotonic()
        scheduler.stop()
        self.assertLess(time.monotonic() - started, 5)

    def test_stop_before_start(self):
        scheduler = Scheduler()
        scheduler.stop()
        self.assertIs(scheduler.state, SchedulerState.STOPPED)
        with self.assertRaises(SchedulerStateError):
            scheduler.start()

    def test_start_twice_is_rejected(self):
        scheduler = Scheduler()
        scheduler.start()
        try:
            with self.assertRaises(SchedulerStateError):
                scheduler.start()
        finally:
            scheduler.stop()

    def test_tasks_added_after_start_are_picked_up(self):
        ran = threading.Event()
        scheduler = Scheduler().set_poll_interval(0.05)
        with scheduler:
            time.sleep(0.1)
            scheduler.schedule(Task("late", ran.set, run_at=_past()))
            self.assertTrue(ran.wait(5))

    def test_context_manager_stops_when_body_raises(self):
        scheduler = Scheduler().set_poll_interval(0.05)
        with self.assertRaises(ValueError):
            with scheduler:
                self.assertIs(scheduler.state, SchedulerState.RUNNING)
                raise ValueError("body failed")
        self.assertIs(scheduler.state, SchedulerState.STOPPED)

    def test_external_cancel_event(self):
        cancel = threading.Event()
        calls = []
        scheduler = Scheduler(cancel_event=cancel).set_poll_interval(0.05)
        scheduler.schedule(Task("tick", calls.append, args=(1,)).every(0.1))
        scheduler.start()
        timer = threading.Timer(0.5, cancel.set)
        timer.start()
        self.assertTrue(scheduler.wait(5))
        self.assertIs(scheduler.state, SchedulerState.STOPPED)
        self.assertGreaterEqual(len(calls), 2)

    def test_stop_does_not_signal_external_cancel_event(self):
        cancel = threading.Event()
        scheduler = Scheduler(cancel_event=cancel).set_poll_interval(0.05)
        scheduler.start()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        started = time.monotonic()
        scheduler.stop()
        self.assertGreaterEqual(time.monotonic() - started, 0.2)
        self.assertIs(scheduler.state, SchedulerState.STOPPED)


class SchedulerFatalErrorTests(unittest.TestCase):
    def test_misconfigured_task_halts_the_loop(self):
        broken = Task("broken").every(0.05)
        scheduler = Scheduler().set_poll_interval(0.05)
        scheduler.schedule(broken)
        with self.assertLogs("crony.services.scheduler", level="ERROR"):
            scheduler.start()
            with self.assertRaises(SchedulerHalted) as ctx:
                scheduler.wait(5)
        self.assertIs(ctx.exception.task, broken)
        self.assertIs(scheduler.state, SchedulerState.STOPPED)
        self.assertIsInstance(scheduler.error, SchedulerHalted)
        scheduler.stop()

    def test_sync_callable_fault_halts_the_loop(self):
        def explode():
            raise ValueError("boom")

        scheduler = Scheduler().set_poll_interval(0.05)
        scheduler.schedule(Task("explode", explode, run_at=_past()))
        with self.assertLogs("crony.services.scheduler", level="ERROR"):
            scheduler.start()
            with self.assertRaises(SchedulerHalted) as ctx:
                scheduler.wait(5)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)
        self.assertIsInstance(scheduler.error, ValueError)

    def test_async_callable_fault_is_isolated(self):
        calls = []

        def explode():
            raise ValueError("boom")

        scheduler = Scheduler().set_poll_interval(0.05)
        scheduler.schedule(Task("explode", explode, asynchronous=True).every(0.05), Priority.HIGH)
        scheduler.schedule(Task("steady", calls.append, args=(1,)).every(0.05), Priority.LOW)
        with mock.patch.object(threading, "excepthook") as hook:
            scheduler.start()
            time.sleep(0.5)
            scheduler.stop()
        self.assertIsNone(scheduler.error)
        self.assertGreaterEqual(len(calls), 2)
        self.assertTrue(hook.called)


if __name__ == "__main__":
    unittest.main()
