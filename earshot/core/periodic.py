"""
Fixed-rate repeating task on a background thread.

Every firing runs inside an error boundary: a failure is logged and
reported, and the task tries again on the next tick. After too many
consecutive failures the task gives up and enters the FAULTED state
instead of dying silently.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional


class TaskState(Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    FAULTED = "faulted"


class PeriodicTask:
    """
    Calls ``callback`` every ``interval`` seconds until cancelled.

    Firings never overlap because they all run on the same thread. When
    a firing overruns its slot, the missed slots are skipped rather than
    run back to back.

    Usage:
        task = PeriodicTask(do_work, interval=0.5, initial_delay=0.001)
        task.start()
        ...
        task.cancel()
        task.join(timeout=2.0)
    """

    def __init__(
        self,
        callback: Callable[[], None],
        interval: float,
        initial_delay: float = 0.0,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_fault: Optional[Callable[[Exception], None]] = None,
        max_consecutive_failures: int = 3,
        name: str = "periodic-task",
    ):
        """
        Args:
            callback: Work to run on every firing
            interval: Seconds between firings
            initial_delay: Seconds before the first firing
            on_error: Called with the exception of every failed firing
            on_fault: Called once when the failure limit is reached
            max_consecutive_failures: Failures in a row before FAULTED
            name: Thread name, also used for the logger
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")

        self.callback = callback
        self.interval = interval
        self.initial_delay = max(initial_delay, 0.0)
        self.on_error = on_error
        self.on_fault = on_fault
        self.max_consecutive_failures = max_consecutive_failures
        self.name = name
        self.logger = logging.getLogger(f"periodic.{name}")

        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = TaskState.PENDING
        self._state_lock = threading.Lock()
        self._fire_count = 0
        self._consecutive_failures = 0
        self._last_error: Optional[Exception] = None

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def fire_count(self) -> int:
        """Number of firings started so far."""
        return self._fire_count

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        """Schedule the task. A task can only be started once."""
        with self._state_lock:
            if self._state is not TaskState.PENDING:
                raise RuntimeError(f"Task {self.name} already {self._state.value}")
            self._state = TaskState.SCHEDULED
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        self.logger.debug(
            f"Scheduled every {self.interval:.3f}s after {self.initial_delay:.3f}s"
        )

    def cancel(self) -> None:
        """
        Cancel future firings.

        A firing already in progress is not interrupted; use join() to
        wait for it.
        """
        self._cancelled.set()
        with self._state_lock:
            if self._state in (TaskState.PENDING, TaskState.SCHEDULED):
                self._state = TaskState.CANCELLED

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the worker thread to exit.

        Returns:
            True if the thread has finished (or never started)
        """
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        next_fire = time.monotonic() + self.initial_delay

        while not self._cancelled.wait(max(next_fire - time.monotonic(), 0.0)):
            self._fire_count += 1
            if not self._fire_once():
                return

            next_fire += self.interval
            now = time.monotonic()
            if next_fire < now:
                skipped = int((now - next_fire) // self.interval) + 1
                self.logger.debug(f"Firing overran, skipping {skipped} slot(s)")
                next_fire += skipped * self.interval

    def _fire_once(self) -> bool:
        """Run one firing. Returns False once the task has faulted."""
        try:
            self.callback()
        except Exception as e:
            self._last_error = e
            self._consecutive_failures += 1
            self.logger.exception(
                f"Firing {self._fire_count} failed "
                f"({self._consecutive_failures}/{self.max_consecutive_failures})"
            )
            if self.on_error is not None:
                self.on_error(e)

            if self._consecutive_failures >= self.max_consecutive_failures:
                with self._state_lock:
                    if self._state is TaskState.CANCELLED:
                        return False
                    self._state = TaskState.FAULTED
                self._cancelled.set()
                self.logger.error(f"Task {self.name} faulted after repeated failures")
                if self.on_fault is not None:
                    self.on_fault(e)
                return False
            return True

        self._consecutive_failures = 0
        return True
