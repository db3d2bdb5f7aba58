"""
Display surfaces and UI-thread dispatchers.

A Display is a passive text surface with a single operation, set_text().
It is only ever written on the thread that owns the UI; background work
hands its updates to a Dispatcher, which runs them on that thread.
"""

import logging
import queue
import sys
import threading
from typing import Any, Callable, List, Optional, Protocol, TextIO, runtime_checkable


@runtime_checkable
class Display(Protocol):
    """Protocol for passive text surfaces."""

    def set_text(self, text: str) -> None:
        """Replace the displayed text."""
        ...


class Dispatcher(Protocol):
    """Runs a function on the UI-owning thread."""

    def __call__(self, fn: Callable[[], None]) -> None:
        ...


class TextWidgetDisplay:
    """
    Display backed by a tkinter widget.

    Works with a ``Text`` widget (content replaced, kept read-only) or any
    widget with a ``text`` option such as ``Label``.
    """

    def __init__(self, widget: Any):
        self.widget = widget

    def set_text(self, text: str) -> None:
        if hasattr(self.widget, "insert"):
            self.widget.config(state="normal")
            self.widget.delete("1.0", "end")
            self.widget.insert("1.0", text)
            self.widget.config(state="disabled")
        else:
            self.widget.config(text=text)


class ConsoleDisplay:
    """Display that prints each new text block to a stream."""

    def __init__(self, stream: Optional[TextIO] = None, separator: str = "-" * 40):
        self.stream = stream or sys.stdout
        self.separator = separator
        self._last: Optional[str] = None

    def set_text(self, text: str) -> None:
        # The classifier repeats itself every tick while nothing changes
        if text == self._last:
            return
        self._last = text
        print(self.separator, file=self.stream)
        print(text.rstrip("\n"), file=self.stream, flush=True)


class MemoryDisplay:
    """Display that records every update. Used by tests and headless runs."""

    def __init__(self):
        self.history: List[str] = []
        self._lock = threading.Lock()

    @property
    def text(self) -> str:
        with self._lock:
            return self.history[-1] if self.history else ""

    def set_text(self, text: str) -> None:
        with self._lock:
            self.history.append(text)


class TkDispatcher:
    """
    Dispatcher that runs work on the tkinter main loop.

    Worker threads only put work on a queue; the main loop drains it
    every ``poll_ms``. A worker therefore never waits on Tk, and the UI
    thread can join it without freezing the window.

    Must be created on the thread running the main loop.
    """

    def __init__(self, root: Any, poll_ms: int = 20):
        self.root = root
        self.poll_ms = poll_ms
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._job = self.root.after(self.poll_ms, self._poll)

    def __call__(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def _poll(self) -> None:
        try:
            while True:
                try:
                    fn = self._queue.get_nowait()
                except queue.Empty:
                    break
                fn()
        finally:
            self._job = self.root.after(self.poll_ms, self._poll)

    def close(self) -> None:
        """Stop polling. Work still queued is discarded."""
        if self._job is not None:
            self.root.after_cancel(self._job)
            self._job = None


class QueueDispatcher:
    """
    Dispatcher for console front ends.

    Background threads enqueue work; the main thread runs it by calling
    drain() or run_until().
    """

    def __init__(self):
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self.logger = logging.getLogger("dispatcher")

    def __call__(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def drain(self, timeout: Optional[float] = None) -> int:
        """
        Run queued work on the calling thread.

        Args:
            timeout: Seconds to wait for the first item (None: don't wait)

        Returns:
            Number of callables run
        """
        ran = 0
        block = timeout is not None
        while True:
            try:
                fn = self._queue.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return ran
            block = False
            fn()
            ran += 1

    def run_until(self, done: Callable[[], bool], poll: float = 0.1) -> None:
        """Keep draining until ``done()`` returns True."""
        while not done():
            self.drain(timeout=poll)
        self.drain()


class ImmediateDispatcher:
    """Runs work straight away on the calling thread."""

    def __call__(self, fn: Callable[[], None]) -> None:
        fn()
