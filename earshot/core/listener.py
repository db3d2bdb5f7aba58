"""
Capture loop: owns the listening session and its periodic classification.

Design:
- One ListeningSession value bundles the classifier, buffer, capture
  handle and periodic task; it is created by start() and closed by stop()
- Display writes always go through the UI dispatcher and are tagged with
  the session generation, so a stopped session can never update the
  display
- Periodic failures are isolated by PeriodicTask; repeated failures move
  the listener to FAULTED and release the session
"""

import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from earshot.core.buffer import RollingAudioBuffer
from earshot.core.capture import AudioCapture
from earshot.core.classifier import AudioClassifier, create_classifier
from earshot.core.models import ListenerState
from earshot.core.periodic import PeriodicTask
from earshot.core.permission import MicrophonePermission, PermissionGate
from earshot.core.summary import format_summary, summarize
from earshot.ui.display import Dispatcher, Display
from earshot.utils.errors import (
    CaptureError,
    ClassificationError,
    EarshotError,
    ModelLoadError,
    PermissionDeniedError,
)

StatusCallback = Callable[[str], None]
StateCallback = Callable[[ListenerState], None]


@dataclass
class ListeningSession:
    """Everything one start/stop cycle owns."""

    generation: int
    classifier: AudioClassifier
    buffer: RollingAudioBuffer
    capture: AudioCapture
    task: Optional[PeriodicTask] = None

    def close(self, timeout: Optional[float] = None) -> bool:
        """
        Tear the session down: cancel, wait, stop capture, release model.

        Args:
            timeout: Seconds to wait for an in-flight firing

        Returns:
            False if an in-flight firing was still running at teardown
        """
        finished = True
        if self.task is not None:
            self.task.cancel()
            finished = self.task.join(timeout)
        try:
            self.capture.stop()
        finally:
            self.classifier.close()
        return finished


class SoundListener:
    """
    Starts and stops listening and runs the periodic classification pass.

    start() and stop() are meant to be called from the UI thread. All
    callbacks (display, status, state) are invoked on the UI thread.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        gate: PermissionGate,
        display: Display,
        dispatcher: Dispatcher,
        classifier_factory: Optional[Callable[[], AudioClassifier]] = None,
        on_status: Optional[StatusCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        """
        Initialize the listener.

        Args:
            config: Full configuration dictionary
            gate: Microphone permission gate
            display: Surface the summaries are written to
            dispatcher: Runs callables on the UI thread
            classifier_factory: Loads the classifier (defaults to the
                                configured model)
            on_status: Receives short user-facing messages
            on_state_change: Receives the new ListenerState on each change
        """
        self.config = config
        self.gate = gate
        self.display = display
        self.dispatcher = dispatcher
        self.classifier_factory = classifier_factory or functools.partial(
            create_classifier, config
        )
        self.on_status = on_status
        self.on_state_change = on_state_change
        self.logger = logging.getLogger("listener")

        schedule = config.get("schedule", {})
        self.interval = schedule.get("interval_ms", 500) / 1000.0
        self.initial_delay = schedule.get("initial_delay_ms", 1) / 1000.0
        self.max_consecutive_failures = schedule.get("max_consecutive_failures", 3)
        self.stop_timeout = schedule.get("stop_timeout_ms", 2000) / 1000.0

        capture = config.get("capture", {})
        self.device = capture.get("device")
        self.resample = capture.get("resample", True)

        self._lock = threading.RLock()
        self._state = ListenerState.IDLE
        self._session: Optional[ListeningSession] = None
        self._generation = 0
        self._active_generation: Optional[int] = None

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is ListenerState.RECORDING

    @property
    def session(self) -> Optional[ListeningSession]:
        return self._session

    def start(self) -> bool:
        """
        Start listening.

        Returns:
            True if recording started, False if the listener stays idle
        """
        with self._lock:
            if self._state is ListenerState.RECORDING:
                self.logger.warning("Start requested while already recording")
                return False

            try:
                self.gate.check()
            except PermissionDeniedError as e:
                self._report(str(e))
                return False

            try:
                classifier = self.classifier_factory()
            except ModelLoadError as e:
                self.logger.error(f"Model load failed: {e}")
                self._report(f"Error loading model: {e}")
                return False
            self._report("Model loaded successfully")

            buffer = classifier.create_input_buffer()
            capture = classifier.create_audio_capture(self.device, resample=self.resample)
            try:
                capture.start()
            except CaptureError as e:
                classifier.close()
                self.logger.error(f"Capture failed to start: {e}")
                self._report(f"Error starting microphone: {e.message}")
                return False

            self._generation += 1
            session = ListeningSession(
                generation=self._generation,
                classifier=classifier,
                buffer=buffer,
                capture=capture,
            )
            session.task = PeriodicTask(
                functools.partial(self._classify_once, session),
                interval=self.interval,
                initial_delay=self.initial_delay,
                on_error=functools.partial(self._on_task_error, session),
                on_fault=functools.partial(self._on_task_fault, session),
                max_consecutive_failures=self.max_consecutive_failures,
                name=f"classify-{session.generation}",
            )

            self._session = session
            self._active_generation = session.generation
            self._publish(session.generation, classifier.required_format.describe())
            session.task.start()
            self._set_state(ListenerState.RECORDING)
            self._report("Recording started")
            self.logger.info(
                f"Listening session {session.generation} started "
                f"(every {self.interval:.3f}s)"
            )
            return True

    def stop(self) -> bool:
        """
        Stop listening.

        The periodic task is cancelled before the capture handle is
        stopped, and any in-flight firing is given up to
        ``schedule.stop_timeout_ms`` to finish first.

        Returns:
            True if a session was stopped
        """
        with self._lock:
            session = self._session
            self._session = None
            self._active_generation = None
            if session is None:
                if self._state is ListenerState.FAULTED:
                    self._set_state(ListenerState.IDLE)
                return False

        # Closed outside the lock so a firing finishing up can still
        # reach the listener.
        if not session.close(self.stop_timeout):
            self.logger.warning(
                f"Classification pass still running after {self.stop_timeout:.1f}s, "
                "capture stopped anyway"
            )

        with self._lock:
            self._set_state(ListenerState.IDLE)
        self._report("Recording stopped")
        self.logger.info(f"Listening session {session.generation} stopped")
        return True

    def shutdown(self) -> None:
        """Release everything; called when the application exits."""
        self.stop()

    def _classify_once(self, session: ListeningSession) -> None:
        """One periodic pass: refill, classify, rank, publish."""
        try:
            session.buffer.load_capture(session.capture)
            classifications = session.classifier.classify(session.buffer)
            categories = summarize(classifications)
        except EarshotError:
            raise
        except Exception as e:
            raise ClassificationError(
                f"Classification pass failed: {e}",
                stage="pass",
                original_error=e,
            ) from e

        self.logger.debug(
            f"Pass {session.task.fire_count if session.task else 0}: "
            f"{len(categories)} label(s) above threshold"
        )
        self._publish(session.generation, format_summary(categories))

    def _publish(self, generation: int, text: str) -> None:
        self.dispatcher(functools.partial(self._apply_text, generation, text))

    def _apply_text(self, generation: int, text: str) -> None:
        # Runs on the UI thread; updates from a stopped session are dropped.
        if generation != self._active_generation:
            self.logger.debug(f"Dropped update from stale session {generation}")
            return
        self.display.set_text(text)

    def _on_task_error(self, session: ListeningSession, error: Exception) -> None:
        if session.generation == self._active_generation:
            message = error.message if isinstance(error, EarshotError) else str(error)
            self.dispatcher(functools.partial(self._report, f"Classification error: {message}"))

    def _on_task_fault(self, session: ListeningSession, error: Exception) -> None:
        self.dispatcher(functools.partial(self._handle_fault, session, error))

    def _handle_fault(self, session: ListeningSession, error: Exception) -> None:
        with self._lock:
            if self._session is not session:
                return
            self._session = None
            self._active_generation = None

        session.close(self.stop_timeout)

        message = error.message if isinstance(error, EarshotError) else str(error)
        self._report(f"Classification stopped: {message}")
        with self._lock:
            self._set_state(ListenerState.FAULTED)

    def _set_state(self, state: ListenerState) -> None:
        if state is self._state:
            return
        self.logger.debug(f"State {self._state.value} -> {state.value}")
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _report(self, message: str) -> None:
        self.logger.info(message)
        if self.on_status is not None:
            self.on_status(message)


def create_sound_listener(
    config: Dict[str, Any],
    display: Display,
    dispatcher: Dispatcher,
    permission: Optional[MicrophonePermission] = None,
    on_status: Optional[StatusCallback] = None,
    on_state_change: Optional[StateCallback] = None,
) -> SoundListener:
    """
    Factory function to create a listener from configuration.

    Args:
        config: Full configuration dictionary
        display: Surface for the classification summaries
        dispatcher: Runs callables on the UI thread
        permission: Permission provider (desktop input-device check by default)
        on_status: Receives short user-facing messages
        on_state_change: Receives ListenerState changes

    Returns:
        SoundListener: Configured listener in the IDLE state
    """
    from earshot.core.permission import InputDevicePermission

    device = config.get("capture", {}).get("device")
    gate = PermissionGate(permission or InputDevicePermission(device))
    return SoundListener(
        config,
        gate=gate,
        display=display,
        dispatcher=dispatcher,
        on_status=on_status,
        on_state_change=on_state_change,
    )
