"""
Rolling audio buffer fed from the microphone and read by the classifier.
"""

import logging
import threading
from typing import TYPE_CHECKING

import numpy as np

from earshot.core.models import AudioFormat

if TYPE_CHECKING:
    from earshot.core.capture import AudioCapture


class RollingAudioBuffer:
    """
    Fixed-capacity window holding the most recent audio samples.

    The buffer always contains ``capacity`` frames of float32 audio in
    the model's format. Loading new samples shifts them in at the end
    and discards the same number of the oldest frames, so the window
    slides forward in time. It starts out filled with silence.
    """

    def __init__(self, audio_format: AudioFormat, capacity: int):
        """
        Args:
            audio_format: Format of the samples held by the buffer
            capacity: Number of frames (samples per channel) kept
        """
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.audio_format = audio_format
        self.capacity = capacity
        self._data = np.zeros((capacity, audio_format.channels), dtype=np.float32)
        self._lock = threading.Lock()
        self.logger = logging.getLogger("buffer")

    def load_samples(self, samples: np.ndarray) -> int:
        """
        Shift samples into the buffer.

        Args:
            samples: Array of shape (frames,) for mono or (frames, channels).
                     Integer PCM is scaled to [-1, 1].

        Returns:
            Number of frames written (at most ``capacity``)

        Raises:
            ValueError: If the channel count does not match the buffer
        """
        frames = self._as_frames(samples)
        count = len(frames)
        if count == 0:
            return 0

        # Only the newest `capacity` frames can survive the shift.
        if count >= self.capacity:
            frames = frames[-self.capacity:]
            count = self.capacity

        with self._lock:
            if count == self.capacity:
                self._data[:] = frames
            else:
                self._data[:-count] = self._data[count:]
                self._data[-count:] = frames
        return count

    def load_capture(self, capture: "AudioCapture") -> int:
        """
        Refill the buffer with whatever the capture handle has available.

        Reads at most ``capacity`` frames, so a single call never blocks
        for longer than one window of audio.

        Returns:
            Number of frames written
        """
        samples = capture.read(self.capacity)
        written = self.load_samples(samples)
        self.logger.debug(f"Loaded {written} frame(s) from capture")
        return written

    def snapshot(self) -> np.ndarray:
        """Return a copy of the current window, shape (capacity, channels)."""
        with self._lock:
            return self._data.copy()

    def as_model_input(self) -> np.ndarray:
        """Return the window flattened to interleaved samples."""
        return self.snapshot().reshape(-1)

    def clear(self) -> None:
        """Reset the window to silence."""
        with self._lock:
            self._data.fill(0.0)

    def _as_frames(self, samples: np.ndarray) -> np.ndarray:
        array = np.asarray(samples)
        if np.issubdtype(array.dtype, np.integer):
            scale = float(np.iinfo(array.dtype).max)
            array = array.astype(np.float32) / scale
        else:
            array = array.astype(np.float32, copy=False)

        channels = self.audio_format.channels
        if array.ndim == 1:
            if channels == 1:
                return array.reshape(-1, 1)
            if array.size % channels:
                raise ValueError(
                    f"{array.size} interleaved samples do not divide into {channels} channels"
                )
            return array.reshape(-1, channels)
        if array.ndim == 2 and array.shape[1] == channels:
            return array
        raise ValueError(
            f"Expected samples with {channels} channel(s), got shape {array.shape}"
        )
