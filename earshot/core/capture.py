"""
Microphone capture handle backed by sounddevice (PortAudio).

The stream is opened in blocking-read mode: PortAudio buffers incoming
audio and read() drains whatever is available without waiting for more.
sounddevice is imported lazily because importing it fails outright on
machines without a PortAudio library.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np

from earshot.core.models import AudioFormat
from earshot.utils.errors import CaptureError

DeviceSpec = Optional[Union[int, str]]


class CaptureState(Enum):
    STOPPED = "stopped"
    RECORDING = "recording"


def _sounddevice():
    """Import sounddevice, turning a missing PortAudio into a CaptureError."""
    try:
        import sounddevice as sd
    except OSError as e:
        raise CaptureError(f"Audio input is unavailable: {e}", original_error=e) from e
    return sd


def list_input_devices() -> List[Dict[str, Any]]:
    """
    List audio devices that can record.

    Returns:
        List of dicts with index, name, channels and default_samplerate
    """
    sd = _sounddevice()
    try:
        all_devices = sd.query_devices()
    except (sd.PortAudioError, ValueError) as e:
        raise CaptureError(f"Could not query audio devices: {e}", original_error=e) from e

    devices = []
    for index, device in enumerate(all_devices):
        if device["max_input_channels"] > 0:
            devices.append({
                "index": index,
                "name": device["name"],
                "channels": device["max_input_channels"],
                "default_samplerate": device["default_samplerate"],
            })
    return devices


def resolve_input_device(device: DeviceSpec) -> Optional[int]:
    """
    Resolve a device index or name fragment to a PortAudio device index.

    Args:
        device: Index, case-insensitive name substring, or None for default

    Returns:
        Device index, or None to let PortAudio pick its default input

    Raises:
        CaptureError: If no matching input device exists
    """
    if device is None:
        return None
    if isinstance(device, int):
        return device
    if isinstance(device, str) and device.strip().isdigit():
        return int(device.strip())

    for info in list_input_devices():
        if str(device).lower() in info["name"].lower():
            return info["index"]
    raise CaptureError(f"No input device matches '{device}'", device=device)


class AudioCapture:
    """
    Live microphone stream delivering samples in a requested format.

    When the device refuses the requested sample rate and ``resample`` is
    enabled, the stream is opened at the device's default rate and each
    read is resampled with librosa.
    """

    def __init__(
        self,
        audio_format: AudioFormat,
        device: DeviceSpec = None,
        resample: bool = True,
        latency: Union[str, float] = "low",
    ):
        """
        Args:
            audio_format: Channels and sample rate the consumer wants
            device: Input device index or name fragment (None for default)
            resample: Allow falling back to the device's native rate
            latency: PortAudio latency hint
        """
        self.audio_format = audio_format
        self.device = device
        self.resample = resample
        self.latency = latency
        self.logger = logging.getLogger("capture")

        self._stream = None
        self._stream_rate = audio_format.sample_rate
        self._state = CaptureState.STOPPED
        self._lock = threading.Lock()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is CaptureState.RECORDING

    @property
    def stream_sample_rate(self) -> int:
        """Rate the device is actually delivering (may differ when resampling)."""
        return self._stream_rate

    def start(self) -> None:
        """
        Open the input stream and begin recording.

        Raises:
            CaptureError: If the device cannot be opened
        """
        with self._lock:
            if self._state is CaptureState.RECORDING:
                return

            sd = _sounddevice()
            device = resolve_input_device(self.device)
            rate = self._negotiate_rate(sd, device)

            try:
                stream = sd.InputStream(
                    device=device,
                    channels=self.audio_format.channels,
                    samplerate=rate,
                    dtype="float32",
                    latency=self.latency,
                )
                stream.start()
            except (sd.PortAudioError, ValueError) as e:
                raise CaptureError(
                    f"Could not open input stream: {e}",
                    device=self.device,
                    original_error=e,
                ) from e

            self._stream = stream
            self._stream_rate = rate
            self._state = CaptureState.RECORDING
            self.logger.info(
                f"Recording from device {device if device is not None else 'default'} "
                f"at {rate} Hz, {self.audio_format.channels} channel(s)"
            )

    def read(self, max_frames: int) -> np.ndarray:
        """
        Drain up to ``max_frames`` frames of recorded audio.

        Only frames already buffered by PortAudio are read, so the call
        returns immediately. Frames beyond ``max_frames`` are discarded
        so the next read starts from fresh audio.

        Args:
            max_frames: Upper bound on frames returned, in the target rate

        Returns:
            float32 array of shape (frames, channels) at the target rate

        Raises:
            CaptureError: If the handle is not recording or the read fails
        """
        with self._lock:
            if self._state is not CaptureState.RECORDING or self._stream is None:
                raise CaptureError("Capture handle is not recording", device=self.device)

            stream = self._stream
            try:
                available = stream.read_available
                chunks = []
                while available > 0:
                    data, overflowed = stream.read(available)
                    if overflowed:
                        self.logger.debug("Input overflow, some audio was dropped")
                    chunks.append(data)
                    available = stream.read_available
            except Exception as e:
                raise CaptureError(
                    f"Failed to read from input stream: {e}",
                    device=self.device,
                    original_error=e,
                ) from e

        channels = self.audio_format.channels
        if not chunks:
            return np.zeros((0, channels), dtype=np.float32)

        frames = np.concatenate(chunks, axis=0)
        frames = self._to_target_rate(frames)
        return frames[-max_frames:] if max_frames > 0 else frames[:0]

    def stop(self) -> None:
        """Stop recording and release the device. Safe to call twice."""
        with self._lock:
            stream, self._stream = self._stream, None
            self._state = CaptureState.STOPPED

        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        self.logger.info("Recording stopped")

    def _negotiate_rate(self, sd, device: Optional[int]) -> int:
        wanted = self.audio_format.sample_rate
        try:
            sd.check_input_settings(
                device=device,
                channels=self.audio_format.channels,
                samplerate=wanted,
                dtype="float32",
            )
            return wanted
        except (sd.PortAudioError, ValueError) as e:
            if not self.resample:
                raise CaptureError(
                    f"Input device does not support {wanted} Hz: {e}",
                    device=self.device,
                    original_error=e,
                ) from e

        try:
            native = int(sd.query_devices(device, "input")["default_samplerate"])
        except (sd.PortAudioError, ValueError) as e:
            raise CaptureError(
                f"Could not query input device: {e}",
                device=self.device,
                original_error=e,
            ) from e
        self.logger.warning(
            f"Input device does not support {wanted} Hz, recording at {native} Hz and resampling"
        )
        return native

    def _to_target_rate(self, frames: np.ndarray) -> np.ndarray:
        target = self.audio_format.sample_rate
        if self._stream_rate == target or len(frames) == 0:
            return frames

        import librosa

        # librosa resamples along the last axis
        resampled = librosa.resample(
            np.ascontiguousarray(frames.T),
            orig_sr=self._stream_rate,
            target_sr=target,
        )
        return np.ascontiguousarray(resampled.T, dtype=np.float32)
