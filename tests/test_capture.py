"""Tests for AudioCapture and device helpers, against a fake sounddevice."""

import numpy as np
import pytest

from earshot.core import capture as capture_module
from earshot.core.capture import (
    AudioCapture,
    CaptureState,
    list_input_devices,
    resolve_input_device,
)
from earshot.core.listener import SoundListener
from earshot.core.models import AudioFormat, ListenerState
from earshot.core.permission import PermissionGate
from earshot.ui.display import ImmediateDispatcher, MemoryDisplay
from earshot.utils.config import get_default_config
from earshot.utils.errors import CaptureError
from fakes import FakeClassifier, GrantedPermission

MONO_16K = AudioFormat(channels=1, sample_rate=16000)

DEVICES = [
    {"name": "HDMI Output", "max_input_channels": 0, "default_samplerate": 48000.0},
    {"name": "USB Microphone", "max_input_channels": 1, "default_samplerate": 48000.0},
    {"name": "Built-in Mic", "max_input_channels": 2, "default_samplerate": 44100.0},
]


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, sd, **kwargs):
        self.sd = sd
        self.kwargs = kwargs
        self.pending = []
        self.started = False
        self.closed = False

    @property
    def read_available(self):
        return sum(len(chunk) for chunk in self.pending[:1])

    def read(self, frames):
        chunk = self.pending.pop(0)
        return chunk[:frames], False

    def start(self):
        if self.sd.fail_open:
            raise FakePortAudioError("Device unavailable")
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class FakeSoundDevice:
    PortAudioError = FakePortAudioError

    def __init__(self, supported_rates=(16000,), fail_open=False, fail_query=False):
        self.supported_rates = supported_rates
        self.fail_open = fail_open
        self.fail_query = fail_query
        self.streams = []

    def query_devices(self, device=None, kind=None):
        if self.fail_query:
            raise FakePortAudioError("Error querying device -1")
        if device is None and kind is None:
            return DEVICES
        index = 2 if device is None else device
        if not 0 <= index < len(DEVICES):
            raise ValueError(f"Error querying device {device}")
        return DEVICES[index]

    def check_input_settings(self, device=None, channels=None, samplerate=None, dtype=None):
        if samplerate not in self.supported_rates:
            raise FakePortAudioError("Invalid sample rate")

    def InputStream(self, **kwargs):
        stream = FakeStream(self, **kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture
def fake_sd(monkeypatch):
    sd = FakeSoundDevice()
    monkeypatch.setattr(capture_module, "_sounddevice", lambda: sd)
    return sd


class TestDevices:
    def test_list_input_devices_skips_outputs(self, fake_sd):
        devices = list_input_devices()
        assert [d["index"] for d in devices] == [1, 2]
        assert devices[0]["name"] == "USB Microphone"
        assert devices[1]["channels"] == 2

    @pytest.mark.parametrize("device,expected", [
        (None, None),
        (1, 1),
        ("2", 2),
        ("usb", 1),
        ("built-in", 2),
    ])
    def test_resolve_input_device(self, fake_sd, device, expected):
        assert resolve_input_device(device) == expected

    def test_unknown_device_name(self, fake_sd):
        with pytest.raises(CaptureError, match="No input device matches 'webcam'"):
            resolve_input_device("webcam")

    def test_output_only_device_does_not_match(self, fake_sd):
        with pytest.raises(CaptureError):
            resolve_input_device("hdmi")


class TestAudioCapture:
    def test_start_opens_stream_at_model_rate(self, fake_sd):
        capture = AudioCapture(MONO_16K, device="usb")
        capture.start()

        assert capture.is_recording
        assert capture.state is CaptureState.RECORDING
        assert capture.stream_sample_rate == 16000
        stream = fake_sd.streams[0]
        assert stream.started
        assert stream.kwargs["device"] == 1
        assert stream.kwargs["channels"] == 1
        assert stream.kwargs["samplerate"] == 16000

    def test_start_twice_opens_one_stream(self, fake_sd):
        capture = AudioCapture(MONO_16K)
        capture.start()
        capture.start()
        assert len(fake_sd.streams) == 1

    def test_falls_back_to_native_rate(self, fake_sd):
        fake_sd.supported_rates = (44100,)
        capture = AudioCapture(MONO_16K)
        capture.start()
        assert capture.stream_sample_rate == 44100

    def test_unsupported_rate_without_resampling(self, fake_sd):
        fake_sd.supported_rates = (44100,)
        capture = AudioCapture(MONO_16K, resample=False)
        with pytest.raises(CaptureError, match="does not support 16000 Hz"):
            capture.start()
        assert not capture.is_recording

    def test_open_failure(self, fake_sd):
        fake_sd.fail_open = True
        capture = AudioCapture(MONO_16K)
        with pytest.raises(CaptureError, match="Could not open input stream") as exc_info:
            capture.start()
        assert isinstance(exc_info.value.original_error, FakePortAudioError)

    def test_read_drains_available_frames(self, fake_sd):
        capture = AudioCapture(MONO_16K)
        capture.start()
        stream = fake_sd.streams[0]
        stream.pending = [
            np.full((3, 1), 0.1, dtype=np.float32),
            np.full((2, 1), 0.2, dtype=np.float32),
        ]

        frames = capture.read(10)
        assert frames.shape == (5, 1)
        assert stream.pending == []
        assert capture.read(10).shape == (0, 1)

    def test_read_keeps_newest_frames(self, fake_sd):
        capture = AudioCapture(MONO_16K)
        capture.start()
        fake_sd.streams[0].pending = [np.arange(6, dtype=np.float32).reshape(6, 1)]
        assert capture.read(2).ravel().tolist() == [4.0, 5.0]

    def test_read_when_stopped(self, fake_sd):
        capture = AudioCapture(MONO_16K)
        with pytest.raises(CaptureError, match="not recording"):
            capture.read(10)

    def test_stop_is_idempotent(self, fake_sd):
        capture = AudioCapture(MONO_16K)
        capture.start()
        stream = fake_sd.streams[0]

        capture.stop()
        capture.stop()

        assert stream.closed
        assert capture.state is CaptureState.STOPPED
        with pytest.raises(CaptureError):
            capture.read(10)

    def test_missing_portaudio(self, monkeypatch):
        def unavailable():
            raise CaptureError("Audio input is unavailable: PortAudio library not found")

        monkeypatch.setattr(capture_module, "_sounddevice", unavailable)
        with pytest.raises(CaptureError, match="unavailable"):
            AudioCapture(MONO_16K).start()


class TestDeviceQueryFailures:
    def test_list_input_devices(self, fake_sd):
        fake_sd.fail_query = True
        with pytest.raises(CaptureError, match="Could not query audio devices") as exc_info:
            list_input_devices()
        assert isinstance(exc_info.value.original_error, FakePortAudioError)

    def test_resolving_a_named_device(self, fake_sd):
        fake_sd.fail_query = True
        with pytest.raises(CaptureError):
            AudioCapture(MONO_16K, device="usb").start()
        assert fake_sd.streams == []

    def test_native_rate_lookup(self, fake_sd):
        fake_sd.supported_rates = (44100,)
        fake_sd.fail_query = True
        capture = AudioCapture(MONO_16K)
        with pytest.raises(CaptureError, match="Could not query input device"):
            capture.start()
        assert not capture.is_recording


class ClassifierWithRealCapture(FakeClassifier):
    def create_audio_capture(self, device=None, resample=True):
        self.capture = AudioCapture(self.required_format, device=device, resample=resample)
        return self.capture


def test_listener_stays_idle_when_device_query_fails(fake_sd):
    fake_sd.supported_rates = (44100,)
    fake_sd.fail_query = True
    classifier = ClassifierWithRealCapture([])
    statuses = []
    states = []
    listener = SoundListener(
        get_default_config(),
        gate=PermissionGate(GrantedPermission()),
        display=MemoryDisplay(),
        dispatcher=ImmediateDispatcher(),
        classifier_factory=lambda: classifier,
        on_status=statuses.append,
        on_state_change=states.append,
    )

    assert listener.start() is False
    assert listener.state is ListenerState.IDLE
    assert listener.session is None
    assert classifier.closed
    assert states == []
    assert statuses[-1].startswith("Error starting microphone: Could not query input device")
