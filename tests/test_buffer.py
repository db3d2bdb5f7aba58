"""Tests for RollingAudioBuffer."""

import numpy as np
import pytest

from earshot.core.buffer import RollingAudioBuffer
from earshot.core.models import AudioFormat
from fakes import FakeCapture

MONO = AudioFormat(channels=1, sample_rate=16000)
STEREO = AudioFormat(channels=2, sample_rate=16000)


class TestRollingAudioBuffer:
    def test_starts_silent(self):
        buffer = RollingAudioBuffer(MONO, 4)
        assert buffer.snapshot().shape == (4, 1)
        assert not buffer.snapshot().any()

    def test_shifts_new_samples_in_at_the_end(self):
        buffer = RollingAudioBuffer(MONO, 4)
        buffer.load_samples(np.array([1, 2], dtype=np.float32))
        buffer.load_samples(np.array([3], dtype=np.float32))
        assert buffer.as_model_input().tolist() == [0.0, 1.0, 2.0, 3.0]

    def test_keeps_newest_when_overfilled(self):
        buffer = RollingAudioBuffer(MONO, 3)
        written = buffer.load_samples(np.arange(1, 6, dtype=np.float32))
        assert written == 3
        assert buffer.as_model_input().tolist() == [3.0, 4.0, 5.0]

    def test_integer_pcm_is_scaled(self):
        buffer = RollingAudioBuffer(MONO, 2)
        buffer.load_samples(np.array([32767, 0], dtype=np.int16))
        assert buffer.as_model_input().tolist() == pytest.approx([1.0, 0.0])

    def test_interleaved_stereo(self):
        buffer = RollingAudioBuffer(STEREO, 2)
        buffer.load_samples(np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float32))
        np.testing.assert_allclose(buffer.snapshot(), [[0.1, 0.2], [0.3, 0.4]], rtol=1e-6)

    def test_channel_mismatch_raises(self):
        buffer = RollingAudioBuffer(MONO, 4)
        with pytest.raises(ValueError, match="channel"):
            buffer.load_samples(np.zeros((2, 2), dtype=np.float32))

    def test_empty_load_is_noop(self):
        buffer = RollingAudioBuffer(MONO, 2)
        assert buffer.load_samples(np.zeros(0, dtype=np.float32)) == 0

    def test_load_capture_reads_at_most_capacity(self):
        capture = FakeCapture(MONO)
        capture.start()
        buffer = RollingAudioBuffer(MONO, 100)
        assert buffer.load_capture(capture) == 100
        assert capture.reads == 1

    def test_clear(self):
        buffer = RollingAudioBuffer(MONO, 2)
        buffer.load_samples(np.ones(2, dtype=np.float32))
        buffer.clear()
        assert not buffer.snapshot().any()

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RollingAudioBuffer(MONO, 0)
