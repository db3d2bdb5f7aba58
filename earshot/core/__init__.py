"""
Core module containing data models, audio capture, classification and
the listening loop.

Uses lazy imports for modules with heavy dependencies (numpy, sounddevice,
tensorflow).
"""

# Models are lightweight - import directly
from earshot.core.models import (
    AudioFormat,
    Categories,
    Category,
    Classifications,
    ListenerState,
)

__all__ = [
    # Models (always available)
    "AudioFormat",
    "Categories",
    "Category",
    "Classifications",
    "ListenerState",
    # Heavy modules (lazy loaded)
    "RollingAudioBuffer",
    "AudioCapture",
    "AudioClassifier",
    "create_classifier",
    "PermissionGate",
    "PeriodicTask",
    "SoundListener",
    "create_sound_listener",
]


def __getattr__(name):
    """Lazy import for modules with heavy dependencies."""
    if name == "RollingAudioBuffer":
        from earshot.core.buffer import RollingAudioBuffer
        return RollingAudioBuffer
    elif name == "AudioCapture":
        from earshot.core.capture import AudioCapture
        return AudioCapture
    elif name in ("AudioClassifier", "create_classifier"):
        from earshot.core.classifier import AudioClassifier, create_classifier
        return AudioClassifier if name == "AudioClassifier" else create_classifier
    elif name == "PermissionGate":
        from earshot.core.permission import PermissionGate
        return PermissionGate
    elif name == "PeriodicTask":
        from earshot.core.periodic import PeriodicTask
        return PeriodicTask
    elif name in ("SoundListener", "create_sound_listener"):
        from earshot.core.listener import SoundListener, create_sound_listener
        return SoundListener if name == "SoundListener" else create_sound_listener
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
