"""
Microphone permission gate.

Provides a single checkpoint for whether recording may start:
1. On launch, check_on_launch() checks the permission and asks for it
   once when it is missing.
2. Before recording, check() raises when the permission is missing.

The MicrophonePermission protocol lets the desktop check (is there a
usable input device?) be swapped for a platform permission API.
"""

import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from earshot.utils.errors import CaptureError, PermissionDeniedError


@runtime_checkable
class MicrophonePermission(Protocol):
    """Protocol for microphone permission providers."""

    def is_granted(self) -> bool:
        """Check whether audio capture is currently allowed."""
        ...

    def request(self) -> None:
        """Ask for the permission. The answer is picked up by a later check."""
        ...


class AlwaysGranted:
    """Stub provider: capture is always allowed."""

    def is_granted(self) -> bool:
        return True

    def request(self) -> None:
        pass


class InputDevicePermission:
    """
    Desktop permission provider.

    Capture is considered allowed when PortAudio reports a usable input
    device. Requesting the permission runs ``prompt`` (the GUI uses it to
    tell the user to connect or enable a microphone).
    """

    def __init__(self, device=None, prompt: Optional[Callable[[str], None]] = None):
        """
        Args:
            device: Configured input device (index, name fragment or None)
            prompt: Called with an explanation when the permission is requested
        """
        self.device = device
        self.prompt = prompt
        self.logger = logging.getLogger("permission")

    def is_granted(self) -> bool:
        from earshot.core.capture import _sounddevice, resolve_input_device

        try:
            sd = _sounddevice()
        except CaptureError as e:
            self.logger.debug(f"Audio system unavailable: {e}")
            return False

        try:
            index = resolve_input_device(self.device)
            info = sd.query_devices(index, "input")
        except (CaptureError, sd.PortAudioError, ValueError) as e:
            self.logger.debug(f"No usable input device: {e}")
            return False
        return info["max_input_channels"] > 0

    def request(self) -> None:
        message = (
            "Microphone access is required to listen for sounds. "
            "Connect or enable an input device, then return to the app."
        )
        self.logger.warning(message)
        if self.prompt is not None:
            self.prompt(message)


class PermissionGate:
    """
    Checkpoint for microphone access.

    Usage:
        gate = PermissionGate(InputDevicePermission())
        start_enabled = gate.check_on_launch()
        gate.check()  # Raises PermissionDeniedError if blocked
    """

    def __init__(self, provider: Optional[MicrophonePermission] = None):
        self._provider = provider or AlwaysGranted()
        self.logger = logging.getLogger("permission.gate")

    @property
    def provider(self) -> MicrophonePermission:
        return self._provider

    def is_granted(self) -> bool:
        """Non-throwing check for UI display."""
        return bool(self._provider.is_granted())

    def check(self) -> None:
        """
        Verify capture is allowed.

        Raises:
            PermissionDeniedError: If the permission is not granted
        """
        if not self.is_granted():
            self.logger.debug("Microphone permission not granted")
            raise PermissionDeniedError("microphone")

    def check_on_launch(self) -> bool:
        """
        Check the permission at startup, requesting it once if missing.

        There is no retry: the caller re-checks with is_granted() when the
        user comes back to the app.

        Returns:
            True if recording may be enabled right away
        """
        if self.is_granted():
            return True
        self.logger.info("Requesting microphone permission")
        self._provider.request()
        return False
