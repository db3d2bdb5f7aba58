"""
Custom exceptions for Earshot.

This module defines the hierarchy of exceptions raised while starting,
running and stopping a listening session.
"""

from typing import Any, Optional


class EarshotError(Exception):
    """Base exception for all Earshot errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(EarshotError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key
        self.details = {"config_key": config_key}


class PermissionDeniedError(EarshotError):
    """Raised when microphone capture is not permitted."""

    def __init__(self, permission: str = "microphone"):
        super().__init__(f"Permission to use the {permission} was not granted")
        self.permission = permission


class ModelLoadError(EarshotError):
    """Raised when the classification model cannot be loaded."""

    def __init__(self, message: str, model_path: Optional[str] = None):
        super().__init__(message)
        self.model_path = model_path
        self.details = {"model_path": model_path}

    def __str__(self) -> str:
        # Shown verbatim to the user, keep it short.
        return self.message


class CaptureError(EarshotError):
    """Raised when the microphone stream cannot be opened or read."""

    def __init__(
        self,
        message: str,
        device: Optional[Any] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.device = device
        self.original_error = original_error
        self.details = {
            "device": device,
            "original_error": str(original_error) if original_error else None,
        }


class ClassificationError(EarshotError):
    """Raised when a periodic classification pass fails."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.original_error = original_error
        self.details = {
            "stage": stage,
            "original_error": str(original_error) if original_error else None,
        }
