"""
Utility modules for configuration, logging, and error handling.
"""

from earshot.utils.errors import (
    EarshotError,
    ConfigurationError,
    PermissionDeniedError,
    ModelLoadError,
    CaptureError,
    ClassificationError,
)
from earshot.utils.logging import get_logger, setup_logging, setup_logging_from_config, JSONFormatter
from earshot.utils.config import ConfigManager, load_config, resolve_path

__all__ = [
    "EarshotError",
    "ConfigurationError",
    "PermissionDeniedError",
    "ModelLoadError",
    "CaptureError",
    "ClassificationError",
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
    "JSONFormatter",
    "ConfigManager",
    "load_config",
    "resolve_path",
]
