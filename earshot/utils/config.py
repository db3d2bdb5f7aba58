"""
Configuration management for Earshot.

Loads and validates configuration from YAML files with environment
variable interpolation support. File values are merged over the
built-in defaults so a config file only needs the keys it changes.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from earshot.utils.errors import ConfigurationError

CONFIG_ENV_VAR = "EARSHOT_CONFIG"

# Key under which load_config() records where the file came from.
CONFIG_DIR_KEY = "_config_dir"


class ConfigManager:
    """
    Manages application configuration loaded from YAML files.

    Features:
    - YAML configuration loading
    - Environment variable interpolation (${VAR_NAME})
    - Nested key access with dot notation
    - Default value support
    - Configuration validation
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration manager.

        Args:
            config_dict: Optional pre-loaded configuration dictionary
        """
        self._config: Dict[str, Any] = config_dict or {}
        self._env_pattern = re.compile(r'\$\{([^}]+)\}')

    @classmethod
    def from_file(cls, file_path: Path) -> "ConfigManager":
        """
        Create ConfigManager from YAML file.

        Args:
            file_path: Path to YAML configuration file

        Returns:
            ConfigManager: Initialized with file contents

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        if not file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {file_path}",
                config_key=str(file_path)
            )

        try:
            with open(file_path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration: {e}",
                config_key=str(file_path)
            )

        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {file_path}",
                config_key=str(file_path)
            )

        manager = cls(config_dict)
        manager._interpolate_env_vars()
        return manager

    def _interpolate_env_vars(self) -> None:
        """Replace ${ENV_VAR} patterns with environment variable values."""
        self._config = self._interpolate(self._config)

    def _interpolate(self, value: Any) -> Any:
        """Recursively interpolate environment variables in nested values."""
        if isinstance(value, dict):
            return {key: self._interpolate(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._interpolate(item) for item in value]
        if isinstance(value, str):
            return self._interpolate_string(value)
        return value

    def _interpolate_string(self, s: str) -> str:
        """Replace ${ENV_VAR} with environment variable value."""
        def replace(match: re.Match) -> str:
            var_name = match.group(1)
            value = os.environ.get(var_name)
            if value is None:
                return match.group(0)  # Keep original if not found
            return value

        return self._env_pattern.sub(replace, s)

    def get(
        self,
        key: str,
        default: Any = None,
        required: bool = False
    ) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (supports dot notation: "schedule.interval_ms")
            default: Default value if key not found
            required: If True, raise error when key not found

        Returns:
            Configuration value or default

        Raises:
            ConfigurationError: If required key is not found
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                if required:
                    raise ConfigurationError(
                        f"Required configuration key not found: {key}",
                        config_key=key
                    )
                return default

        return value

    def get_section(self, key: str) -> Dict[str, Any]:
        """Get an entire configuration section (empty dict if not found)."""
        value = self.get(key, default={})
        if not isinstance(value, dict):
            return {}
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value using dot notation.

        Example:
            config.set("model.path", "models/other.tflite")
        """
        keys = key.split('.')
        current = self._config

        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def merge(self, overrides: Dict[str, Any]) -> None:
        """Deep-merge ``overrides`` into the current configuration."""
        self._config = _deep_merge(self._config, overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return copy.deepcopy(self._config)

    def validate(self, schema: Dict[str, Any]) -> None:
        """
        Validate configuration against a schema.

        Args:
            schema: Dictionary defining required keys and their types

        Raises:
            ConfigurationError: If validation fails

        Schema format:
            {
                "schedule.interval_ms": {"type": int, "required": True, "min": 1},
                "model.labels_path": {"type": str}
            }
        """
        for key, rules in schema.items():
            value = self.get(key)
            required = rules.get("required", False)
            expected_type = rules.get("type")

            if value is None:
                if required:
                    raise ConfigurationError(
                        f"Required configuration missing: {key}",
                        config_key=key
                    )
                continue

            # bool is an int subclass; a YAML "true" is never a valid number
            if expected_type and (
                not isinstance(value, expected_type)
                or (isinstance(value, bool) and expected_type is not bool)
            ):
                type_name = getattr(expected_type, "__name__", str(expected_type))
                raise ConfigurationError(
                    f"Invalid type for {key}: expected {type_name}, "
                    f"got {type(value).__name__}",
                    config_key=key
                )

            minimum = rules.get("min")
            if minimum is not None and value < minimum:
                raise ConfigurationError(
                    f"Invalid value for {key}: {value} is below {minimum}",
                    config_key=key
                )


CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
    "model.path": {"type": str, "required": True},
    "model.labels_path": {"type": str},
    "model.sample_rate": {"type": int, "required": True, "min": 1},
    "model.num_threads": {"type": int, "min": 1},
    "capture.device": {"type": (int, str)},
    "capture.resample": {"type": bool},
    "schedule.initial_delay_ms": {"type": int, "required": True, "min": 0},
    "schedule.interval_ms": {"type": int, "required": True, "min": 1},
    "schedule.max_consecutive_failures": {"type": int, "required": True, "min": 1},
    "schedule.stop_timeout_ms": {"type": int, "required": True, "min": 0},
    "logging.level": {"type": str},
    "logging.format": {"type": str},
}


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``overrides`` merged in, recursing into mappings."""
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def find_config_file(config_path: Optional[str] = None) -> Optional[Path]:
    """
    Locate the configuration file to use.

    Args:
        config_path: Explicit path. When None, ``$EARSHOT_CONFIG`` and then
                     the default locations are tried.

    Returns:
        Path to an existing file, or None when nothing was found

    Raises:
        ConfigurationError: If an explicitly requested file does not exist
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                config_key=str(path)
            )
        return path

    default_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path(__file__).parent.parent.parent / "config" / "config.yaml",
    ]
    for path in default_paths:
        if path.exists():
            return path
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file merged over the defaults.

    Args:
        config_path: Optional path to config file.
                    If None, tries $EARSHOT_CONFIG then "config/config.yaml"

    Returns:
        Dict[str, Any]: Validated configuration dictionary

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    manager = ConfigManager(get_default_config())

    path = find_config_file(config_path)
    if path is not None:
        file_manager = ConfigManager.from_file(path)
        manager.merge(file_manager.to_dict())
        manager.set(CONFIG_DIR_KEY, str(path.resolve().parent))

    manager.validate(CONFIG_SCHEMA)
    return manager.to_dict()


def resolve_path(config: Dict[str, Any], value: Optional[str]) -> Optional[Path]:
    """
    Resolve a path from the configuration.

    Relative paths are tried against the config file's directory first,
    then the current working directory.

    Args:
        config: Configuration as returned by load_config()
        value: Path string from the configuration (may be None)

    Returns:
        Resolved Path, or None when ``value`` is empty
    """
    if not value:
        return None

    path = Path(value).expanduser()
    if path.is_absolute():
        return path

    config_dir = config.get(CONFIG_DIR_KEY)
    if config_dir:
        candidate = Path(config_dir) / path
        if candidate.exists():
            return candidate
    return path


def get_default_config() -> Dict[str, Any]:
    """Return default configuration values."""
    return {
        "model": {
            "path": "models/yamnet_classification.tflite",
            "labels_path": None,
            "sample_rate": 16000,
            "num_threads": None,
        },
        "capture": {
            "device": None,
            "resample": True,
        },
        "schedule": {
            "initial_delay_ms": 1,
            "interval_ms": 500,
            "max_consecutive_failures": 3,
            "stop_timeout_ms": 2000,
        },
        "logging": {
            "level": "INFO",
            "format": "text",
            "file": None,
            "colored": True,
        },
    }
