"""Shared configuration utilities."""

import os
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Generic, TypeVar

import yaml

T = TypeVar("T")

DURATION_UNITS = {
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
}


def find_config_path(
    config_name: str | None,
    config_dir: Path,
    default_name: str = "prod",
    env_var: str | None = None,
) -> Path:
    """Find config file path, checking env var and defaults.

    Args:
        config_name: Name of config (without .yaml), a path to a YAML file,
            or None for default
        config_dir: Directory containing config files
        default_name: Default config name if config_name is None
        env_var: Environment variable to check for config name

    Returns:
        Path to the config file

    Raises:
        FileNotFoundError: If config file doesn't exist
    """
    if config_name is None:
        config_name = os.environ.get(env_var, default_name) if env_var else default_name

    if config_name.endswith((".yaml", ".yml")):
        config_path = Path(config_name)
    else:
        config_path = config_dir / f"{config_name}.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return config_path


def load_yaml(path: Path) -> dict:
    """Load YAML file and return dict (empty dict for an empty file)."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_duration(value: str | int | float | timedelta | None) -> timedelta | None:
    """Parse a human duration such as "15 minutes", "1 hour", "30s" or "daily".

    Bare numbers are read as seconds. Returns None for None, "" and
    "event-driven" (no fixed cadence).

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None or isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = value.strip().lower()
    if not text or text == "event-driven":
        return None
    if text == "hourly":
        return timedelta(hours=1)
    if text == "daily":
        return timedelta(days=1)

    number, _, unit = text.partition(" ")
    if not unit:
        # "30s", "15m", "2h"
        digits = number.rstrip("abcdefghijklmnopqrstuvwxyz")
        number, unit = digits, number[len(digits):] or "s"
    unit_name = DURATION_UNITS.get(unit.strip())
    if unit_name is None:
        raise ValueError(f"Unknown duration unit in {value!r}")
    try:
        amount = float(number)
    except ValueError as exc:
        raise ValueError(f"Invalid duration {value!r}") from exc
    return timedelta(**{unit_name: amount})


class ConfigSingleton(Generic[T]):
    """Generic config singleton manager.

    Provides get/set/reset pattern for managing a global config instance.

    Example:
        >>> def load_my_config() -> MyConfig:
        ...     return MyConfig(...)
        >>> _manager = ConfigSingleton(load_my_config)
        >>> get_config = _manager.get
        >>> set_config = _manager.set
        >>> reset_config = _manager.reset
    """

    def __init__(self, loader: Callable[[], T] | None = None):
        self._config: T | None = None
        self._loader = loader
        self._lock = threading.Lock()

    def get(self) -> T:
        """Get the config, loading it lazily if needed."""
        if self._config is None:
            with self._lock:
                # Concurrent first callers share one load
                if self._config is None:
                    if self._loader is None:
                        raise RuntimeError("No config loaded and no loader set")
                    self._config = self._loader()
        return self._config

    def set(self, config: T) -> None:
        """Set the config directly."""
        self._config = config

    def reset(self) -> None:
        """Reset the config, forcing reload on next get()."""
        self._config = None
