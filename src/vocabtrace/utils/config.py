"""Configuration file management.

Config is stored in TOML format at:
- macOS/Linux: ~/.config/vocabtrace/config.toml
- Windows: %APPDATA%\\vocabtrace\\config.toml

Usage:
    config = load_config()
    db_path = get_value(config, "general.db_path")
"""

import copy
import platform
import tomllib
from pathlib import Path
from typing import Any, Optional

import tomli_w

from vocabtrace.constants import APP_NAME
from vocabtrace.exceptions import ConfigError


def get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if platform.system() == "Windows":
        base = Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_config_path() -> Path:
    """Get path to config file."""
    return get_config_dir() / "config.toml"


DEFAULT_CONFIG = {
    "general": {
        "db_path": "",
        "dictionary_path": "",
        "language": "en",
    },
    "review": {
        "count": 10,
        "mode": "shuffle",
    },
}


def load_config(path: Optional[Path] = None) -> dict:
    """Load configuration from file.

    Creates default config if file doesn't exist.

    Args:
        path: Config file (default: get_config_path())

    Returns:
        Dict with configuration values

    Raises:
        ConfigError: If config file is malformed
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        save_config(DEFAULT_CONFIG, config_path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config: {e}") from e


def save_config(config: dict, path: Optional[Path] = None) -> None:
    """Save configuration to file.

    Args:
        config: Dict with configuration values
        path: Config file (default: get_config_path())
    """
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config, f)


def get_value(config: dict, key: str, default: Any = None) -> Any:
    """Get a nested config value using dot notation.

    Args:
        config: Config dict
        key: Dot-separated key (e.g., "review.count")
        default: Default value if key not found

    Returns:
        Config value or default

    Example:
        >>> config = {"review": {"count": 5}}
        >>> get_value(config, "review.count")
        5
    """
    current = config

    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default

    return current


def set_value(config: dict, key: str, value: Any) -> None:
    """Set a nested config value using dot notation.

    Intermediate tables are created as needed.

    Raises:
        ConfigError: If a key segment is not a table
    """
    parts = key.split(".")
    current = config

    for part in parts[:-1]:
        if part not in current:
            current[part] = {}
        current = current[part]
        if not isinstance(current, dict):
            raise ConfigError(f"Cannot set {key}: {part} is not a table")

    current[parts[-1]] = value


def parse_value(raw: str) -> Any:
    """Parse a command-line value into a TOML scalar.

    Example:
        >>> parse_value("12"), parse_value("true"), parse_value("shuffle")
        (12, True, 'shuffle')
    """
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw
