"""Utility functions for vocabtrace.

This module contains:
- Config file management
"""

from .config import (
    DEFAULT_CONFIG,
    get_config_dir,
    get_config_path,
    get_value,
    load_config,
    parse_value,
    save_config,
    set_value,
)

__all__ = [
    "DEFAULT_CONFIG",
    "load_config",
    "save_config",
    "get_value",
    "set_value",
    "parse_value",
    "get_config_dir",
    "get_config_path",
]
