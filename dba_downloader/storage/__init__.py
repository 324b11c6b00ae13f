"""
Storage Layer.

This package handles configuration persistence: locating, loading,
validating and migrating the INI configuration file.
"""

from .config_manager import CONFIG_DIR, CONFIG_FILE, ConfigManager

__all__ = ["CONFIG_DIR", "CONFIG_FILE", "ConfigManager"]
