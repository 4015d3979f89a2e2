"""
Configuration management for workspace-filesync

Handles settings loading, environment overrides and the default config template.
"""

from .loader import SettingsLoader
from .defaults import DEFAULT_SETTINGS, get_default_config_template

__all__ = ["SettingsLoader", "DEFAULT_SETTINGS", "get_default_config_template"]
