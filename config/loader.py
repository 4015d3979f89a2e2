"""
Settings loading and config file templates.

Reads workspace settings from an optional JSON settings file with environment
variable overrides, and renders the default fsconfig.json template.
"""

import copy
import json
import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional, Union
import logging

from pydantic import ValidationError

from core.models.config import WorkspaceSettings
from .defaults import (
    CONFIG_FILE_NAME,
    DEFAULT_SETTINGS,
    ENV_VAR_MAPPING,
    SETTINGS_SECTION,
    get_default_config_template,
)

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Load workspace settings and default config files"""

    def __init__(
        self,
        settings_file: Optional[Union[str, Path]] = None,
        config_file_name: str = CONFIG_FILE_NAME
    ):
        self.settings_file = Path(settings_file).expanduser() if settings_file else None
        self.config_file_name = config_file_name

    def load_settings(self) -> WorkspaceSettings:
        """
        Read workspace settings.

        Settings come from the settings file (top level, or under a
        ``"filesync"`` key), then environment overrides. An unreadable or
        invalid file falls back to the defaults.
        """
        data = copy.deepcopy(DEFAULT_SETTINGS)

        if self.settings_file is not None and self.settings_file.exists():
            data.update(self._read_settings_file(self.settings_file))

        data = self._apply_env_overrides(data)

        try:
            return WorkspaceSettings(**data)
        except ValidationError as e:
            logger.error(f"Invalid settings, using defaults: {e}")
            return WorkspaceSettings(**self._apply_env_overrides(copy.deepcopy(DEFAULT_SETTINGS)))

    def __call__(self) -> WorkspaceSettings:
        return self.load_settings()

    def _read_settings_file(self, settings_file: Path) -> Dict[str, Any]:
        """Read the settings section of a settings file"""
        try:
            with open(settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings from {settings_file}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Settings file {settings_file} must contain an object")
            return {}

        section = data.get(SETTINGS_SECTION, data)
        if not isinstance(section, dict):
            logger.error(f"'{SETTINGS_SECTION}' in {settings_file} must be an object")
            return {}
        return section

    def _apply_env_overrides(self, settings_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to settings"""
        for env_var, settings_path in ENV_VAR_MAPPING.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(settings_data, settings_path, env_value)

        return settings_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: str) -> None:
        """Set nested dictionary value using dot notation path"""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = self._convert_env_value(value)

    def _convert_env_value(self, value: str) -> Any:
        """Convert environment variable string to appropriate type"""
        # Boolean conversion
        if value.lower() in ('true', 'yes', '1', 'on'):
            return True
        elif value.lower() in ('false', 'no', '0', 'off'):
            return False

        # Numeric conversion
        try:
            if '.' in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        return value

    def build_config_template(self, folder: Union[str, Path]) -> Dict[str, Any]:
        """Default fsconfig.json content for a workspace folder"""
        folder = Path(folder)
        substitutions = {
            'folder_name': folder.name or 'workspace',
            'folder_path': str(folder)
        }
        return self._substitute_template_vars(get_default_config_template(), substitutions)

    def _substitute_template_vars(
        self,
        data: Any,
        substitutions: Dict[str, str]
    ) -> Any:
        """Recursively substitute template variables"""
        if isinstance(data, dict):
            return {
                key: self._substitute_template_vars(value, substitutions)
                for key, value in data.items()
            }
        elif isinstance(data, list):
            return [
                self._substitute_template_vars(item, substitutions)
                for item in data
            ]
        elif isinstance(data, str):
            return Template(data).safe_substitute(substitutions)
        else:
            return data

    def write_default_config_file(
        self,
        folder: Union[str, Path],
        overwrite: bool = False
    ) -> Optional[Path]:
        """
        Write the default fsconfig.json into ``folder``.

        Returns:
            Path of the written file, or None if one already exists
        """
        folder = Path(folder).expanduser().resolve()
        if not folder.is_dir():
            raise ValueError(f"Folder does not exist: {folder}")

        config_file = folder / self.config_file_name
        if config_file.exists() and not overwrite:
            logger.info(f"Config file already exists at {config_file}")
            return None

        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(self.build_config_template(folder), f, indent=2)
            f.write("\n")

        logger.info(f"Created config file at {config_file}")
        return config_file
