"""
Default configuration values for workspace-filesync.

Centralized defaults that can be overridden by environment variables or a
settings file.
"""

from typing import Any, Dict

CONFIG_FILE_NAME = "fsconfig.json"

# Settings section key inside a shared settings file
SETTINGS_SECTION = "filesync"

# Workspace settings defaults (JSON keys)
DEFAULT_SETTINGS = {
    "showStatusBarInfo": True
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'FILESYNC_SHOW_STATUS_BAR_INFO': 'showStatusBarInfo'
}


def get_default_config_template() -> Dict[str, Any]:
    """Get default fsconfig.json template"""
    return {
        "configs": [
            {
                "name": "${folder_name}",
                "sync": [
                    {
                        "src": "./src",
                        "dest": "./dist",
                        "active": False,
                        "include": ["*"],
                        "exclude": [],
                        "recursive": True,
                        "copyOnStart": True
                    }
                ]
            }
        ]
    }
